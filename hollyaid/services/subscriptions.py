"""
Plans and company subscriptions.

A company picks a plan; test-domain admins are activated on the spot, everyone
else is sent to the payment authority's checkout. The payment webhook then
calls activate_subscription(). Callers commit.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from hollyaid.config import settings
from hollyaid.exceptions import PaymentAuthorityError, PlanNotFound
from hollyaid.logging_config import get_logger
from hollyaid.models.company import Company, SubscriptionStatus
from hollyaid.services.ledger import CompanyLedger
from hollyaid.utils.timeutils import ensure_utc, utcnow

logger = get_logger(__name__)

BILLING_PERIOD = timedelta(days=30)


@dataclass(frozen=True)
class Plan:
    key: str
    name: str
    minutes: int
    monthly_price: Decimal


PLANS: dict[str, Plan] = {
    "starter": Plan("starter", "Starter", 500, Decimal("340")),
    "growth": Plan("growth", "Growth", 1500, Decimal("950")),
    "scale": Plan("scale", "Scale", 3600, Decimal("1850")),
}


def get_plan(key: str) -> Plan:
    plan = PLANS.get((key or "").strip().lower())
    if plan is None:
        raise PlanNotFound(key)
    return plan


def is_test_account_email(email: str | None, domains: list[str] | None = None) -> bool:
    if not email or "@" not in email:
        return False
    domain = email.rsplit("@", 1)[1].strip().lower()
    allowed = domains if domains is not None else settings.TEST_ACCOUNT_DOMAINS
    return domain in {d.lower() for d in allowed}


@dataclass(frozen=True)
class PlanSelection:
    company: Company
    plan: Plan
    activated: bool
    checkout_url: str | None = None


class PaymentAuthority:
    """Thin client for the hosted checkout."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.PAYMENT_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.PAYMENT_API_KEY
        self._client = client

    async def create_checkout(self, company: Company, plan: Plan, admin_email: str) -> str:
        """Return the checkout URL the admin should be redirected to."""
        if not self.base_url:
            raise PaymentAuthorityError("Payment authority is not configured")

        body = {
            "company_id": str(company.id),
            "plan": plan.key,
            "customer_email": admin_email,
            "success_url": f"{settings.FRONTEND_URL}/company/billing?status=success",
            "cancel_url": f"{settings.FRONTEND_URL}/company/billing?status=cancelled",
        }
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        try:
            if self._client is not None:
                response = await self._client.post(f"{self.base_url}/checkout", json=body, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=15.0) as client:
                    response = await client.post(f"{self.base_url}/checkout", json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error("checkout_request_failed", company_id=str(company.id), error=str(e))
            raise PaymentAuthorityError("Payment authority unreachable", details={"error": str(e)}) from e

        if response.status_code >= 400:
            raise PaymentAuthorityError(
                f"Payment authority returned {response.status_code}",
                details={"status_code": response.status_code},
            )

        data: dict[str, Any] = response.json()
        url = data.get("url")
        if not url:
            raise PaymentAuthorityError("Checkout response did not include a URL")
        return url


class SubscriptionService:
    def __init__(self, db: AsyncSession, payments: PaymentAuthority | None = None):
        self.db = db
        self.payments = payments or PaymentAuthority()
        self.ledger = CompanyLedger(db)

    async def select_plan(self, company_id: uuid.UUID, plan_key: str, admin_email: str) -> PlanSelection:
        plan = get_plan(plan_key)
        company = await self.ledger.get_company(company_id)

        if is_test_account_email(admin_email):
            company.is_test_account = True
            await self._activate(company, plan)
            logger.info("test_account_activated", company_id=str(company.id), plan=plan.key)
            return PlanSelection(company=company, plan=plan, activated=True)

        url = await self.payments.create_checkout(company, plan, admin_email)
        logger.info("checkout_created", company_id=str(company.id), plan=plan.key)
        return PlanSelection(company=company, plan=plan, activated=False, checkout_url=url)

    async def activate_subscription(
        self,
        company_id: uuid.UUID,
        plan_key: str,
        period_end: datetime | None = None,
    ) -> Company:
        """Payment confirmed: start a fresh period on ``plan_key``."""
        plan = get_plan(plan_key)
        company = await self.ledger.get_company(company_id)
        await self._activate(company, plan, period_end)
        logger.info(
            "subscription_activated",
            company_id=str(company.id),
            plan=plan.key,
            minutes_included=plan.minutes,
        )
        return company

    async def roll_over_period(self, company_id: uuid.UUID, now: datetime | None = None) -> bool:
        """
        Reset minutes_used when the period has ended. Returns True if a new
        period was started.
        """
        now = ensure_utc(now) if now is not None else utcnow()
        company = await self.ledger.get_company(company_id)
        if company.subscription_status != SubscriptionStatus.ACTIVE.value:
            return False
        if company.subscription_period_end is None or ensure_utc(company.subscription_period_end) > now:
            return False

        period_end = ensure_utc(company.subscription_period_end)
        while period_end <= now:
            period_end += BILLING_PERIOD

        previous_used = company.minutes_used
        company.minutes_used = 0
        company.subscription_period_end = period_end
        await self.db.flush()
        logger.info(
            "subscription_period_rolled_over",
            company_id=str(company.id),
            previous_minutes_used=previous_used,
            period_end=period_end.isoformat(),
        )
        return True

    async def _activate(self, company: Company, plan: Plan, period_end: datetime | None = None) -> None:
        company.subscription_status = SubscriptionStatus.ACTIVE.value
        company.plan_type = plan.key
        company.minutes_included = plan.minutes
        company.minutes_used = 0
        company.subscription_period_end = ensure_utc(period_end) if period_end else utcnow() + BILLING_PERIOD
        await self.db.flush()
