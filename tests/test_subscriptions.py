"""Tests for plans, plan selection and billing periods."""
import json
from datetime import timedelta

import httpx
import pytest

from conftest import create_company
from hollyaid.exceptions import PaymentAuthorityError, PlanNotFound
from hollyaid.models import SubscriptionStatus
from hollyaid.services.subscriptions import (
    PaymentAuthority,
    SubscriptionService,
    get_plan,
    is_test_account_email,
)
from hollyaid.utils.timeutils import ensure_utc, utcnow


def payment_client(requests: list, status_code: int = 200, body: dict | None = None) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json=body if body is not None else {"url": "https://pay.test/c/123"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestPlans:
    def test_catalog(self):
        assert get_plan("starter").minutes == 500
        assert get_plan("Growth").minutes == 1500
        assert get_plan("scale").minutes == 3600

    def test_unknown_plan(self):
        with pytest.raises(PlanNotFound):
            get_plan("enterprise")

    @pytest.mark.parametrize("email, expected", [
        ("boss@hollyaid.com", True),
        ("boss@ShakeApp.today", True),
        ("boss@acme.test", False),
        ("not-an-email", False),
        (None, False),
    ])
    def test_test_account_domains(self, email, expected):
        assert is_test_account_email(email) is expected


class TestSelectPlan:
    async def test_test_domain_activates_immediately(self, session):
        company = await create_company(session, minutes_included=0, status=SubscriptionStatus.UNPAID)
        requests: list = []
        service = SubscriptionService(session, PaymentAuthority("https://pay.test", "key", payment_client(requests)))

        selection = await service.select_plan(company.id, "starter", "admin@hollyaid.com")
        await session.commit()

        assert selection.activated is True
        assert selection.checkout_url is None
        assert requests == []
        assert selection.company.subscription_status == "active"
        assert selection.company.is_test_account is True
        assert selection.company.minutes_included == 500
        period = ensure_utc(selection.company.subscription_period_end) - utcnow()
        assert timedelta(days=29) < period <= timedelta(days=30)

    async def test_regular_domain_gets_checkout(self, session):
        company = await create_company(session, minutes_included=0, status=SubscriptionStatus.UNPAID)
        requests: list = []
        service = SubscriptionService(session, PaymentAuthority("https://pay.test", "key", payment_client(requests)))

        selection = await service.select_plan(company.id, "growth", "admin@acme.test")

        assert selection.activated is False
        assert selection.checkout_url == "https://pay.test/c/123"
        assert selection.company.subscription_status == "unpaid"
        assert len(requests) == 1
        sent = json.loads(requests[0].content)
        assert requests[0].url == "https://pay.test/checkout"
        assert requests[0].headers["Authorization"] == "Bearer key"
        assert sent["plan"] == "growth"
        assert sent["company_id"] == str(company.id)

    async def test_payment_authority_error(self, session):
        company = await create_company(session, status=SubscriptionStatus.UNPAID)
        payments = PaymentAuthority("https://pay.test", "key", payment_client([], status_code=502))
        with pytest.raises(PaymentAuthorityError):
            await SubscriptionService(session, payments).select_plan(company.id, "scale", "admin@acme.test")

    async def test_unconfigured_payment_authority(self, session):
        company = await create_company(session, status=SubscriptionStatus.UNPAID)
        with pytest.raises(PaymentAuthorityError):
            await SubscriptionService(session, PaymentAuthority("", "")).select_plan(
                company.id, "scale", "admin@acme.test"
            )


class TestPeriods:
    async def test_activation_resets_usage(self, session):
        company = await create_company(session, minutes_used=300, status=SubscriptionStatus.PAST_DUE)
        company = await SubscriptionService(session).activate_subscription(company.id, "scale")
        await session.commit()

        assert company.subscription_status == "active"
        assert company.plan_type == "scale"
        assert company.minutes_included == 3600
        assert company.minutes_used == 0

    async def test_rollover_after_period_end(self, session):
        company = await create_company(session, minutes_used=700)
        company.subscription_period_end = utcnow() - timedelta(days=1)
        await session.commit()

        rolled = await SubscriptionService(session).roll_over_period(company.id)
        await session.commit()

        assert rolled is True
        assert company.minutes_used == 0
        assert ensure_utc(company.subscription_period_end) > utcnow()

    async def test_no_rollover_mid_period(self, session):
        company = await create_company(session, minutes_used=700)
        rolled = await SubscriptionService(session).roll_over_period(company.id)
        assert rolled is False
        assert company.minutes_used == 700
