"""
Company Ledger - wellness-minutes bookkeeping for companies.

minutes_used is only ever changed with a single SQL increment
(minutes_used = minutes_used + delta), so concurrent completions for the same
company cannot lose updates. db.commit() is the caller's responsibility: the
increment must land in the same transaction as the booking status flip.
"""
import uuid
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hollyaid.config import settings
from hollyaid.exceptions import CompanyNotFound, LedgerWriteFailed
from hollyaid.logging_config import get_logger
from hollyaid.models.company import Company, CompanyEmployee
from hollyaid.models.ledger import MinutesLedgerEntry

logger = get_logger(__name__)


@dataclass(frozen=True)
class LedgerUpdate:
    """Outcome of charging one completed booking to a company."""
    company_id: uuid.UUID
    company_name: str
    admin_user_id: uuid.UUID | None
    minutes_deducted: int
    previous_minutes_used: int
    minutes_used: int
    minutes_included: int

    @property
    def usage_ratio(self) -> float:
        if self.minutes_included <= 0:
            return 0.0
        return self.minutes_used / self.minutes_included

    def crossed_threshold(self, threshold: float) -> bool:
        """True when this charge moved usage from below ``threshold`` to at/above it."""
        if self.minutes_included <= 0:
            return False
        previous_ratio = self.previous_minutes_used / self.minutes_included
        return previous_ratio < threshold <= self.usage_ratio


class CompanyLedger:
    """Reads and charges company minute balances."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_company(self, company_id: uuid.UUID) -> Company:
        company = await self.db.get(Company, company_id, populate_existing=True)
        if company is None:
            raise CompanyNotFound(company_id)
        return company

    async def resolve_company_for_employee(
        self,
        user_id: uuid.UUID | None,
        email: str | None = None,
    ) -> Company | None:
        """
        Find the employee's company: accepted membership first, then a
        company registered for the employee's email domain.
        """
        if user_id is not None:
            stmt = (
                select(Company)
                .join(CompanyEmployee, CompanyEmployee.company_id == Company.id)
                .where(
                    CompanyEmployee.user_id == user_id,
                    CompanyEmployee.status == "accepted",
                )
                .order_by(CompanyEmployee.accepted_at.desc())
                .limit(1)
            )
            company = (await self.db.execute(stmt)).scalar_one_or_none()
            if company is not None:
                return company

        if email and "@" in email:
            domain = email.rsplit("@", 1)[1].strip().lower()
            stmt = select(Company).where(func.lower(Company.email_domain) == domain)
            company = (await self.db.execute(stmt)).scalar_one_or_none()
            if company is not None:
                logger.debug("company_resolved_by_domain", domain=domain, company_id=str(company.id))
                return company

        return None

    async def apply_completion(
        self,
        company_id: uuid.UUID,
        minutes: int,
        *,
        booking_id: uuid.UUID,
        tier: str,
        multiplier: Decimal,
        session_minutes: int,
    ) -> LedgerUpdate:
        """
        Charge ``minutes`` to the company and record the ledger entry.

        Raises:
            CompanyNotFound: if the company row does not exist
            LedgerWriteFailed: if the increment or the entry cannot be written
                (including a second charge for the same booking)
        """
        try:
            result = await self.db.execute(
                update(Company)
                .where(Company.id == company_id)
                .values(minutes_used=Company.minutes_used + minutes)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            logger.error("ledger_increment_failed", company_id=str(company_id), error=str(e))
            raise LedgerWriteFailed("Failed to update company minutes", e) from e

        if result.rowcount == 0:
            raise CompanyNotFound(company_id)

        self.db.add(MinutesLedgerEntry(
            company_id=company_id,
            booking_id=booking_id,
            minutes=minutes,
            tier=tier,
            multiplier=multiplier,
            session_minutes=session_minutes,
        ))
        try:
            await self.db.flush()
        except IntegrityError as e:
            logger.warning("ledger_duplicate_charge", booking_id=str(booking_id))
            raise LedgerWriteFailed("Booking has already been charged", e) from e
        except SQLAlchemyError as e:
            raise LedgerWriteFailed("Failed to write ledger entry", e) from e

        row = (await self.db.execute(
            select(
                Company.name,
                Company.admin_user_id,
                Company.minutes_used,
                Company.minutes_included,
            ).where(Company.id == company_id)
        )).one()

        update_ = LedgerUpdate(
            company_id=company_id,
            company_name=row.name,
            admin_user_id=row.admin_user_id,
            minutes_deducted=minutes,
            previous_minutes_used=row.minutes_used - minutes,
            minutes_used=row.minutes_used,
            minutes_included=row.minutes_included,
        )

        logger.info(
            "company_minutes_charged",
            company_id=str(company_id),
            booking_id=str(booking_id),
            minutes=minutes,
            tier=tier,
            minutes_used=update_.minutes_used,
            minutes_included=update_.minutes_included,
        )
        return update_

    async def get_balance(self, company_id: uuid.UUID) -> dict:
        company = await self.get_company(company_id)
        return {
            "company_id": company.id,
            "plan_type": company.plan_type,
            "subscription_status": company.subscription_status,
            "minutes_included": company.minutes_included,
            "minutes_used": company.minutes_used,
            "minutes_remaining": company.minutes_remaining,
            "usage_ratio": round(company.usage_ratio, 4),
            "low_minutes": company.usage_ratio >= settings.LOW_MINUTES_THRESHOLD,
            "subscription_period_end": company.subscription_period_end,
        }

    async def list_entries(
        self,
        company_id: uuid.UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[MinutesLedgerEntry], int]:
        """Ledger history for a company, newest first, with total count."""
        await self.get_company(company_id)

        stmt = (
            select(MinutesLedgerEntry)
            .where(MinutesLedgerEntry.company_id == company_id)
            .order_by(MinutesLedgerEntry.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        entries = list((await self.db.execute(stmt)).scalars().all())

        total = await self.db.scalar(
            select(func.count())
            .select_from(MinutesLedgerEntry)
            .where(MinutesLedgerEntry.company_id == company_id)
        )
        return entries, total or 0
