"""
Specialist payout requests.

A specialist asks to be paid for the current calendar month's completed
sessions (hours x tier payout). An admin then marks the request paid or
rejects it. Only one pending or paid request may exist per specialist and
month; a rejected one can be filed again.

db.commit() is the caller's responsibility.
"""
import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hollyaid.exceptions import (
    PayoutAlreadyProcessed,
    PayoutNotFound,
    SpecialistNotFound,
    ValidationFailed,
)
from hollyaid.logging_config import get_logger
from hollyaid.models.payout import PayoutRequest, PayoutStatus
from hollyaid.models.specialist import Specialist
from hollyaid.services.usage import period_earnings
from hollyaid.utils.timeutils import ensure_utc, month_bounds, utcnow

logger = get_logger(__name__)


def _period_conflict(specialist_id: uuid.UUID, period_start: datetime) -> ValidationFailed:
    return ValidationFailed(
        "A payout request for this period already exists",
        details={"specialist_id": str(specialist_id), "period_start": period_start.isoformat()},
    )


async def request_payout(
    db: AsyncSession,
    specialist_id: uuid.UUID,
    now: datetime | None = None,
) -> PayoutRequest:
    """
    File a payout request for the month containing ``now``.

    Raises ValidationFailed when the month has no earnings or already has
    an open or paid request.
    """
    # Row lock serialises concurrent requests from the same specialist
    specialist = (await db.execute(
        select(Specialist).where(Specialist.id == specialist_id).with_for_update()
    )).scalar_one_or_none()
    if specialist is None:
        raise SpecialistNotFound(specialist_id)

    now = ensure_utc(now) if now is not None else utcnow()
    period_start, period_end = month_bounds(now)

    existing = await db.scalar(
        select(PayoutRequest.id).where(
            PayoutRequest.specialist_id == specialist_id,
            PayoutRequest.period_start == period_start,
            PayoutRequest.status != PayoutStatus.REJECTED.value,
        )
    )
    if existing is not None:
        raise _period_conflict(specialist_id, period_start)

    minutes, amount = await period_earnings(db, specialist, period_start, period_end)
    if amount <= 0:
        raise ValidationFailed(
            "No earnings to pay out for this period",
            details={"specialist_id": str(specialist_id), "period_start": period_start.isoformat()},
        )

    payout = PayoutRequest(
        specialist_id=specialist_id,
        amount=amount,
        session_minutes=minutes,
        period_start=period_start,
        period_end=period_end,
        status=PayoutStatus.PENDING.value,
    )
    db.add(payout)
    try:
        await db.flush()
    except IntegrityError as e:
        logger.info("payout_period_conflict", specialist_id=str(specialist_id))
        raise _period_conflict(specialist_id, period_start) from e

    logger.info(
        "payout_requested",
        payout_id=str(payout.id),
        specialist_id=str(specialist_id),
        amount=str(amount),
        session_minutes=minutes,
    )
    return payout


async def get_payout_request(db: AsyncSession, payout_id: uuid.UUID) -> PayoutRequest:
    payout = await db.get(PayoutRequest, payout_id)
    if payout is None:
        raise PayoutNotFound(payout_id)
    return payout


async def list_payout_requests(
    db: AsyncSession,
    specialist_id: uuid.UUID | None = None,
    status: PayoutStatus | None = None,
) -> list[PayoutRequest]:
    """Newest first."""
    stmt = select(PayoutRequest).order_by(PayoutRequest.created_at.desc(), PayoutRequest.id)
    if specialist_id is not None:
        stmt = stmt.where(PayoutRequest.specialist_id == specialist_id)
    if status is not None:
        stmt = stmt.where(PayoutRequest.status == status.value)
    return list((await db.execute(stmt)).scalars().all())


async def process_payout(
    db: AsyncSession,
    payout_id: uuid.UUID,
    admin_user_id: uuid.UUID,
    approve: bool,
    notes: str | None = None,
) -> PayoutRequest:
    """
    Move a pending request to paid or rejected.

    Conditional on the row still being pending: of two admins acting at once,
    one wins and the other gets PayoutAlreadyProcessed.
    """
    status = PayoutStatus.PAID if approve else PayoutStatus.REJECTED
    result = await db.execute(
        update(PayoutRequest)
        .where(
            PayoutRequest.id == payout_id,
            PayoutRequest.status == PayoutStatus.PENDING.value,
        )
        .values(
            status=status.value,
            processed_at=utcnow(),
            processed_by=admin_user_id,
            notes=notes,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        current = await db.scalar(select(PayoutRequest.status).where(PayoutRequest.id == payout_id))
        if current is None:
            raise PayoutNotFound(payout_id)
        raise PayoutAlreadyProcessed(payout_id, current)

    payout = (await db.execute(
        select(PayoutRequest)
        .where(PayoutRequest.id == payout_id)
        .execution_options(populate_existing=True)
    )).scalar_one()
    logger.info(
        "payout_processed",
        payout_id=str(payout_id),
        status=status.value,
        admin_user_id=str(admin_user_id),
    )
    return payout
