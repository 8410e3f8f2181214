"""
Usage reporting over completed bookings.
"""
import uuid
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hollyaid.exceptions import SpecialistNotFound
from hollyaid.models.booking import Booking, BookingStatus
from hollyaid.models.ledger import MinutesLedgerEntry
from hollyaid.models.specialist import Specialist
from hollyaid.services.tiers import tier_info
from hollyaid.utils.timeutils import ensure_utc, start_of_week, utcnow


async def weekly_breakdown(
    db: AsyncSession,
    company_id: uuid.UUID,
    now: datetime | None = None,
    days: int = 30,
) -> list[dict]:
    """
    Minutes charged per week (Monday 00:00 UTC) over the last ``days`` days,
    oldest week first. Weeks without sessions are reported as 0.
    """
    now = ensure_utc(now) if now is not None else utcnow()
    since = now - timedelta(days=days)

    result = await db.execute(
        select(MinutesLedgerEntry.created_at, MinutesLedgerEntry.minutes).where(
            MinutesLedgerEntry.company_id == company_id,
            MinutesLedgerEntry.created_at >= since,
            MinutesLedgerEntry.created_at <= now,
        )
    )

    weeks: dict[datetime, dict] = {}
    week = start_of_week(since)
    while week <= now:
        weeks[week] = {"week_start": week, "minutes": 0, "sessions": 0}
        week += timedelta(days=7)

    for created_at, minutes in result.all():
        bucket = weeks.get(start_of_week(created_at))
        if bucket is not None:
            bucket["minutes"] += minutes
            bucket["sessions"] += 1

    return list(weeks.values())


def _session_payout(tier: str | None, duration: int) -> Decimal:
    return tier_info(tier).specialist_payout * Decimal(duration) / Decimal(60)


async def period_earnings(
    db: AsyncSession,
    specialist: Specialist,
    start: datetime,
    end: datetime,
) -> tuple[int, Decimal]:
    """Session minutes and payout for bookings completed in [start, end)."""
    result = await db.execute(
        select(Booking.session_duration, Booking.completed_tier).where(
            Booking.specialist_id == specialist.id,
            Booking.status == BookingStatus.COMPLETED.value,
            Booking.completed_at >= start,
            Booking.completed_at < end,
        )
    )
    minutes, payout = 0, Decimal("0")
    for duration, tier in result.all():
        minutes += duration
        payout += _session_payout(tier or specialist.rate_tier, duration)
    return minutes, payout.quantize(Decimal("0.01"))


async def specialist_earnings(
    db: AsyncSession,
    specialist_id: uuid.UUID,
    now: datetime | None = None,
) -> dict:
    """Completed hours and payout for the last 7 and 30 days."""
    specialist = await db.get(Specialist, specialist_id)
    if specialist is None:
        raise SpecialistNotFound(specialist_id)

    now = ensure_utc(now) if now is not None else utcnow()
    result = await db.execute(
        select(Booking.completed_at, Booking.session_duration, Booking.completed_tier).where(
            Booking.specialist_id == specialist_id,
            Booking.status == BookingStatus.COMPLETED.value,
            Booking.completed_at >= now - timedelta(days=30),
        )
    )

    totals = {7: [0, Decimal("0")], 30: [0, Decimal("0")]}
    for completed_at, duration, tier in result.all():
        completed_at = ensure_utc(completed_at)
        payout = _session_payout(tier or specialist.rate_tier, duration)
        for window, bucket in totals.items():
            if completed_at >= now - timedelta(days=window):
                bucket[0] += duration
                bucket[1] += payout

    def _summary(window: int) -> dict:
        minutes, payout = totals[window]
        return {
            "sessions_minutes": minutes,
            "hours": round(minutes / 60, 2),
            "earnings": payout.quantize(Decimal("0.01")),
        }

    return {
        "specialist_id": specialist.id,
        "rate_tier": tier_info(specialist.rate_tier).tier.value,
        "last_7_days": _summary(7),
        "last_30_days": _summary(30),
    }
