"""Tests for weekly usage and specialist earnings."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from conftest import build_world, create_booking
from hollyaid.models import BookingStatus, MinutesLedgerEntry
from hollyaid.services.tiers import RateTier
from hollyaid.services.usage import specialist_earnings, weekly_breakdown

# A Wednesday
NOW = datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc)


async def completed(session, world, minutes: int, when: datetime, duration: int = 60):
    booking = await create_booking(session, world, status=BookingStatus.COMPLETED, duration=duration)
    booking.completed_at = when
    booking.completed_tier = world.specialist.rate_tier
    booking.minutes_deducted = minutes
    session.add(MinutesLedgerEntry(
        company_id=world.company.id,
        booking_id=booking.id,
        minutes=minutes,
        tier=world.specialist.rate_tier or "standard",
        multiplier=Decimal("1.0"),
        session_minutes=duration,
        created_at=when,
    ))
    await session.commit()
    return booking


class TestWeeklyBreakdown:
    async def test_buckets_by_monday_and_fills_gaps(self, session, world):
        await completed(session, world, 60, NOW - timedelta(days=1))
        await completed(session, world, 96, NOW - timedelta(days=2))
        await completed(session, world, 144, NOW - timedelta(days=15))
        await completed(session, world, 500, NOW - timedelta(days=45))  # outside window

        weeks = await weekly_breakdown(session, world.company.id, now=NOW)

        assert all(w["week_start"].weekday() == 0 for w in weeks)
        assert weeks[-1]["week_start"] == datetime(2026, 3, 16, tzinfo=timezone.utc)
        assert weeks[-1]["minutes"] == 156
        assert weeks[-1]["sessions"] == 2
        assert sum(w["minutes"] for w in weeks) == 300
        assert any(w["minutes"] == 0 for w in weeks)

    async def test_no_usage(self, session, world):
        weeks = await weekly_breakdown(session, world.company.id, now=NOW)
        assert len(weeks) == 5
        assert all(w["minutes"] == 0 for w in weeks)


class TestSpecialistEarnings:
    async def test_windows(self, session):
        world = await build_world(session, tier=RateTier.ADVANCED)
        await completed(session, world, 96, NOW - timedelta(days=2))
        await completed(session, world, 48, NOW - timedelta(days=10), duration=30)
        await completed(session, world, 96, NOW - timedelta(days=40))

        earnings = await specialist_earnings(session, world.specialist.id, now=NOW)

        assert earnings["rate_tier"] == "advanced"
        assert earnings["last_7_days"]["hours"] == 1.0
        assert earnings["last_7_days"]["earnings"] == Decimal("32.00")
        assert earnings["last_30_days"]["hours"] == 1.5
        assert earnings["last_30_days"]["earnings"] == Decimal("48.00")
