"""Tests for specialist payout requests."""
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import build_world, create_booking
from hollyaid.exceptions import (
    PayoutAlreadyProcessed,
    PayoutNotFound,
    SpecialistNotFound,
    ValidationFailed,
)
from hollyaid.models import BookingStatus, PayoutRequest, PayoutStatus
from hollyaid.services import payouts
from hollyaid.services.tiers import RateTier
from hollyaid.utils.timeutils import ensure_utc, month_bounds

# A Wednesday in March
NOW = datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc)
MARCH = datetime(2026, 3, 1, tzinfo=timezone.utc)
APRIL = datetime(2026, 4, 1, tzinfo=timezone.utc)


async def complete_at(session, world, when: datetime, duration: int = 60):
    booking = await create_booking(session, world, status=BookingStatus.COMPLETED, duration=duration)
    booking.completed_at = when
    booking.completed_tier = world.specialist.rate_tier
    await session.commit()
    return booking


@pytest.fixture
async def earning_world(session):
    world = await build_world(session, tier=RateTier.ADVANCED)
    await complete_at(session, world, NOW - timedelta(days=2))
    await complete_at(session, world, NOW - timedelta(days=10), duration=30)
    await complete_at(session, world, NOW - timedelta(days=40))  # February
    return world


class TestMonthBounds:
    def test_mid_month(self):
        assert month_bounds(NOW) == (MARCH, APRIL)

    def test_december_rolls_over(self):
        start, end = month_bounds(datetime(2026, 12, 31, 23, 59, tzinfo=timezone.utc))
        assert start == datetime(2026, 12, 1, tzinfo=timezone.utc)
        assert end == datetime(2027, 1, 1, tzinfo=timezone.utc)

    def test_naive_treated_as_utc(self):
        assert month_bounds(datetime(2026, 3, 1)) == (MARCH, APRIL)


class TestRequest:
    async def test_covers_current_month_only(self, session, earning_world):
        payout = await payouts.request_payout(session, earning_world.specialist.id, now=NOW)
        await session.commit()

        assert payout.status == "pending"
        assert payout.amount == Decimal("48.00")
        assert payout.session_minutes == 90
        assert ensure_utc(payout.period_start) == MARCH
        assert ensure_utc(payout.period_end) == APRIL

    async def test_second_request_same_month_rejected(self, session, earning_world):
        await payouts.request_payout(session, earning_world.specialist.id, now=NOW)
        await session.commit()

        with pytest.raises(ValidationFailed) as exc_info:
            await payouts.request_payout(session, earning_world.specialist.id, now=NOW + timedelta(days=1))
        assert exc_info.value.details["period_start"] == MARCH.isoformat()

    async def test_rejected_request_can_be_filed_again(self, session, earning_world):
        first = await payouts.request_payout(session, earning_world.specialist.id, now=NOW)
        await session.commit()
        await payouts.process_payout(session, first.id, uuid.uuid4(), approve=False, notes="wrong bank details")
        await session.commit()

        again = await payouts.request_payout(session, earning_world.specialist.id, now=NOW)
        await session.commit()

        assert again.id != first.id
        assert again.status == "pending"

    async def test_next_month_is_a_new_period(self, session, earning_world):
        await payouts.request_payout(session, earning_world.specialist.id, now=NOW)
        await session.commit()
        await complete_at(session, earning_world, APRIL + timedelta(days=3))

        april = await payouts.request_payout(session, earning_world.specialist.id, now=APRIL + timedelta(days=5))
        assert april.amount == Decimal("32.00")

    async def test_no_earnings_rejected(self, session, world):
        with pytest.raises(ValidationFailed):
            await payouts.request_payout(session, world.specialist.id, now=NOW)
        assert await payouts.list_payout_requests(session, specialist_id=world.specialist.id) == []

    async def test_unknown_specialist(self, session):
        with pytest.raises(SpecialistNotFound):
            await payouts.request_payout(session, uuid.uuid4(), now=NOW)

    async def test_open_period_is_unique_in_database(self, session, world):
        for _ in range(2):
            session.add(PayoutRequest(
                specialist_id=world.specialist.id,
                amount=Decimal("20.00"),
                session_minutes=60,
                period_start=MARCH,
                period_end=APRIL,
            ))
        with pytest.raises(IntegrityError):
            await session.flush()


class TestProcess:
    async def test_approve_marks_paid(self, session, earning_world):
        payout = await payouts.request_payout(session, earning_world.specialist.id, now=NOW)
        await session.commit()
        admin_id = uuid.uuid4()

        paid = await payouts.process_payout(session, payout.id, admin_id, approve=True, notes="sent 2026-03-20")
        await session.commit()

        assert paid.status == "paid"
        assert paid.processed_by == admin_id
        assert paid.processed_at is not None
        assert paid.notes == "sent 2026-03-20"

    async def test_second_decision_conflicts(self, session, earning_world):
        payout = await payouts.request_payout(session, earning_world.specialist.id, now=NOW)
        await session.commit()
        payout_id = payout.id
        await payouts.process_payout(session, payout_id, uuid.uuid4(), approve=True)
        await session.commit()

        with pytest.raises(PayoutAlreadyProcessed) as exc_info:
            await payouts.process_payout(session, payout_id, uuid.uuid4(), approve=False)
        assert exc_info.value.details == {"payout_id": str(payout_id), "status": "paid"}

    async def test_unknown_payout(self, session):
        with pytest.raises(PayoutNotFound):
            await payouts.process_payout(session, uuid.uuid4(), uuid.uuid4(), approve=True)

    async def test_list_by_status(self, session, earning_world):
        payout = await payouts.request_payout(session, earning_world.specialist.id, now=NOW)
        await session.commit()

        pending = await payouts.list_payout_requests(session, status=PayoutStatus.PENDING)
        assert [p.id for p in pending] == [payout.id]
        assert await payouts.list_payout_requests(session, status=PayoutStatus.PAID) == []
