"""Tests for specialist administration and invites."""
import uuid
from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import create_booking
from hollyaid.exceptions import InvalidInvite, SpecialistNotFound, ValidationFailed
from hollyaid.services import specialists
from hollyaid.utils.timeutils import utcnow


class TestAdmin:
    async def test_create_derives_rate_from_tier(self, session):
        specialist = await specialists.create_specialist(session, "Dr. Rivera", rate_tier="expert")
        await session.commit()
        assert specialist.rate_tier == "expert"
        assert specialist.hourly_rate == Decimal("60")
        assert specialist.is_active is True

    async def test_unknown_tier_rejected(self, session):
        with pytest.raises(ValidationFailed):
            await specialists.create_specialist(session, "Dr. Rivera", rate_tier="platinum")

    async def test_set_tier_with_override(self, session):
        specialist = await specialists.create_specialist(session, "Dr. Rivera")
        await specialists.set_tier(session, specialist.id, "master")
        assert specialist.hourly_rate == Decimal("80")

        await specialists.set_tier(session, specialist.id, "advanced", hourly_rate=Decimal("45"))
        assert specialist.rate_tier == "advanced"
        assert specialist.hourly_rate == Decimal("45")

    async def test_deactivated_hidden_from_directory(self, session):
        active = await specialists.create_specialist(session, "Dr. A")
        retired = await specialists.create_specialist(session, "Dr. B")
        await specialists.set_active(session, retired.id, False)
        await session.commit()

        listed = await specialists.list_specialists(session, active_only=True)
        assert [s.id for s in listed] == [active.id]
        assert len(await specialists.list_specialists(session)) == 2

    async def test_delete_refused_with_bookings(self, session, world):
        await create_booking(session, world)
        with pytest.raises(ValidationFailed):
            await specialists.delete_specialist(session, world.specialist.id)

    async def test_delete_without_bookings(self, session):
        specialist = await specialists.create_specialist(session, "Dr. Gone")
        specialist_id = specialist.id
        await session.commit()
        await specialists.delete_specialist(session, specialist_id)
        await session.commit()
        with pytest.raises(SpecialistNotFound):
            await specialists.get_specialist(session, specialist_id)


class TestInvites:
    async def test_redeem_creates_specialist(self, session):
        invite = await specialists.issue_invite(session, "New@Clinic.test", uuid.uuid4(), rate_tier="advanced")
        await session.commit()
        user_id = uuid.uuid4()

        specialist = await specialists.redeem_invite(session, invite.token, user_id, "Dr. New")
        await session.commit()

        assert specialist.user_id == user_id
        assert specialist.email == "new@clinic.test"
        assert specialist.rate_tier == "advanced"
        assert invite.used_at is not None

    async def test_token_is_single_use(self, session):
        invite = await specialists.issue_invite(session, "a@clinic.test", uuid.uuid4())
        await specialists.redeem_invite(session, invite.token, uuid.uuid4(), "Dr. One")
        with pytest.raises(InvalidInvite):
            await specialists.redeem_invite(session, invite.token, uuid.uuid4(), "Dr. Two")

    async def test_expired_token(self, session):
        invite = await specialists.issue_invite(session, "late@clinic.test", uuid.uuid4())
        invite.expires_at = utcnow() - timedelta(minutes=1)
        await session.commit()
        with pytest.raises(InvalidInvite):
            await specialists.redeem_invite(session, invite.token, uuid.uuid4(), "Dr. Late")

    async def test_unknown_token(self, session):
        with pytest.raises(InvalidInvite):
            await specialists.redeem_invite(session, "nope", uuid.uuid4(), "Dr. Nobody")

    async def test_default_ttl(self, session):
        invite = await specialists.issue_invite(session, "ttl@clinic.test", uuid.uuid4())
        remaining = invite.expires_at - utcnow()
        assert timedelta(hours=23) < remaining <= timedelta(hours=24)

    async def test_zero_ttl_rejected(self, session):
        with pytest.raises(ValidationFailed):
            await specialists.issue_invite(session, "zero@clinic.test", uuid.uuid4(), ttl_hours=0)
