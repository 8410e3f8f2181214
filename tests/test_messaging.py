"""Tests for booking conversations and the per-party message cap."""
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from conftest import create_booking
from hollyaid.exceptions import CapExceeded, Unauthorized, ValidationFailed
from hollyaid.models import BookingMessage, BookingMessageRead
from hollyaid.services.actors import Actor, ActorRole
from hollyaid.services.messaging import MessagingService
from hollyaid.utils.timeutils import ensure_utc, utcnow


@pytest.fixture
def messaging(session, notifier) -> MessagingService:
    return MessagingService(session, notifier, cap=10)


async def message_count(session, booking_id) -> int:
    return await session.scalar(
        select(func.count(BookingMessage.id)).where(BookingMessage.booking_id == booking_id)
    )


class TestCap:
    async def test_eleventh_message_rejected(self, session, messaging, world):
        booking_id = (await create_booking(session, world)).id
        for i in range(10):
            await messaging.send_message(booking_id, world.employee, f"message {i}")

        with pytest.raises(CapExceeded) as exc_info:
            await messaging.send_message(booking_id, world.employee, "one too many")
        assert exc_info.value.details["sender_type"] == "employee"
        assert await message_count(session, booking_id) == 10

    async def test_cap_is_per_party(self, session, messaging, world):
        booking_id = (await create_booking(session, world)).id
        for i in range(10):
            await messaging.send_message(booking_id, world.employee, f"question {i}")

        reply = await messaging.send_message(booking_id, world.specialist_actor, "answer")
        assert reply.sender_type == "specialist"

        budget = await messaging.budget(booking_id, world.specialist_actor)
        assert budget.used == 1
        assert budget.remaining == 9

    async def test_configured_cap(self, session, notifier, world):
        booking_id = (await create_booking(session, world)).id
        service = MessagingService(session, notifier, cap=2)
        await service.send_message(booking_id, world.employee, "a")
        await service.send_message(booking_id, world.employee, "b")
        with pytest.raises(CapExceeded):
            await service.send_message(booking_id, world.employee, "c")

    async def test_zero_cap_disables_messaging(self, session, notifier, world):
        booking_id = (await create_booking(session, world)).id
        service = MessagingService(session, notifier, cap=0)
        with pytest.raises(CapExceeded):
            await service.send_message(booking_id, world.employee, "hello")
        assert await message_count(session, booking_id) == 0


class TestSend:
    async def test_sender_type_from_actor(self, session, messaging, world, notifier):
        booking_id = (await create_booking(session, world)).id
        message = await messaging.send_message(booking_id, world.employee, "  hello  ")

        assert message.sender_type == "employee"
        assert message.sender_user_id == world.employee.user_id
        assert message.body == "hello"
        assert notifier.types() == ["message.created"]

    async def test_stranger_cannot_post(self, session, messaging, world):
        booking_id = (await create_booking(session, world)).id
        stranger = Actor(user_id=uuid.uuid4(), role=ActorRole.SPECIALIST)
        with pytest.raises(Unauthorized):
            await messaging.send_message(booking_id, stranger, "hi")
        assert await message_count(session, booking_id) == 0

    @pytest.mark.parametrize("body", ["", "   ", "x" * 2001])
    async def test_body_validation(self, session, messaging, world, body):
        booking_id = (await create_booking(session, world)).id
        with pytest.raises(ValidationFailed):
            await messaging.send_message(booking_id, world.employee, body)

    async def test_thread_in_creation_order(self, session, messaging, world):
        booking_id = (await create_booking(session, world)).id
        await messaging.send_message(booking_id, world.employee, "first")
        await messaging.send_message(booking_id, world.specialist_actor, "second")
        await messaging.send_message(booking_id, world.employee, "third")

        thread = await messaging.list_messages(booking_id, world.specialist_actor)
        assert [m.body for m in thread] == ["first", "second", "third"]


class TestUnread:
    async def test_own_messages_never_unread(self, session, messaging, world):
        booking_id = (await create_booking(session, world)).id
        await messaging.send_message(booking_id, world.employee, "ping")
        await messaging.send_message(booking_id, world.employee, "ping again")

        assert await messaging.unread_counts(world.employee, [booking_id]) == {booking_id: 0}
        assert await messaging.unread_counts(world.specialist_actor, [booking_id]) == {booking_id: 2}

    async def test_mark_read_resets_count(self, session, messaging, world):
        booking_id = (await create_booking(session, world)).id
        await messaging.send_message(booking_id, world.employee, "ping")

        read = await messaging.mark_read(booking_id, world.specialist_actor)
        assert await messaging.unread_counts(world.specialist_actor, [booking_id]) == {booking_id: 0}

        # Push the read mark into the past so the next message is strictly newer
        read.last_read_at = utcnow() - timedelta(minutes=1)
        await session.commit()
        assert await messaging.unread_counts(world.specialist_actor, [booking_id]) == {booking_id: 1}

    async def test_concurrent_first_read_moves_existing_mark(self, session, messaging, world, monkeypatch):
        booking_id = (await create_booking(session, world)).id
        first = await messaging.mark_read(booking_id, world.employee)
        first_read_at = ensure_utc(first.last_read_at)

        # The lookup misses the mark another request inserted a moment earlier
        lookup = messaging._read_mark
        calls = []

        async def stale_lookup(booking_id, user_id, refresh=False):
            calls.append(refresh)
            if len(calls) == 1:
                return None
            return await lookup(booking_id, user_id, refresh=refresh)

        monkeypatch.setattr(messaging, "_read_mark", stale_lookup)
        read = await messaging.mark_read(booking_id, world.employee)

        assert ensure_utc(read.last_read_at) >= first_read_at
        marks = await session.scalar(
            select(func.count(BookingMessageRead.id)).where(BookingMessageRead.booking_id == booking_id)
        )
        assert marks == 1

    async def test_bookings_without_messages(self, session, messaging, world):
        first = (await create_booking(session, world)).id
        second = (await create_booking(session, world)).id
        await messaging.send_message(first, world.specialist_actor, "see you soon")

        counts = await messaging.unread_counts(world.employee, [first, second])
        assert counts == {first: 1, second: 0}

    async def test_other_peoples_bookings_left_out(self, session, messaging, world):
        booking_id = (await create_booking(session, world)).id
        await messaging.send_message(booking_id, world.specialist_actor, "private")

        outsider = Actor(user_id=uuid.uuid4(), role=ActorRole.EMPLOYEE)
        assert await messaging.unread_counts(outsider, [booking_id]) == {}
