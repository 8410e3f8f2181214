"""
Booking conversation with a per-party message budget.

The employee and the specialist each get MESSAGE_CAP messages per booking.
send_message() locks the booking row before counting, so two concurrent sends
from the same party cannot both slip under the cap.
"""
import uuid
from dataclasses import dataclass

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hollyaid.config import settings
from hollyaid.exceptions import (
    BookingNotFound,
    CapExceeded,
    PersistenceUnavailable,
    SpecialistNotFound,
    Unauthorized,
    ValidationFailed,
)
from hollyaid.logging_config import get_logger
from hollyaid.models.booking import Booking
from hollyaid.models.message import BookingMessage, BookingMessageRead, SenderType
from hollyaid.models.specialist import Specialist
from hollyaid.services.actors import Actor, ActorRole
from hollyaid.services.notifications import NotificationDispatcher, NotificationEvent
from hollyaid.utils.timeutils import utcnow

logger = get_logger(__name__)

MAX_MESSAGE_LENGTH = 2000


@dataclass(frozen=True)
class MessageBudget:
    sender_type: SenderType
    used: int
    cap: int

    @property
    def remaining(self) -> int:
        return max(self.cap - self.used, 0)


class MessagingService:
    def __init__(self, db: AsyncSession, notifier: NotificationDispatcher, cap: int | None = None):
        self.db = db
        self.notifier = notifier
        self.cap = settings.MESSAGE_CAP if cap is None else cap

    async def send_message(self, booking_id: uuid.UUID, actor: Actor, body: str) -> BookingMessage:
        """
        Append a message from ``actor`` to the booking's thread.

        Raises:
            ValidationFailed: empty or oversized body
            BookingNotFound
            Unauthorized: actor is not a party to the booking
            CapExceeded: the sender's party already used its budget
        """
        text = (body or "").strip()
        if not text:
            raise ValidationFailed("Message body must not be empty")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ValidationFailed(
                f"Message body exceeds {MAX_MESSAGE_LENGTH} characters",
                details={"length": len(text)},
            )

        try:
            booking = (await self.db.execute(
                select(Booking).where(Booking.id == booking_id).with_for_update()
            )).scalar_one_or_none()
            if booking is None:
                raise BookingNotFound(booking_id)

            sender_type = await self._sender_type(booking, actor)
            used = await self._count(booking.id, sender_type)
            if used >= self.cap:
                logger.info(
                    "message_cap_reached",
                    booking_id=str(booking.id),
                    sender_type=sender_type.value,
                    cap=self.cap,
                )
                raise CapExceeded(booking.id, sender_type.value, self.cap)

            message = BookingMessage(
                booking_id=booking.id,
                sender_user_id=actor.user_id,
                sender_type=sender_type.value,
                body=text,
            )
            self.db.add(message)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("message_write_failed", booking_id=str(booking_id), error=str(e))
            raise PersistenceUnavailable("Message could not be saved", e) from e
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "message_sent",
            booking_id=str(booking_id),
            message_id=str(message.id),
            sender_type=sender_type.value,
            used=used + 1,
            cap=self.cap,
        )
        await self.notifier.dispatch(
            NotificationEvent.MESSAGE_CREATED,
            {
                "booking_id": str(booking_id),
                "message_id": str(message.id),
                "sender_type": sender_type.value,
                "sender_user_id": str(actor.user_id),
            },
        )
        return message

    async def list_messages(self, booking_id: uuid.UUID, actor: Actor) -> list[BookingMessage]:
        """The thread in creation order."""
        booking = await self._get_booking(booking_id)
        await self._sender_type(booking, actor)

        result = await self.db.execute(
            select(BookingMessage)
            .where(BookingMessage.booking_id == booking_id)
            .order_by(BookingMessage.created_at, BookingMessage.id)
        )
        return list(result.scalars().all())

    async def budget(self, booking_id: uuid.UUID, actor: Actor) -> MessageBudget:
        booking = await self._get_booking(booking_id)
        sender_type = await self._sender_type(booking, actor)
        used = await self._count(booking_id, sender_type)
        return MessageBudget(sender_type=sender_type, used=used, cap=self.cap)

    async def mark_read(self, booking_id: uuid.UUID, actor: Actor) -> BookingMessageRead:
        """Record that ``actor`` has seen the thread up to now."""
        booking = await self._get_booking(booking_id)
        await self._sender_type(booking, actor)

        read = await self._read_mark(booking_id, actor.user_id)

        now = utcnow()
        if read is not None:
            read.last_read_at = now
            await self.db.commit()
            return read

        read = BookingMessageRead(booking_id=booking_id, user_id=actor.user_id, last_read_at=now)
        self.db.add(read)
        try:
            await self.db.commit()
            return read
        except IntegrityError:
            # a concurrent first read inserted the mark; move it forward instead
            await self.db.rollback()
            logger.debug("read_mark_insert_conflict", booking_id=str(booking_id))
            await self.db.execute(
                update(BookingMessageRead)
                .where(
                    BookingMessageRead.booking_id == booking_id,
                    BookingMessageRead.user_id == actor.user_id,
                )
                .values(last_read_at=now)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        return await self._read_mark(booking_id, actor.user_id, refresh=True)

    async def unread_counts(
        self,
        actor: Actor,
        booking_ids: list[uuid.UUID],
    ) -> dict[uuid.UUID, int]:
        """
        Messages from the other party newer than the actor's read mark, per
        booking. Bookings with nothing unread map to 0; bookings the actor is
        not a party to are left out.
        """
        if not booking_ids or actor.user_id is None:
            return {}

        visible = await self.db.execute(
            select(Booking.id)
            .join(Specialist, Specialist.id == Booking.specialist_id)
            .where(
                Booking.id.in_(booking_ids),
                or_(
                    Booking.employee_user_id == actor.user_id,
                    Specialist.user_id == actor.user_id,
                ),
            )
        )
        counts: dict[uuid.UUID, int] = {booking_id: 0 for booking_id in visible.scalars().all()}
        if not counts:
            return counts

        stmt = (
            select(BookingMessage.booking_id, func.count(BookingMessage.id))
            .outerjoin(
                BookingMessageRead,
                (BookingMessageRead.booking_id == BookingMessage.booking_id)
                & (BookingMessageRead.user_id == actor.user_id),
            )
            .where(
                BookingMessage.booking_id.in_(list(counts)),
                BookingMessage.sender_user_id != actor.user_id,
                (BookingMessageRead.last_read_at.is_(None))
                | (BookingMessage.created_at > BookingMessageRead.last_read_at),
            )
            .group_by(BookingMessage.booking_id)
        )
        for booking_id, count in (await self.db.execute(stmt)).all():
            counts[booking_id] = count
        return counts

    # --- internals ---

    async def _get_booking(self, booking_id: uuid.UUID) -> Booking:
        booking = await self.db.get(Booking, booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    async def _read_mark(
        self,
        booking_id: uuid.UUID,
        user_id: uuid.UUID,
        refresh: bool = False,
    ) -> BookingMessageRead | None:
        stmt = select(BookingMessageRead).where(
            BookingMessageRead.booking_id == booking_id,
            BookingMessageRead.user_id == user_id,
        )
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def _count(self, booking_id: uuid.UUID, sender_type: SenderType) -> int:
        count = await self.db.scalar(
            select(func.count(BookingMessage.id)).where(
                BookingMessage.booking_id == booking_id,
                BookingMessage.sender_type == sender_type.value,
            )
        )
        return count or 0

    async def _sender_type(self, booking: Booking, actor: Actor) -> SenderType:
        """Which side of the conversation the actor is on."""
        if actor.user_id is None:
            raise Unauthorized("Anonymous actors cannot message")

        if actor.role == ActorRole.EMPLOYEE and booking.employee_user_id == actor.user_id:
            return SenderType.EMPLOYEE

        if actor.role == ActorRole.SPECIALIST:
            specialist = await self.db.get(Specialist, booking.specialist_id)
            if specialist is None:
                raise SpecialistNotFound(booking.specialist_id)
            if specialist.user_id == actor.user_id:
                return SenderType.SPECIALIST

        raise Unauthorized("Not a party to this booking", booking_id=str(booking.id))
