"""
Booking Service - the only entry point for booking mutations.

Each method validates the actor, resolves the target status through the state
machine, then applies it as a conditional UPDATE that matches only while the
row still holds the expected prior status. Two racing accepts or completions
therefore resolve to one winner; the loser gets InvalidTransition.

Notifications go out after the commit and never affect the result.
"""
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hollyaid.config import settings
from hollyaid.exceptions import (
    BookingNotFound,
    CompanyNotFound,
    HollyAidError,
    InvalidTransition,
    PersistenceUnavailable,
    SpecialistNotFound,
    SubscriptionInactive,
    Unauthorized,
    ValidationFailed,
)
from hollyaid.logging_config import get_logger
from hollyaid.models.booking import Booking, BookingStatus, SessionType
from hollyaid.models.company import SubscriptionStatus
from hollyaid.models.specialist import Specialist
from hollyaid.services.actors import Actor, ActorRole
from hollyaid.services.booking_state import BookingEvent, next_status
from hollyaid.services.ledger import CompanyLedger, LedgerUpdate
from hollyaid.services.meetings import MeetingRoomProvisioner
from hollyaid.services.notifications import NotificationDispatcher, NotificationEvent
from hollyaid.services.tiers import minutes_to_deduct, normalize_tier, tier_info
from hollyaid.utils.timeutils import ensure_utc, utcnow

logger = get_logger(__name__)

ALLOWED_SESSION_DURATIONS = (30, 60)
MAX_COMPLETED_SESSION_MINUTES = 240


@dataclass(frozen=True)
class CompletionResult:
    booking: Booking
    ledger: LedgerUpdate


class BookingService:
    """Manages the booking lifecycle and its minutes accounting."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: NotificationDispatcher,
        meetings: MeetingRoomProvisioner | None = None,
        *,
        low_minutes_threshold: float | None = None,
        pending_expiry_days: int | None = None,
    ):
        self.db = db
        self.notifier = notifier
        self.meetings = meetings or MeetingRoomProvisioner()
        self.ledger = CompanyLedger(db)
        self.low_minutes_threshold = (
            settings.LOW_MINUTES_THRESHOLD if low_minutes_threshold is None else low_minutes_threshold
        )
        self.pending_expiry_days = (
            settings.PENDING_EXPIRY_DAYS if pending_expiry_days is None else pending_expiry_days
        )

    # === Reads ===

    async def get_booking(self, booking_id: uuid.UUID) -> Booking:
        result = await self.db.execute(select(Booking).where(Booking.id == booking_id))
        booking = result.scalar_one_or_none()
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    async def get_booking_for(self, booking_id: uuid.UUID, actor: Actor) -> Booking:
        """Fetch a booking the actor is a party to."""
        booking = await self.get_booking(booking_id)
        if actor.role == ActorRole.ADMIN:
            return booking
        specialist = await self._get_specialist(booking.specialist_id)
        if not (self._is_employee(booking, actor) or self._is_specialist(specialist, actor)):
            raise Unauthorized("Not a party to this booking", booking_id=str(booking_id))
        return booking

    async def list_bookings(
        self,
        actor: Actor,
        status: BookingStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Booking]:
        """Bookings visible to the actor, newest first."""
        stmt = select(Booking)
        if actor.role == ActorRole.EMPLOYEE:
            stmt = stmt.where(Booking.employee_user_id == actor.user_id)
        elif actor.role == ActorRole.SPECIALIST:
            stmt = stmt.join(Specialist, Specialist.id == Booking.specialist_id).where(
                Specialist.user_id == actor.user_id
            )
        elif actor.role != ActorRole.ADMIN:
            raise Unauthorized("Actor cannot list bookings")

        if status is not None:
            stmt = stmt.where(Booking.status == status.value)

        stmt = stmt.order_by(Booking.created_at.desc()).limit(limit).offset(offset)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # === Mutations ===

    async def request_booking(
        self,
        actor: Actor,
        *,
        specialist_id: uuid.UUID,
        proposed_datetime: datetime,
        session_duration: int | None = None,
        session_type: SessionType = SessionType.FIRST_SESSION,
        notes: str | None = None,
    ) -> Booking:
        """
        Create a pending booking for the employee.

        Raises:
            Unauthorized: if the actor is not an employee
            SpecialistNotFound / CompanyNotFound
            ValidationFailed: inactive specialist, bad duration or a past time
            SubscriptionInactive: if the employee's company is not paying
        """
        if actor.role != ActorRole.EMPLOYEE or actor.user_id is None:
            raise Unauthorized("Only employees can request bookings")

        duration = settings.DEFAULT_SESSION_MINUTES if session_duration is None else session_duration
        if duration not in ALLOWED_SESSION_DURATIONS:
            raise ValidationFailed(
                f"Session duration must be one of {ALLOWED_SESSION_DURATIONS}",
                details={"session_duration": duration},
            )

        proposed = ensure_utc(proposed_datetime)
        if proposed <= utcnow():
            raise ValidationFailed("Proposed time must be in the future")

        specialist = await self._get_specialist(specialist_id)
        if not specialist.is_active:
            raise ValidationFailed(
                "Specialist is not accepting bookings",
                details={"specialist_id": str(specialist_id)},
            )

        company = await self.ledger.resolve_company_for_employee(actor.user_id, actor.email)
        if company is None:
            raise CompanyNotFound(actor.email or actor.user_id)
        if company.subscription_status != SubscriptionStatus.ACTIVE.value:
            raise SubscriptionInactive(company.id, company.subscription_status)

        booking = Booking(
            specialist_id=specialist.id,
            employee_user_id=actor.user_id,
            company_id=company.id,
            status=BookingStatus.PENDING.value,
            proposed_datetime=proposed,
            session_duration=duration,
            session_type=session_type.value,
            notes=(notes or "").strip() or None,
        )
        async with self._unit_of_work():
            self.db.add(booking)

        logger.info(
            "booking_requested",
            booking_id=str(booking.id),
            specialist_id=str(specialist.id),
            company_id=str(company.id),
            session_duration=duration,
        )
        await self._notify(NotificationEvent.BOOKING_REQUESTED, booking, recipient="specialist")
        return booking

    async def accept(self, booking_id: uuid.UUID, actor: Actor) -> Booking:
        """Specialist approves: confirm the proposed time and open a meeting room."""
        booking = await self.get_booking(booking_id)
        specialist = await self._get_specialist(booking.specialist_id)
        self._require_specialist(booking, specialist, actor)
        next_status(booking.status, BookingEvent.ACCEPT, booking.id)

        meeting_link = await self.meetings.provision(booking)
        async with self._unit_of_work():
            await self._apply_transition(
                booking,
                BookingEvent.ACCEPT,
                confirmed_datetime=booking.proposed_datetime,
                meeting_link=meeting_link,
            )
        await self.db.refresh(booking)

        logger.info("booking_accepted", booking_id=str(booking.id), meeting_link=meeting_link)
        await self._notify(NotificationEvent.BOOKING_ACCEPTED, booking, recipient="employee")
        return booking

    async def decline(self, booking_id: uuid.UUID, actor: Actor) -> Booking:
        booking = await self.get_booking(booking_id)
        specialist = await self._get_specialist(booking.specialist_id)
        self._require_specialist(booking, specialist, actor)

        async with self._unit_of_work():
            await self._apply_transition(booking, BookingEvent.DECLINE)
        await self.db.refresh(booking)

        logger.info("booking_declined", booking_id=str(booking.id))
        await self._notify(NotificationEvent.BOOKING_DECLINED, booking, recipient="employee")
        return booking

    async def cancel(self, booking_id: uuid.UUID, actor: Actor, reason: str | None = None) -> Booking:
        """Either party cancels a pending or approved booking."""
        booking = await self.get_booking(booking_id)
        specialist = await self._get_specialist(booking.specialist_id)

        if self._is_employee(booking, actor):
            cancelled_by = ActorRole.EMPLOYEE
        elif self._is_specialist(specialist, actor):
            cancelled_by = ActorRole.SPECIALIST
        else:
            raise Unauthorized("Only the booking's employee or specialist can cancel it",
                               booking_id=str(booking_id))

        was_approved = booking.status == BookingStatus.APPROVED.value
        async with self._unit_of_work():
            await self._apply_transition(
                booking,
                BookingEvent.CANCEL,
                cancelled_by=cancelled_by.value,
                cancellation_reason=(reason or "").strip() or None,
            )
        await self.db.refresh(booking)

        logger.info(
            "booking_cancelled",
            booking_id=str(booking.id),
            cancelled_by=cancelled_by.value,
            was_approved=was_approved,
        )
        if was_approved:
            counterpart = "specialist" if cancelled_by == ActorRole.EMPLOYEE else "employee"
            await self._notify(NotificationEvent.BOOKING_CANCELLED, booking, recipient=counterpart)
        return booking

    async def reschedule(
        self,
        booking_id: uuid.UUID,
        actor: Actor,
        proposed_datetime: datetime,
    ) -> Booking:
        """Employee proposes a new time for a booking that is still pending."""
        booking = await self.get_booking(booking_id)
        if not self._is_employee(booking, actor):
            raise Unauthorized("Only the booking's employee can reschedule it",
                               booking_id=str(booking_id))

        proposed = ensure_utc(proposed_datetime)
        if proposed <= utcnow():
            raise ValidationFailed("Proposed time must be in the future")

        async with self._unit_of_work():
            await self._apply_transition(booking, BookingEvent.RESCHEDULE, proposed_datetime=proposed)
        await self.db.refresh(booking)

        logger.info("booking_rescheduled", booking_id=str(booking.id), proposed=proposed.isoformat())
        await self._notify(NotificationEvent.BOOKING_RESCHEDULED, booking, recipient="specialist")
        return booking

    async def complete(
        self,
        booking_id: uuid.UUID,
        actor: Actor,
        session_minutes: int | None = None,
    ) -> CompletionResult:
        """
        Mark an approved booking completed and charge the company.

        The status flip and the ledger increment share one transaction: if
        either fails both are rolled back and the booking stays approved.

        Raises:
            InvalidTransition: booking not approved (including a repeat call)
            Unauthorized: actor is not the booking's specialist or employee
            CompanyNotFound / LedgerWriteFailed / PersistenceUnavailable
        """
        booking = await self.get_booking(booking_id)
        specialist = await self._get_specialist(booking.specialist_id)
        if not (self._is_specialist(specialist, actor) or self._is_employee(booking, actor)):
            raise Unauthorized("Only the booking's specialist or employee can complete it",
                               booking_id=str(booking_id))
        next_status(booking.status, BookingEvent.COMPLETE, booking.id)

        duration = booking.session_duration if session_minutes is None else session_minutes
        if duration <= 0 or duration > MAX_COMPLETED_SESSION_MINUTES:
            raise ValidationFailed(
                f"Session minutes must be between 1 and {MAX_COMPLETED_SESSION_MINUTES}",
                details={"session_minutes": duration},
            )
        if booking.company_id is None:
            raise CompanyNotFound(f"booking {booking.id}")

        tier = normalize_tier(specialist.rate_tier)
        info = tier_info(tier)
        minutes = minutes_to_deduct(duration, tier)

        async with self._unit_of_work():
            await self._apply_transition(
                booking,
                BookingEvent.COMPLETE,
                session_duration=duration,
                completed_at=utcnow(),
                completed_tier=tier.value,
                minute_multiplier=info.multiplier,
                minutes_deducted=minutes,
            )
            ledger_update = await self.ledger.apply_completion(
                booking.company_id,
                minutes,
                booking_id=booking.id,
                tier=tier.value,
                multiplier=info.multiplier,
                session_minutes=duration,
            )
        await self.db.refresh(booking)

        logger.info(
            "booking_completed",
            booking_id=str(booking.id),
            tier=tier.value,
            multiplier=str(info.multiplier),
            session_minutes=duration,
            minutes_deducted=minutes,
        )
        await self._notify(
            NotificationEvent.BOOKING_COMPLETED,
            booking,
            recipient="employee",
            minutes_deducted=minutes,
            tier=tier.value,
        )
        if ledger_update.crossed_threshold(self.low_minutes_threshold):
            await self.notifier.dispatch(
                NotificationEvent.COMPANY_LOW_MINUTES,
                {
                    "company_id": str(ledger_update.company_id),
                    "company_name": ledger_update.company_name,
                    "admin_user_id": str(ledger_update.admin_user_id) if ledger_update.admin_user_id else None,
                    "minutes_used": ledger_update.minutes_used,
                    "minutes_included": ledger_update.minutes_included,
                    "usage_percentage": round(ledger_update.usage_ratio * 100, 1),
                },
            )
        return CompletionResult(booking=booking, ledger=ledger_update)

    async def expire_stale_pending(self, now: datetime | None = None) -> list[Booking]:
        """
        Cancel pending bookings nobody answered: the proposed time has passed,
        or the request is older than PENDING_EXPIRY_DAYS.
        """
        now = ensure_utc(now) if now is not None else utcnow()
        cutoff = now - timedelta(days=self.pending_expiry_days)

        result = await self.db.execute(
            select(Booking.id).where(
                Booking.status == BookingStatus.PENDING.value,
                or_(Booking.proposed_datetime < now, Booking.created_at < cutoff),
            )
        )
        stale_ids = list(result.scalars().all())

        expired: list[Booking] = []
        for booking_id in stale_ids:
            booking = await self.get_booking(booking_id)
            try:
                async with self._unit_of_work():
                    await self._apply_transition(
                        booking,
                        BookingEvent.EXPIRE,
                        cancelled_by=ActorRole.SYSTEM.value,
                        cancellation_reason="expired",
                    )
            except InvalidTransition:
                # answered between the scan and the update
                logger.info("booking_expiry_skipped", booking_id=str(booking_id))
                continue
            await self.db.refresh(booking)
            # notify now: a later rollback in this loop would expire the instance
            await self._notify(NotificationEvent.BOOKING_EXPIRED, booking, recipient="employee")
            expired.append(booking)

        logger.info("pending_bookings_expired", count=len(expired), scanned=len(stale_ids))
        return expired

    # === Internals ===

    @asynccontextmanager
    async def _unit_of_work(self):
        """Commit on success; roll back and surface typed errors on failure."""
        try:
            yield
            await self.db.commit()
        except HollyAidError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("booking_write_failed", error=str(e), error_type=type(e).__name__)
            raise PersistenceUnavailable("Booking change could not be saved", e) from e

    async def _apply_transition(self, booking: Booking, event: BookingEvent, **values: Any) -> None:
        """
        Conditional status update: WHERE id = :id AND status = :expected.
        A zero rowcount means someone else moved the booking first.
        """
        expected = booking.status
        target = next_status(expected, event, booking.id)

        result = await self.db.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.status == expected)
            .values(status=target.value, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = await self.db.scalar(select(Booking.status).where(Booking.id == booking.id))
            logger.warning(
                "booking_transition_conflict",
                booking_id=str(booking.id),
                expected=expected,
                current=current,
                attempted_event=event.value,
            )
            raise InvalidTransition(booking.id, current or expected, event.value)

    async def _get_specialist(self, specialist_id: uuid.UUID) -> Specialist:
        specialist = await self.db.get(Specialist, specialist_id)
        if specialist is None:
            raise SpecialistNotFound(specialist_id)
        return specialist

    @staticmethod
    def _is_employee(booking: Booking, actor: Actor) -> bool:
        return (
            actor.role == ActorRole.EMPLOYEE
            and actor.user_id is not None
            and booking.employee_user_id == actor.user_id
        )

    @staticmethod
    def _is_specialist(specialist: Specialist, actor: Actor) -> bool:
        return (
            actor.role == ActorRole.SPECIALIST
            and actor.user_id is not None
            and specialist.user_id == actor.user_id
        )

    def _require_specialist(self, booking: Booking, specialist: Specialist, actor: Actor) -> None:
        if not self._is_specialist(specialist, actor):
            raise Unauthorized("Booking is addressed to a different specialist",
                               booking_id=str(booking.id))

    async def _notify(
        self,
        event_type: NotificationEvent,
        booking: Booking,
        recipient: str,
        **extra: Any,
    ) -> None:
        payload = {
            "booking_id": str(booking.id),
            "status": booking.status,
            "recipient": recipient,
            "specialist_id": str(booking.specialist_id),
            "employee_user_id": str(booking.employee_user_id),
            "proposed_datetime": ensure_utc(booking.proposed_datetime).isoformat(),
            "confirmed_datetime": (
                ensure_utc(booking.confirmed_datetime).isoformat() if booking.confirmed_datetime else None
            ),
            "meeting_link": booking.meeting_link,
            "session_duration": booking.session_duration,
            **extra,
        }
        await self.notifier.dispatch(event_type, payload)
