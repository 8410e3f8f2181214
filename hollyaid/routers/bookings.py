"""
REST API for bookings and their conversations.

POST /v1/bookings                         - employee requests a session
GET  /v1/bookings                         - bookings visible to the caller
GET  /v1/bookings/{id}                    - single booking
POST /v1/bookings/{id}/accept|decline     - specialist answers
POST /v1/bookings/{id}/cancel             - either party cancels
POST /v1/bookings/{id}/reschedule         - employee moves a pending request
POST /v1/bookings/{id}/complete           - session happened, minutes charged
GET|POST /v1/bookings/{id}/messages       - conversation thread
POST /v1/bookings/{id}/messages/read      - mark thread read
GET  /v1/messages/unread                  - unread counts per booking
"""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from hollyaid.database import get_db
from hollyaid.deps import get_actor, get_meetings, get_notifier
from hollyaid.models.booking import Booking, BookingStatus, SessionType
from hollyaid.models.message import BookingMessage
from hollyaid.services.actors import Actor
from hollyaid.services.bookings import BookingService
from hollyaid.services.meetings import MeetingRoomProvisioner
from hollyaid.services.messaging import MessagingService
from hollyaid.services.notifications import NotificationDispatcher
from hollyaid.utils.timeutils import ensure_utc

router = APIRouter(prefix="/v1", tags=["bookings"])


# ── Request / Response schemas ──────────────────────────────────────────────

class BookingRequest(BaseModel):
    specialist_id: uuid.UUID
    proposed_datetime: datetime
    session_duration: Optional[int] = None  # 30 | 60, defaults to 60
    session_type: SessionType = SessionType.FIRST_SESSION
    notes: Optional[str] = Field(None, max_length=2000)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class RescheduleRequest(BaseModel):
    proposed_datetime: datetime


class CompleteRequest(BaseModel):
    session_minutes: Optional[int] = None  # actual length when it differs from the booking


class BookingOut(BaseModel):
    id: uuid.UUID
    specialist_id: uuid.UUID
    employee_user_id: uuid.UUID
    company_id: Optional[uuid.UUID]
    status: str
    proposed_datetime: datetime
    confirmed_datetime: Optional[datetime]
    session_duration: int
    session_type: str
    notes: Optional[str]
    meeting_link: Optional[str]
    cancelled_by: Optional[str]
    cancellation_reason: Optional[str]
    completed_at: Optional[datetime]
    completed_tier: Optional[str]
    minute_multiplier: Optional[Decimal]
    minutes_deducted: Optional[int]
    created_at: datetime

    @classmethod
    def from_model(cls, b: Booking) -> "BookingOut":
        return cls(
            id=b.id,
            specialist_id=b.specialist_id,
            employee_user_id=b.employee_user_id,
            company_id=b.company_id,
            status=b.status,
            proposed_datetime=ensure_utc(b.proposed_datetime),
            confirmed_datetime=ensure_utc(b.confirmed_datetime),
            session_duration=b.session_duration,
            session_type=b.session_type,
            notes=b.notes,
            meeting_link=b.meeting_link,
            cancelled_by=b.cancelled_by,
            cancellation_reason=b.cancellation_reason,
            completed_at=ensure_utc(b.completed_at),
            completed_tier=b.completed_tier,
            minute_multiplier=b.minute_multiplier,
            minutes_deducted=b.minutes_deducted,
            created_at=ensure_utc(b.created_at),
        )


class CompletionOut(BaseModel):
    booking: BookingOut
    minutes_deducted: int
    company_minutes_used: int
    company_minutes_included: int


class MessageRequest(BaseModel):
    body: str = Field(..., min_length=1)


class MessageOut(BaseModel):
    id: uuid.UUID
    booking_id: uuid.UUID
    sender_user_id: uuid.UUID
    sender_type: str
    body: str
    created_at: datetime

    @classmethod
    def from_model(cls, m: BookingMessage) -> "MessageOut":
        return cls(
            id=m.id,
            booking_id=m.booking_id,
            sender_user_id=m.sender_user_id,
            sender_type=m.sender_type,
            body=m.body,
            created_at=ensure_utc(m.created_at),
        )


class ThreadOut(BaseModel):
    messages: list[MessageOut]
    sender_type: str
    used: int
    remaining: int
    cap: int


# ── Dependencies ────────────────────────────────────────────────────────────

def booking_service(
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
    meetings: MeetingRoomProvisioner = Depends(get_meetings),
) -> BookingService:
    return BookingService(db, notifier, meetings)


def messaging_service(
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> MessagingService:
    return MessagingService(db, notifier)


# ── Booking endpoints ───────────────────────────────────────────────────────

@router.post("/bookings", response_model=BookingOut, status_code=201)
async def request_booking(
    body: BookingRequest,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(booking_service),
):
    booking = await service.request_booking(
        actor,
        specialist_id=body.specialist_id,
        proposed_datetime=body.proposed_datetime,
        session_duration=body.session_duration,
        session_type=body.session_type,
        notes=body.notes,
    )
    return BookingOut.from_model(booking)


@router.get("/bookings", response_model=list[BookingOut])
async def list_bookings(
    status: Optional[BookingStatus] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(booking_service),
):
    bookings = await service.list_bookings(actor, status=status, limit=limit, offset=offset)
    return [BookingOut.from_model(b) for b in bookings]


@router.get("/bookings/{booking_id}", response_model=BookingOut)
async def get_booking(
    booking_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(booking_service),
):
    return BookingOut.from_model(await service.get_booking_for(booking_id, actor))


@router.post("/bookings/{booking_id}/accept", response_model=BookingOut)
async def accept_booking(
    booking_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(booking_service),
):
    return BookingOut.from_model(await service.accept(booking_id, actor))


@router.post("/bookings/{booking_id}/decline", response_model=BookingOut)
async def decline_booking(
    booking_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(booking_service),
):
    return BookingOut.from_model(await service.decline(booking_id, actor))


@router.post("/bookings/{booking_id}/cancel", response_model=BookingOut)
async def cancel_booking(
    booking_id: uuid.UUID,
    body: CancelRequest | None = None,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(booking_service),
):
    reason = body.reason if body else None
    return BookingOut.from_model(await service.cancel(booking_id, actor, reason=reason))


@router.post("/bookings/{booking_id}/reschedule", response_model=BookingOut)
async def reschedule_booking(
    booking_id: uuid.UUID,
    body: RescheduleRequest,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(booking_service),
):
    return BookingOut.from_model(await service.reschedule(booking_id, actor, body.proposed_datetime))


@router.post("/bookings/{booking_id}/complete", response_model=CompletionOut)
async def complete_booking(
    booking_id: uuid.UUID,
    body: CompleteRequest | None = None,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(booking_service),
):
    result = await service.complete(
        booking_id, actor, session_minutes=body.session_minutes if body else None
    )
    return CompletionOut(
        booking=BookingOut.from_model(result.booking),
        minutes_deducted=result.ledger.minutes_deducted,
        company_minutes_used=result.ledger.minutes_used,
        company_minutes_included=result.ledger.minutes_included,
    )


# ── Message endpoints ───────────────────────────────────────────────────────

@router.get("/bookings/{booking_id}/messages", response_model=ThreadOut)
async def list_messages(
    booking_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    service: MessagingService = Depends(messaging_service),
):
    messages = await service.list_messages(booking_id, actor)
    budget = await service.budget(booking_id, actor)
    return ThreadOut(
        messages=[MessageOut.from_model(m) for m in messages],
        sender_type=budget.sender_type.value,
        used=budget.used,
        remaining=budget.remaining,
        cap=budget.cap,
    )


@router.post("/bookings/{booking_id}/messages", response_model=MessageOut, status_code=201)
async def send_message(
    booking_id: uuid.UUID,
    body: MessageRequest,
    actor: Actor = Depends(get_actor),
    service: MessagingService = Depends(messaging_service),
):
    message = await service.send_message(booking_id, actor, body.body)
    return MessageOut.from_model(message)


@router.post("/bookings/{booking_id}/messages/read", status_code=204)
async def mark_read(
    booking_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    service: MessagingService = Depends(messaging_service),
):
    await service.mark_read(booking_id, actor)


@router.get("/messages/unread", response_model=dict[uuid.UUID, int])
async def unread_counts(
    booking_ids: list[uuid.UUID] = Query(..., alias="booking_id"),
    actor: Actor = Depends(get_actor),
    service: MessagingService = Depends(messaging_service),
):
    return await service.unread_counts(actor, booking_ids)
