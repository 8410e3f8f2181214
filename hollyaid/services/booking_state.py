"""State machine for booking lifecycle."""

from enum import Enum
from typing import Any

from hollyaid.exceptions import InvalidTransition
from hollyaid.models.booking import BookingStatus


class BookingEvent(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"
    CANCEL = "cancel"
    COMPLETE = "complete"
    RESCHEDULE = "reschedule"
    EXPIRE = "expire"


# (from status, event) -> to status
TRANSITIONS: dict[tuple[BookingStatus, BookingEvent], BookingStatus] = {
    (BookingStatus.PENDING, BookingEvent.ACCEPT): BookingStatus.APPROVED,
    (BookingStatus.PENDING, BookingEvent.DECLINE): BookingStatus.DECLINED,
    (BookingStatus.PENDING, BookingEvent.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.PENDING, BookingEvent.RESCHEDULE): BookingStatus.PENDING,
    (BookingStatus.PENDING, BookingEvent.EXPIRE): BookingStatus.CANCELLED,
    (BookingStatus.APPROVED, BookingEvent.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.APPROVED, BookingEvent.COMPLETE): BookingStatus.COMPLETED,
}

TERMINAL_STATUSES = frozenset({
    BookingStatus.DECLINED,
    BookingStatus.CANCELLED,
    BookingStatus.COMPLETED,
})


def allowed_events(status: str | BookingStatus) -> list[BookingEvent]:
    status = BookingStatus(status)
    return [event for (source, event) in TRANSITIONS if source == status]


def can_transition(status: str | BookingStatus, event: BookingEvent) -> bool:
    return (BookingStatus(status), event) in TRANSITIONS


def next_status(
    status: str | BookingStatus,
    event: BookingEvent,
    booking_id: Any = None,
) -> BookingStatus:
    """
    Resolve the target status for ``event``.

    Raises InvalidTransition for any pair not in TRANSITIONS; nothing is
    mutated here, callers apply the result as a conditional update.
    """
    target = TRANSITIONS.get((BookingStatus(status), event))
    if target is None:
        raise InvalidTransition(booking_id, BookingStatus(status).value, event.value)
    return target
