"""
Notification dispatcher - fire-and-forget outbound events.

Every event is POSTed as {event_id, event_type, occurred_at, payload} to the
configured webhook (the email/WhatsApp functions sit behind it). Consumers
de-duplicate on event_id. When no webhook is configured events are only logged.

dispatch() never raises: a failed notification must not undo the booking
change that triggered it.
"""
import uuid
from enum import Enum
from typing import Any

import httpx

from hollyaid.config import settings
from hollyaid.exceptions import NotificationFailed
from hollyaid.logging_config import get_logger
from hollyaid.utils.timeutils import utcnow

logger = get_logger(__name__)


class NotificationEvent(str, Enum):
    BOOKING_REQUESTED = "booking.requested"
    BOOKING_ACCEPTED = "booking.accepted"
    BOOKING_DECLINED = "booking.declined"
    BOOKING_CANCELLED = "booking.cancelled"
    BOOKING_RESCHEDULED = "booking.rescheduled"
    BOOKING_EXPIRED = "booking.expired"
    BOOKING_COMPLETED = "booking.completed"
    MESSAGE_CREATED = "message.created"
    COMPANY_LOW_MINUTES = "company.low_minutes"
    SPECIALIST_INVITED = "specialist.invited"
    PAYOUT_REQUESTED = "payout.requested"
    PAYOUT_PROCESSED = "payout.processed"
    ADMIN_CRITICAL_ACTION = "admin.critical_action"


class NotificationDispatcher:
    """Sends events to the notification webhook."""

    def __init__(
        self,
        webhook_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.webhook_url = settings.NOTIFY_WEBHOOK_URL if webhook_url is None else webhook_url
        self.timeout = settings.NOTIFY_TIMEOUT_SECONDS if timeout is None else timeout
        self._client = client

    async def dispatch(self, event_type: NotificationEvent, payload: dict[str, Any]) -> bool:
        """
        Send one event. Returns False (and logs) on any failure.
        """
        event = {
            "event_id": str(uuid.uuid4()),
            "event_type": event_type.value,
            "occurred_at": utcnow().isoformat(),
            "payload": payload,
        }
        try:
            await self._send(event)
        except Exception as e:
            logger.warning(
                "notification_failed",
                event_id=event["event_id"],
                event_type=event_type.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        logger.info(
            "notification_dispatched",
            event_id=event["event_id"],
            event_type=event_type.value,
        )
        return True

    async def _send(self, event: dict[str, Any]) -> None:
        if not self.webhook_url:
            logger.debug("notification_webhook_unset", event_type=event["event_type"])
            return

        if self._client is not None:
            response = await self._client.post(self.webhook_url, json=event, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=event)

        if response.status_code >= 400:
            raise NotificationFailed(
                f"Notification webhook returned {response.status_code}",
                details={"event_id": event["event_id"], "status_code": response.status_code},
            )


notifier = NotificationDispatcher()
