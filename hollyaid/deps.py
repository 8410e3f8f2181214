"""
Request dependencies shared by the routers.

Authentication happens upstream; the gateway forwards the verified identity
as X-User-Id / X-User-Role / X-User-Email headers.
"""
import secrets
import uuid
from typing import Any

from fastapi import BackgroundTasks, Depends, Header, HTTPException

from hollyaid.config import settings
from hollyaid.logging_config import get_logger
from hollyaid.services.actors import Actor, ActorRole
from hollyaid.services.meetings import MeetingRoomProvisioner
from hollyaid.services.notifications import NotificationDispatcher, NotificationEvent, notifier
from hollyaid.services.subscriptions import PaymentAuthority

logger = get_logger(__name__)


async def get_actor(
    x_user_id: uuid.UUID = Header(...),
    x_user_role: ActorRole = Header(...),
    x_user_email: str | None = Header(None),
) -> Actor:
    if x_user_role == ActorRole.SYSTEM:
        raise HTTPException(403, detail="System role is reserved for internal jobs")
    return Actor(user_id=x_user_id, role=x_user_role, email=x_user_email)


async def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    if actor.role != ActorRole.ADMIN:
        raise HTTPException(403, detail="Admin role required")
    return actor


async def require_internal(x_internal_secret: str = Header("")) -> None:
    """Guards scheduler and payment-webhook endpoints."""
    if not settings.INTERNAL_SECRET or not secrets.compare_digest(
        x_internal_secret, settings.INTERNAL_SECRET
    ):
        raise HTTPException(403, detail="Invalid internal secret")


class DeferredDispatcher(NotificationDispatcher):
    """
    Queues events on the request's BackgroundTasks. They are sent after the
    response goes out, so webhook latency never adds to the request.
    """

    def __init__(self, dispatcher: NotificationDispatcher, background_tasks: BackgroundTasks):
        self.dispatcher = dispatcher
        self.background_tasks = background_tasks

    async def dispatch(self, event_type: NotificationEvent, payload: dict[str, Any]) -> bool:
        self.background_tasks.add_task(self.dispatcher.dispatch, event_type, payload)
        logger.debug("notification_deferred", event_type=event_type.value)
        return True


def get_notifier(background_tasks: BackgroundTasks) -> NotificationDispatcher:
    return DeferredDispatcher(notifier, background_tasks)


def get_meetings() -> MeetingRoomProvisioner:
    return MeetingRoomProvisioner()


def get_payments() -> PaymentAuthority:
    return PaymentAuthority()
