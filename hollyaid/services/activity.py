"""
Admin activity log.

Every admin mutation is recorded in the same transaction as the change it
describes, so a rolled-back change leaves no log entry. db.commit() is the
caller's responsibility.
"""
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hollyaid.logging_config import get_logger
from hollyaid.models.activity import AdminActivityLog
from hollyaid.services.actors import Actor

logger = get_logger(__name__)


class AdminAction(str, Enum):
    ADD_SPECIALIST = "add_specialist"
    CHANGE_TIER = "change_tier"
    ACTIVATE_SPECIALIST = "activate_specialist"
    DEACTIVATE_SPECIALIST = "deactivate_specialist"
    DELETE_SPECIALIST = "delete_specialist"
    INVITE_SPECIALIST = "invite_specialist"
    APPROVE_PAYOUT = "approve_payout"
    REJECT_PAYOUT = "reject_payout"


# Actions other admins are notified about
CRITICAL_ACTIONS = frozenset({AdminAction.DELETE_SPECIALIST, AdminAction.DEACTIVATE_SPECIALIST})


async def record_admin_action(
    db: AsyncSession,
    admin: Actor,
    action: AdminAction,
    target_type: str,
    target_id: Any = None,
    target_name: str | None = None,
    details: dict[str, Any] | None = None,
) -> AdminActivityLog:
    entry = AdminActivityLog(
        admin_user_id=admin.user_id,
        admin_email=admin.email,
        action_type=action.value,
        target_type=target_type,
        target_id=str(target_id) if target_id is not None else None,
        target_name=target_name,
        details=details,
    )
    db.add(entry)
    await db.flush()
    logger.info(
        "admin_action_recorded",
        action=action.value,
        target_type=target_type,
        target_id=entry.target_id,
        admin_user_id=str(admin.user_id),
    )
    return entry


async def list_admin_actions(
    db: AsyncSession,
    limit: int = 50,
    offset: int = 0,
    action_type: AdminAction | None = None,
) -> list[AdminActivityLog]:
    """Newest first."""
    stmt = (
        select(AdminActivityLog)
        .order_by(AdminActivityLog.created_at.desc(), AdminActivityLog.id)
        .limit(limit)
        .offset(offset)
    )
    if action_type is not None:
        stmt = stmt.where(AdminActivityLog.action_type == action_type.value)
    return list((await db.execute(stmt)).scalars().all())


def critical_action_payload(entry: AdminActivityLog) -> dict[str, Any]:
    return {
        "action_type": entry.action_type,
        "target_type": entry.target_type,
        "target_id": entry.target_id,
        "target_name": entry.target_name,
        "admin_user_id": str(entry.admin_user_id),
        "admin_email": entry.admin_email,
    }


def is_critical(action: AdminAction) -> bool:
    return action in CRITICAL_ACTIONS
