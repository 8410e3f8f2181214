"""
REST API for platform admins: activity log and payout processing.
"""
import uuid
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from hollyaid.database import get_db
from hollyaid.deps import get_notifier, require_admin
from hollyaid.models.activity import AdminActivityLog
from hollyaid.models.payout import PayoutStatus
from hollyaid.routers.specialists import PayoutOut
from hollyaid.services import payouts as payout_service
from hollyaid.services.activity import AdminAction, list_admin_actions, record_admin_action
from hollyaid.services.actors import Actor
from hollyaid.services.notifications import NotificationDispatcher, NotificationEvent
from hollyaid.utils.timeutils import ensure_utc

router = APIRouter(prefix="/v1/admin", tags=["admin"])


# ── Schemas ─────────────────────────────────────────────────────────────────

class ActivityOut(BaseModel):
    id: uuid.UUID
    admin_user_id: uuid.UUID
    admin_email: Optional[str]
    action_type: str
    target_type: str
    target_id: Optional[str]
    target_name: Optional[str]
    details: Optional[dict[str, Any]]
    created_at: datetime

    @classmethod
    def from_model(cls, a: AdminActivityLog) -> "ActivityOut":
        return cls(
            id=a.id,
            admin_user_id=a.admin_user_id,
            admin_email=a.admin_email,
            action_type=a.action_type,
            target_type=a.target_type,
            target_id=a.target_id,
            target_name=a.target_name,
            details=a.details,
            created_at=ensure_utc(a.created_at),
        )


class PayoutDecision(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)


# ── Activity ────────────────────────────────────────────────────────────────

@router.get("/activity", response_model=list[ActivityOut])
async def get_activity(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    action_type: Optional[AdminAction] = None,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    entries = await list_admin_actions(db, limit=limit, offset=offset, action_type=action_type)
    return [ActivityOut.from_model(e) for e in entries]


# ── Payouts ─────────────────────────────────────────────────────────────────

@router.get("/payouts", response_model=list[PayoutOut])
async def get_payouts(
    status: Optional[PayoutStatus] = None,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    payouts = await payout_service.list_payout_requests(db, status=status)
    return [PayoutOut.from_model(p) for p in payouts]


async def _decide(
    payout_id: uuid.UUID,
    approve: bool,
    body: PayoutDecision,
    admin: Actor,
    db: AsyncSession,
    notifier: NotificationDispatcher,
) -> PayoutOut:
    payout = await payout_service.process_payout(
        db, payout_id, admin_user_id=admin.user_id, approve=approve, notes=body.notes
    )
    await record_admin_action(
        db,
        admin,
        AdminAction.APPROVE_PAYOUT if approve else AdminAction.REJECT_PAYOUT,
        "payout",
        target_id=payout.id,
        details={
            "specialist_id": str(payout.specialist_id),
            "amount": str(payout.amount),
            "notes": body.notes,
        },
    )
    await db.commit()
    await notifier.dispatch(
        NotificationEvent.PAYOUT_PROCESSED,
        {
            "payout_id": str(payout.id),
            "specialist_id": str(payout.specialist_id),
            "status": payout.status,
            "amount": str(payout.amount),
        },
    )
    return PayoutOut.from_model(payout)


@router.post("/payouts/{payout_id}/approve", response_model=PayoutOut)
async def approve_payout(
    payout_id: uuid.UUID,
    body: PayoutDecision = PayoutDecision(),
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    """Mark the request paid."""
    return await _decide(payout_id, True, body, admin, db, notifier)


@router.post("/payouts/{payout_id}/reject", response_model=PayoutOut)
async def reject_payout(
    payout_id: uuid.UUID,
    body: PayoutDecision = PayoutDecision(),
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    return await _decide(payout_id, False, body, admin, db, notifier)
