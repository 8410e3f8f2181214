"""
REST API for specialists: directory, admin management, invites, earnings, payouts.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from hollyaid.database import get_db
from hollyaid.deps import get_actor, get_notifier, require_admin
from hollyaid.models.activity import AdminActivityLog
from hollyaid.models.payout import PayoutRequest
from hollyaid.models.specialist import Specialist
from hollyaid.services import payouts as payout_service
from hollyaid.services import specialists as specialist_service
from hollyaid.services.activity import AdminAction, critical_action_payload, is_critical, record_admin_action
from hollyaid.services.actors import Actor, ActorRole
from hollyaid.services.notifications import NotificationDispatcher, NotificationEvent
from hollyaid.services.tiers import TIER_CATALOG, RateTier
from hollyaid.services.usage import specialist_earnings
from hollyaid.utils.timeutils import ensure_utc

router = APIRouter(prefix="/v1", tags=["specialists"])


# ── Schemas ─────────────────────────────────────────────────────────────────

class SpecialistCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = None
    specialty: Optional[str] = None
    rate_tier: RateTier = RateTier.STANDARD


class SpecialistOut(BaseModel):
    id: uuid.UUID
    user_id: Optional[uuid.UUID]
    full_name: str
    email: Optional[str]
    specialty: Optional[str]
    rate_tier: Optional[str]
    hourly_rate: Optional[Decimal]
    is_active: bool

    @classmethod
    def from_model(cls, s: Specialist) -> "SpecialistOut":
        return cls(
            id=s.id,
            user_id=s.user_id,
            full_name=s.full_name,
            email=s.email,
            specialty=s.specialty,
            rate_tier=s.rate_tier,
            hourly_rate=s.hourly_rate,
            is_active=s.is_active,
        )


class TierUpdate(BaseModel):
    rate_tier: RateTier
    hourly_rate: Optional[Decimal] = None  # overrides the tier's default rate


class ActiveUpdate(BaseModel):
    is_active: bool


class InviteCreate(BaseModel):
    email: str
    rate_tier: RateTier = RateTier.STANDARD
    ttl_hours: Optional[int] = Field(None, ge=1, le=24 * 14)


class InviteOut(BaseModel):
    token: str
    email: str
    rate_tier: Optional[str]
    expires_at: datetime


class InviteRedeem(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    specialty: Optional[str] = None


class TierOut(BaseModel):
    tier: str
    name: str
    hourly_rate: Decimal
    platform_fee: Decimal
    specialist_payout: Decimal
    multiplier: Decimal


class PayoutOut(BaseModel):
    id: uuid.UUID
    specialist_id: uuid.UUID
    amount: Decimal
    session_minutes: int
    period_start: datetime
    period_end: datetime
    status: str
    notes: Optional[str]
    created_at: datetime
    processed_at: Optional[datetime]

    @classmethod
    def from_model(cls, p: PayoutRequest) -> "PayoutOut":
        return cls(
            id=p.id,
            specialist_id=p.specialist_id,
            amount=p.amount,
            session_minutes=p.session_minutes,
            period_start=ensure_utc(p.period_start),
            period_end=ensure_utc(p.period_end),
            status=p.status,
            notes=p.notes,
            created_at=ensure_utc(p.created_at),
            processed_at=ensure_utc(p.processed_at),
        )


async def _notify_if_critical(notifier: NotificationDispatcher, entry: AdminActivityLog) -> None:
    if is_critical(AdminAction(entry.action_type)):
        await notifier.dispatch(NotificationEvent.ADMIN_CRITICAL_ACTION, critical_action_payload(entry))


# ── Directory ───────────────────────────────────────────────────────────────

@router.get("/tiers", response_model=list[TierOut])
async def list_tiers():
    return [
        TierOut(
            tier=t.tier.value,
            name=t.name,
            hourly_rate=t.hourly_rate,
            platform_fee=t.platform_fee,
            specialist_payout=t.specialist_payout,
            multiplier=t.multiplier,
        )
        for t in TIER_CATALOG.values()
    ]


@router.get("/specialists", response_model=list[SpecialistOut])
async def list_specialists(
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Admins see everyone; others see active specialists only."""
    specialists = await specialist_service.list_specialists(
        db, active_only=actor.role != ActorRole.ADMIN
    )
    return [SpecialistOut.from_model(s) for s in specialists]


@router.get("/specialists/{specialist_id}/earnings")
async def get_earnings(
    specialist_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    specialist = await specialist_service.get_specialist(db, specialist_id)
    if actor.role != ActorRole.ADMIN and specialist.user_id != actor.user_id:
        raise HTTPException(403, detail="Earnings are visible to the specialist only")
    return await specialist_earnings(db, specialist_id)


# ── Payouts ─────────────────────────────────────────────────────────────────

@router.post("/specialists/{specialist_id}/payouts", response_model=PayoutOut, status_code=201)
async def request_payout(
    specialist_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    """Request payment for this month's completed sessions."""
    specialist = await specialist_service.get_specialist(db, specialist_id)
    if specialist.user_id != actor.user_id:
        raise HTTPException(403, detail="Only the specialist can request a payout")

    payout = await payout_service.request_payout(db, specialist_id)
    await db.commit()
    await notifier.dispatch(
        NotificationEvent.PAYOUT_REQUESTED,
        {
            "payout_id": str(payout.id),
            "specialist_id": str(specialist_id),
            "specialist_name": specialist.full_name,
            "amount": str(payout.amount),
            "period_start": ensure_utc(payout.period_start).isoformat(),
        },
    )
    return PayoutOut.from_model(payout)


@router.get("/specialists/{specialist_id}/payouts", response_model=list[PayoutOut])
async def list_payouts(
    specialist_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    specialist = await specialist_service.get_specialist(db, specialist_id)
    if actor.role != ActorRole.ADMIN and specialist.user_id != actor.user_id:
        raise HTTPException(403, detail="Payouts are visible to the specialist only")
    payouts = await payout_service.list_payout_requests(db, specialist_id=specialist_id)
    return [PayoutOut.from_model(p) for p in payouts]


# ── Admin ───────────────────────────────────────────────────────────────────

@router.post("/specialists", response_model=SpecialistOut, status_code=201)
async def create_specialist(
    body: SpecialistCreate,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    specialist = await specialist_service.create_specialist(
        db, body.full_name, email=body.email, specialty=body.specialty, rate_tier=body.rate_tier
    )
    await record_admin_action(
        db, admin, AdminAction.ADD_SPECIALIST, "specialist",
        target_id=specialist.id, target_name=specialist.full_name,
        details={"rate_tier": specialist.rate_tier},
    )
    await db.commit()
    return SpecialistOut.from_model(specialist)


@router.put("/specialists/{specialist_id}/tier", response_model=SpecialistOut)
async def update_tier(
    specialist_id: uuid.UUID,
    body: TierUpdate,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    previous = (await specialist_service.get_specialist(db, specialist_id)).rate_tier
    specialist = await specialist_service.set_tier(db, specialist_id, body.rate_tier, body.hourly_rate)
    await record_admin_action(
        db, admin, AdminAction.CHANGE_TIER, "specialist",
        target_id=specialist.id, target_name=specialist.full_name,
        details={
            "from": previous,
            "to": specialist.rate_tier,
            "hourly_rate": str(specialist.hourly_rate),
        },
    )
    await db.commit()
    return SpecialistOut.from_model(specialist)


@router.put("/specialists/{specialist_id}/active", response_model=SpecialistOut)
async def update_active(
    specialist_id: uuid.UUID,
    body: ActiveUpdate,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    specialist = await specialist_service.set_active(db, specialist_id, body.is_active)
    action = AdminAction.ACTIVATE_SPECIALIST if body.is_active else AdminAction.DEACTIVATE_SPECIALIST
    entry = await record_admin_action(
        db, admin, action, "specialist", target_id=specialist.id, target_name=specialist.full_name
    )
    await db.commit()
    await _notify_if_critical(notifier, entry)
    return SpecialistOut.from_model(specialist)


@router.delete("/specialists/{specialist_id}", status_code=204)
async def delete_specialist(
    specialist_id: uuid.UUID,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    name = (await specialist_service.get_specialist(db, specialist_id)).full_name
    await specialist_service.delete_specialist(db, specialist_id)
    entry = await record_admin_action(
        db, admin, AdminAction.DELETE_SPECIALIST, "specialist", target_id=specialist_id, target_name=name
    )
    await db.commit()
    await _notify_if_critical(notifier, entry)


# ── Invites ─────────────────────────────────────────────────────────────────

@router.post("/specialist-invites", response_model=InviteOut, status_code=201)
async def issue_invite(
    body: InviteCreate,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    invite = await specialist_service.issue_invite(
        db, body.email, created_by=admin.user_id, rate_tier=body.rate_tier, ttl_hours=body.ttl_hours
    )
    await record_admin_action(
        db, admin, AdminAction.INVITE_SPECIALIST, "invite",
        target_name=invite.email,
        details={"rate_tier": invite.rate_tier},
    )
    await db.commit()
    await notifier.dispatch(
        NotificationEvent.SPECIALIST_INVITED,
        {"email": invite.email, "token": invite.token, "expires_at": ensure_utc(invite.expires_at).isoformat()},
    )
    return InviteOut(
        token=invite.token,
        email=invite.email,
        rate_tier=invite.rate_tier,
        expires_at=ensure_utc(invite.expires_at),
    )


@router.post("/specialist-invites/{token}/redeem", response_model=SpecialistOut, status_code=201)
async def redeem_invite(
    token: str,
    body: InviteRedeem,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    specialist = await specialist_service.redeem_invite(
        db, token, user_id=actor.user_id, full_name=body.full_name, specialty=body.specialty
    )
    await db.commit()
    return SpecialistOut.from_model(specialist)
