"""
Internal endpoints for the scheduler and the payment webhook.
All require the X-Internal-Secret header.
"""
import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from hollyaid.database import get_db
from hollyaid.deps import get_meetings, get_notifier, require_internal
from hollyaid.services.bookings import BookingService
from hollyaid.services.meetings import MeetingRoomProvisioner
from hollyaid.services.notifications import NotificationDispatcher
from hollyaid.services.subscriptions import SubscriptionService

router = APIRouter(
    prefix="/internal",
    tags=["internal"],
    dependencies=[Depends(require_internal)],
)


class ExpireResult(BaseModel):
    expired: list[uuid.UUID]


class ActivateRequest(BaseModel):
    company_id: uuid.UUID
    plan: str
    period_end: Optional[datetime] = None


class RolloverRequest(BaseModel):
    company_id: uuid.UUID


@router.post("/bookings/expire", response_model=ExpireResult)
async def expire_pending(
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
    meetings: MeetingRoomProvisioner = Depends(get_meetings),
):
    expired = await BookingService(db, notifier, meetings).expire_stale_pending()
    return ExpireResult(expired=[b.id for b in expired])


@router.post("/subscriptions/activate")
async def activate_subscription(body: ActivateRequest, db: AsyncSession = Depends(get_db)):
    company = await SubscriptionService(db).activate_subscription(
        body.company_id, body.plan, period_end=body.period_end
    )
    await db.commit()
    return {"company_id": company.id, "subscription_status": company.subscription_status}


@router.post("/subscriptions/rollover")
async def roll_over(body: RolloverRequest, db: AsyncSession = Depends(get_db)):
    rolled = await SubscriptionService(db).roll_over_period(body.company_id)
    await db.commit()
    return {"company_id": body.company_id, "rolled_over": rolled}
