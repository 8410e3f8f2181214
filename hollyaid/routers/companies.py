"""
REST API for companies, their employees, plans and minutes usage.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from hollyaid.database import get_db
from hollyaid.deps import get_actor, get_payments
from hollyaid.models.company import Company, CompanyEmployee
from hollyaid.services import companies as company_service
from hollyaid.services.actors import Actor, ActorRole
from hollyaid.services.ledger import CompanyLedger
from hollyaid.services.subscriptions import PLANS, PaymentAuthority, SubscriptionService
from hollyaid.services.usage import weekly_breakdown
from hollyaid.utils.timeutils import ensure_utc

router = APIRouter(prefix="/v1", tags=["companies"])


# ── Schemas ─────────────────────────────────────────────────────────────────

class CompanyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email_domain: Optional[str] = None


class CompanyOut(BaseModel):
    id: uuid.UUID
    name: str
    email_domain: Optional[str]
    subscription_status: str
    plan_type: Optional[str]
    minutes_included: int
    minutes_used: int
    subscription_period_end: Optional[datetime]
    is_test_account: bool

    @classmethod
    def from_model(cls, c: Company) -> "CompanyOut":
        return cls(
            id=c.id,
            name=c.name,
            email_domain=c.email_domain,
            subscription_status=c.subscription_status,
            plan_type=c.plan_type,
            minutes_included=c.minutes_included,
            minutes_used=c.minutes_used,
            subscription_period_end=ensure_utc(c.subscription_period_end),
            is_test_account=c.is_test_account,
        )


class EmployeeCreate(BaseModel):
    email: str


class EmployeeOut(BaseModel):
    id: uuid.UUID
    email: str
    status: str
    user_id: Optional[uuid.UUID]
    invited_at: datetime
    accepted_at: Optional[datetime]

    @classmethod
    def from_model(cls, e: CompanyEmployee) -> "EmployeeOut":
        return cls(
            id=e.id,
            email=e.email,
            status=e.status,
            user_id=e.user_id,
            invited_at=ensure_utc(e.invited_at),
            accepted_at=ensure_utc(e.accepted_at),
        )


class BalanceOut(BaseModel):
    company_id: uuid.UUID
    plan_type: Optional[str]
    subscription_status: str
    minutes_included: int
    minutes_used: int
    minutes_remaining: int
    usage_ratio: float
    low_minutes: bool
    subscription_period_end: Optional[datetime]


class WeekOut(BaseModel):
    week_start: datetime
    minutes: int
    sessions: int


class LedgerEntryOut(BaseModel):
    id: uuid.UUID
    booking_id: uuid.UUID
    minutes: int
    tier: str
    multiplier: Decimal
    session_minutes: int
    created_at: datetime


class LedgerPage(BaseModel):
    entries: list[LedgerEntryOut]
    total: int


class PlanOut(BaseModel):
    key: str
    name: str
    minutes: int
    monthly_price: Decimal


class PlanSelect(BaseModel):
    plan: str


class PlanSelectionOut(BaseModel):
    company: CompanyOut
    plan: PlanOut
    activated: bool
    checkout_url: Optional[str]


# ── Access ──────────────────────────────────────────────────────────────────

async def _company_for_admin(db: AsyncSession, company_id: uuid.UUID, actor: Actor) -> Company:
    """Company admins manage their own company; platform admins manage all."""
    company = await CompanyLedger(db).get_company(company_id)
    if actor.role != ActorRole.ADMIN and company.admin_user_id != actor.user_id:
        raise HTTPException(403, detail="Not an administrator of this company")
    return company


# ── Endpoints ───────────────────────────────────────────────────────────────

@router.get("/plans", response_model=list[PlanOut])
async def list_plans():
    return [PlanOut(key=p.key, name=p.name, minutes=p.minutes, monthly_price=p.monthly_price)
            for p in PLANS.values()]


@router.post("/companies", response_model=CompanyOut, status_code=201)
async def register_company(
    body: CompanyCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    company = await company_service.register_company(
        db, body.name, admin_user_id=actor.user_id, email_domain=body.email_domain
    )
    await db.commit()
    return CompanyOut.from_model(company)


@router.get("/companies/{company_id}", response_model=CompanyOut)
async def get_company(
    company_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return CompanyOut.from_model(await _company_for_admin(db, company_id, actor))


@router.post("/companies/{company_id}/employees", response_model=EmployeeOut, status_code=201)
async def add_employee(
    company_id: uuid.UUID,
    body: EmployeeCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    await _company_for_admin(db, company_id, actor)
    employee = await company_service.add_employee(db, company_id, body.email)
    await db.commit()
    return EmployeeOut.from_model(employee)


@router.get("/companies/{company_id}/employees", response_model=list[EmployeeOut])
async def list_employees(
    company_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    await _company_for_admin(db, company_id, actor)
    return [EmployeeOut.from_model(e) for e in await company_service.list_employees(db, company_id)]


@router.post("/employees/accept", response_model=list[EmployeeOut])
async def accept_invites(
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Signed-in employee claims the invites sent to their email."""
    if not actor.email:
        raise HTTPException(422, detail="X-User-Email header is required")
    accepted = await company_service.accept_employee_invite(db, actor.user_id, actor.email)
    await db.commit()
    return [EmployeeOut.from_model(e) for e in accepted]


@router.get("/companies/{company_id}/balance", response_model=BalanceOut)
async def get_balance(
    company_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    await _company_for_admin(db, company_id, actor)
    return BalanceOut(**await CompanyLedger(db).get_balance(company_id))


@router.get("/companies/{company_id}/usage/weekly", response_model=list[WeekOut])
async def get_weekly_usage(
    company_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    await _company_for_admin(db, company_id, actor)
    return [WeekOut(**week) for week in await weekly_breakdown(db, company_id)]


@router.get("/companies/{company_id}/ledger", response_model=LedgerPage)
async def get_ledger(
    company_id: uuid.UUID,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    await _company_for_admin(db, company_id, actor)
    entries, total = await CompanyLedger(db).list_entries(company_id, limit=limit, offset=offset)
    return LedgerPage(
        entries=[
            LedgerEntryOut(
                id=e.id,
                booking_id=e.booking_id,
                minutes=e.minutes,
                tier=e.tier,
                multiplier=e.multiplier,
                session_minutes=e.session_minutes,
                created_at=ensure_utc(e.created_at),
            )
            for e in entries
        ],
        total=total,
    )


@router.post("/companies/{company_id}/plan", response_model=PlanSelectionOut)
async def select_plan(
    company_id: uuid.UUID,
    body: PlanSelect,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    payments: PaymentAuthority = Depends(get_payments),
):
    await _company_for_admin(db, company_id, actor)
    if not actor.email:
        raise HTTPException(422, detail="X-User-Email header is required")

    selection = await SubscriptionService(db, payments).select_plan(company_id, body.plan, actor.email)
    await db.commit()

    plan = selection.plan
    return PlanSelectionOut(
        company=CompanyOut.from_model(selection.company),
        plan=PlanOut(key=plan.key, name=plan.name, minutes=plan.minutes, monthly_price=plan.monthly_price),
        activated=selection.activated,
        checkout_url=selection.checkout_url,
    )
