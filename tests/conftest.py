"""
Test configuration and fixtures.

Provides:
- In-memory SQLite (aiosqlite) with all tables created per test
- A recording notifier in place of the webhook
- A ready-made company / specialist / employee setup
- HTTPX AsyncClient against the app with get_db overridden
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

import hollyaid.models  # noqa: F401
from hollyaid.database import Base, build_engine, get_db
from hollyaid.models import (
    Booking,
    BookingStatus,
    Company,
    CompanyEmployee,
    Specialist,
    SubscriptionStatus,
)
from hollyaid.services.actors import Actor, ActorRole
from hollyaid.services.notifications import NotificationDispatcher
from hollyaid.services.tiers import RateTier, tier_info
from hollyaid.utils.timeutils import utcnow


class RecordingNotifier(NotificationDispatcher):
    """Keeps every dispatched event instead of POSTing it."""

    def __init__(self, fail: bool = False):
        super().__init__(webhook_url="")
        self.events: list[dict[str, Any]] = []
        self.fail = fail

    async def _send(self, event: dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("webhook down")
        self.events.append(event)

    def types(self) -> list[str]:
        return [e["event_type"] for e in self.events]


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


# =============================================================================
# Domain setup
# =============================================================================

@dataclass
class World:
    """One paying company, one employee in it, one specialist."""
    company: Company
    specialist: Specialist
    employee: Actor
    specialist_actor: Actor
    admin: Actor


async def create_company(
    session: AsyncSession,
    *,
    minutes_included: int = 1500,
    minutes_used: int = 0,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    email_domain: str | None = None,
) -> Company:
    company = Company(
        name=f"Acme {uuid.uuid4().hex[:6]}",
        email_domain=email_domain,
        admin_user_id=uuid.uuid4(),
        subscription_status=status.value,
        plan_type="growth",
        minutes_included=minutes_included,
        minutes_used=minutes_used,
        subscription_period_end=utcnow() + timedelta(days=30),
    )
    session.add(company)
    await session.commit()
    return company


async def create_specialist(
    session: AsyncSession,
    tier: RateTier | None = RateTier.STANDARD,
    *,
    is_active: bool = True,
) -> Specialist:
    specialist = Specialist(
        user_id=uuid.uuid4(),
        full_name="Dr. Test",
        email="dr.test@example.com",
        rate_tier=tier.value if tier else None,
        hourly_rate=tier_info(tier).hourly_rate,
        is_active=is_active,
    )
    session.add(specialist)
    await session.commit()
    return specialist


async def create_employee(session: AsyncSession, company: Company, email: str = "jane@acme.test") -> Actor:
    user_id = uuid.uuid4()
    session.add(CompanyEmployee(
        company_id=company.id,
        user_id=user_id,
        email=email,
        status="accepted",
        accepted_at=utcnow(),
    ))
    await session.commit()
    return Actor(user_id=user_id, role=ActorRole.EMPLOYEE, email=email)


async def create_booking(
    session: AsyncSession,
    world: World,
    *,
    status: BookingStatus = BookingStatus.PENDING,
    proposed: datetime | None = None,
    duration: int = 60,
    created_at: datetime | None = None,
) -> Booking:
    """Insert a booking directly, bypassing request-time validation."""
    booking = Booking(
        specialist_id=world.specialist.id,
        employee_user_id=world.employee.user_id,
        company_id=world.company.id,
        status=status.value,
        proposed_datetime=proposed or utcnow() + timedelta(days=2),
        session_duration=duration,
    )
    if status == BookingStatus.APPROVED:
        booking.confirmed_datetime = booking.proposed_datetime
        booking.meeting_link = "hollyaid-test-room"
    if created_at is not None:
        booking.created_at = created_at
    session.add(booking)
    await session.commit()
    return booking


async def build_world(session: AsyncSession, tier: RateTier | None = RateTier.STANDARD, **company_kw) -> World:
    company = await create_company(session, **company_kw)
    specialist = await create_specialist(session, tier)
    employee = await create_employee(session, company)
    return World(
        company=company,
        specialist=specialist,
        employee=employee,
        specialist_actor=Actor(user_id=specialist.user_id, role=ActorRole.SPECIALIST),
        admin=Actor(user_id=uuid.uuid4(), role=ActorRole.ADMIN, email="ops@hollyaid.com"),
    )


@pytest.fixture
async def world(session) -> World:
    return await build_world(session)


# =============================================================================
# HTTP
# =============================================================================

@pytest.fixture
async def client(session_factory, notifier) -> AsyncGenerator[AsyncClient, None]:
    from hollyaid.deps import get_notifier
    from hollyaid.main import app

    async def override_get_db():
        async with session_factory() as s:
            try:
                yield s
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def headers_for(actor: Actor) -> dict[str, str]:
    headers = {"X-User-Id": str(actor.user_id), "X-User-Role": actor.role.value}
    if actor.email:
        headers["X-User-Email"] = actor.email
    return headers
