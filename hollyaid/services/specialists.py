"""
Specialist administration and one-time registration invites.

db.commit() is the caller's responsibility.
"""
import secrets
import uuid
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hollyaid.config import settings
from hollyaid.exceptions import InvalidInvite, SpecialistNotFound, ValidationFailed
from hollyaid.logging_config import get_logger
from hollyaid.models.booking import Booking
from hollyaid.models.specialist import Specialist, SpecialistInvite
from hollyaid.services.tiers import RateTier, normalize_tier, tier_info
from hollyaid.utils.timeutils import ensure_utc, utcnow

logger = get_logger(__name__)


def _parse_tier(tier: str | RateTier | None) -> RateTier:
    """Strict variant of normalize_tier for admin input."""
    if tier is None or isinstance(tier, RateTier):
        return normalize_tier(tier)
    try:
        return RateTier(tier.strip().lower())
    except ValueError:
        raise ValidationFailed(f"Unknown rate tier: {tier}", details={"rate_tier": tier})


async def get_specialist(db: AsyncSession, specialist_id: uuid.UUID) -> Specialist:
    specialist = await db.get(Specialist, specialist_id)
    if specialist is None:
        raise SpecialistNotFound(specialist_id)
    return specialist


async def create_specialist(
    db: AsyncSession,
    full_name: str,
    *,
    email: str | None = None,
    specialty: str | None = None,
    rate_tier: str | RateTier | None = None,
    user_id: uuid.UUID | None = None,
) -> Specialist:
    full_name = (full_name or "").strip()
    if not full_name:
        raise ValidationFailed("Specialist name must not be empty")

    tier = _parse_tier(rate_tier)
    specialist = Specialist(
        user_id=user_id,
        full_name=full_name,
        email=(email or "").strip().lower() or None,
        specialty=specialty,
        rate_tier=tier.value,
        hourly_rate=tier_info(tier).hourly_rate,
        is_active=True,
    )
    db.add(specialist)
    await db.flush()
    logger.info("specialist_created", specialist_id=str(specialist.id), rate_tier=tier.value)
    return specialist


async def set_tier(
    db: AsyncSession,
    specialist_id: uuid.UUID,
    rate_tier: str | RateTier,
    hourly_rate: Decimal | None = None,
) -> Specialist:
    """Change tier; hourly rate follows the tier unless given explicitly."""
    specialist = await get_specialist(db, specialist_id)
    tier = _parse_tier(rate_tier)
    specialist.rate_tier = tier.value
    specialist.hourly_rate = hourly_rate if hourly_rate is not None else tier_info(tier).hourly_rate
    await db.flush()
    logger.info(
        "specialist_tier_changed",
        specialist_id=str(specialist.id),
        rate_tier=tier.value,
        hourly_rate=str(specialist.hourly_rate),
    )
    return specialist


async def set_active(db: AsyncSession, specialist_id: uuid.UUID, is_active: bool) -> Specialist:
    specialist = await get_specialist(db, specialist_id)
    specialist.is_active = is_active
    await db.flush()
    logger.info("specialist_active_changed", specialist_id=str(specialist.id), is_active=is_active)
    return specialist


async def delete_specialist(db: AsyncSession, specialist_id: uuid.UUID) -> None:
    """Hard delete. Refused while any booking references the specialist."""
    specialist = await get_specialist(db, specialist_id)
    booking_count = await db.scalar(
        select(func.count(Booking.id)).where(Booking.specialist_id == specialist_id)
    )
    if booking_count:
        raise ValidationFailed(
            "Specialist has bookings; deactivate instead",
            details={"specialist_id": str(specialist_id), "bookings": booking_count},
        )
    await db.delete(specialist)
    await db.flush()
    logger.info("specialist_deleted", specialist_id=str(specialist_id))


async def list_specialists(db: AsyncSession, active_only: bool = False) -> list[Specialist]:
    stmt = select(Specialist).order_by(Specialist.full_name)
    if active_only:
        stmt = stmt.where(Specialist.is_active.is_(True))
    return list((await db.execute(stmt)).scalars().all())


async def get_specialist_by_user(db: AsyncSession, user_id: uuid.UUID) -> Specialist:
    specialist = (await db.execute(
        select(Specialist).where(Specialist.user_id == user_id)
    )).scalar_one_or_none()
    if specialist is None:
        raise SpecialistNotFound(user_id)
    return specialist


# --- invites ---

async def issue_invite(
    db: AsyncSession,
    email: str,
    created_by: uuid.UUID,
    rate_tier: str | RateTier | None = None,
    ttl_hours: int | None = None,
) -> SpecialistInvite:
    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValidationFailed("Invalid email address", details={"email": email})

    if ttl_hours is None:
        ttl_hours = settings.INVITE_TTL_HOURS
    if ttl_hours <= 0:
        raise ValidationFailed("Invite lifetime must be positive", details={"ttl_hours": ttl_hours})

    tier = _parse_tier(rate_tier)
    invite = SpecialistInvite(
        token=secrets.token_urlsafe(16),
        email=email,
        rate_tier=tier.value,
        created_by=created_by,
        expires_at=utcnow() + timedelta(hours=ttl_hours),
    )
    db.add(invite)
    await db.flush()
    logger.info("specialist_invite_issued", email=email, rate_tier=tier.value)
    return invite


async def redeem_invite(
    db: AsyncSession,
    token: str,
    user_id: uuid.UUID,
    full_name: str,
    specialty: str | None = None,
) -> Specialist:
    """
    Create the specialist described by the invite and burn the token.

    Raises InvalidInvite if the token is unknown, already used or expired.
    """
    invite = (await db.execute(
        select(SpecialistInvite).where(SpecialistInvite.token == token).with_for_update()
    )).scalar_one_or_none()
    if invite is None:
        raise InvalidInvite("Invite not found")
    if invite.used_at is not None:
        raise InvalidInvite("Invite already used")
    if ensure_utc(invite.expires_at) < utcnow():
        raise InvalidInvite("Invite expired")

    existing = await db.scalar(select(Specialist.id).where(Specialist.user_id == user_id))
    if existing is not None:
        raise ValidationFailed("User is already registered as a specialist")

    specialist = await create_specialist(
        db,
        full_name,
        email=invite.email,
        specialty=specialty,
        rate_tier=invite.rate_tier,
        user_id=user_id,
    )
    invite.used_at = utcnow()
    await db.flush()
    logger.info("specialist_invite_redeemed", specialist_id=str(specialist.id))
    return specialist
