"""
Specialist model - a wellness practitioner employees can book.
"""
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Numeric, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from hollyaid.database import Base
from hollyaid.utils.timeutils import utcnow


class Specialist(Base):
    __tablename__ = "specialists"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, unique=True, nullable=True
    )  # account the specialist signs in with
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    specialty: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rate_tier: Mapped[str | None] = mapped_column(
        String(20), nullable=True
    )  # standard | advanced | expert | master, NULL reads as standard
    hourly_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(8, 2), nullable=True
    )  # derived from tier unless overridden
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<Specialist(id={self.id}, name={self.full_name}, tier={self.rate_tier})>"


class SpecialistInvite(Base):
    """
    Invite - admin creates it, the specialist redeems the token once to register.
    """
    __tablename__ = "specialist_invites"

    token: Mapped[str] = mapped_column(String(32), primary_key=True)  # short random token
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    rate_tier: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)  # admin user id
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )  # NULL = not yet used
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
