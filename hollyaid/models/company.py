"""
Company model - a subscribing employer and its wellness-minutes balance.
"""
import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from hollyaid.database import Base
from hollyaid.utils.timeutils import utcnow


class SubscriptionStatus(str, Enum):
    UNPAID = "unpaid"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email_domain: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True
    )  # employees on this domain auto-join
    admin_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    subscription_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubscriptionStatus.UNPAID.value
    )
    plan_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    minutes_included: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    minutes_used: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )  # only ever incremented by completed bookings within a period
    subscription_period_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_test_account: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    @property
    def minutes_remaining(self) -> int:
        return self.minutes_included - self.minutes_used

    @property
    def usage_ratio(self) -> float:
        if self.minutes_included <= 0:
            return 0.0
        return self.minutes_used / self.minutes_included

    def __repr__(self) -> str:
        return f"<Company(id={self.id}, name={self.name}, minutes_used={self.minutes_used})>"


class CompanyEmployee(Base):
    __tablename__ = "company_employees"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)  # NULL until invite accepted
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="invited"
    )  # invited | accepted
    invited_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("company_id", "email", name="uq_company_employees_company_email"),
        Index("idx_company_employees_user", "user_id"),
    )
