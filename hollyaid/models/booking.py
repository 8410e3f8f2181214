"""
Booking model - one session request between an employee and a specialist.

Status only moves along the transitions in services/booking_state.py.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from hollyaid.database import Base
from hollyaid.utils.timeutils import utcnow


class BookingStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class SessionType(str, Enum):
    FIRST_SESSION = "first_session"
    FOLLOW_UP = "follow_up"


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    specialist_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("specialists.id"), nullable=False
    )
    employee_user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    company_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("companies.id"), nullable=True
    )  # resolved from the employee when the booking is requested

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BookingStatus.PENDING.value
    )
    proposed_datetime: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    confirmed_datetime: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )  # set on approval
    session_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=60)  # minutes
    session_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SessionType.FIRST_SESSION.value
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    meeting_link: Mapped[str | None] = mapped_column(String(255), nullable=True)  # set on approval

    cancelled_by: Mapped[str | None] = mapped_column(
        String(20), nullable=True
    )  # employee | specialist | system
    cancellation_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Completion metadata (written in the same transaction as the ledger entry)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_tier: Mapped[str | None] = mapped_column(String(20), nullable=True)
    minute_multiplier: Mapped[Decimal | None] = mapped_column(Numeric(4, 2), nullable=True)
    minutes_deducted: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_bookings_specialist_status", "specialist_id", "status"),
        Index("idx_bookings_employee", "employee_user_id", "created_at"),
        Index("idx_bookings_company_completed", "company_id", "completed_at"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, status={self.status})>"

    @property
    def is_terminal(self) -> bool:
        return self.status in {
            BookingStatus.DECLINED.value,
            BookingStatus.CANCELLED.value,
            BookingStatus.COMPLETED.value,
        }
