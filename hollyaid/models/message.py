"""
Booking conversation - messages between the employee and the specialist.
"""
import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from hollyaid.database import Base
from hollyaid.utils.timeutils import utcnow


class SenderType(str, Enum):
    EMPLOYEE = "employee"
    SPECIALIST = "specialist"


class BookingMessage(Base):
    __tablename__ = "booking_messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False
    )
    sender_user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    sender_type: Mapped[str] = mapped_column(String(20), nullable=False)  # employee | specialist
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        # Cap check counts by (booking, sender_type); thread reads order by time.
        Index("idx_booking_messages_booking_sender", "booking_id", "sender_type"),
        Index("idx_booking_messages_booking_time", "booking_id", "created_at"),
    )


class BookingMessageRead(Base):
    """Last time a user opened a booking's conversation."""
    __tablename__ = "booking_message_reads"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    last_read_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("booking_id", "user_id", name="uq_booking_message_reads_booking_user"),
    )
