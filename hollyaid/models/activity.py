"""
AdminActivityLog model - append-only record of what platform admins changed.
"""
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from hollyaid.database import Base
from hollyaid.utils.timeutils import utcnow


class AdminActivityLog(Base):
    __tablename__ = "admin_activity_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    admin_user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    admin_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    action_type: Mapped[str] = mapped_column(
        String(40), nullable=False
    )  # add_specialist | change_tier | deactivate_specialist | ...
    target_type: Mapped[str] = mapped_column(String(40), nullable=False)  # specialist | invite | payout
    target_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    target_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("idx_admin_activity_logs_created", "created_at"),
        Index("idx_admin_activity_logs_action", "action_type"),
    )

    def __repr__(self) -> str:
        return f"<AdminActivityLog(action={self.action_type}, target={self.target_type}:{self.target_id})>"
