import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from maintdesk.core.clock import utcnow
from maintdesk.db.base import Base


class ActivityLog(Base):
    """Audit trail row, written in the same transaction as the change it records."""

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_org_created_at", "organization_id", "created_at"),
        Index("ix_activity_logs_request_id", "request_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
    request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("maintenance_requests.id", ondelete="CASCADE"), nullable=True
    )

    action: Mapped[str] = mapped_column(String(60), nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
