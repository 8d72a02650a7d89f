# backend/maintdesk/models/organization.py

import secrets
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from maintdesk.core.clock import utcnow
from maintdesk.db.base import Base

# No 0/O/1/I so codes survive being read aloud
_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ORGANIZATION_CODE_LENGTH = 8


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Human-shareable join code
    code: Mapped[str] = mapped_column(String(16), unique=True, index=True, nullable=False)

    # keep as strings; values come from PlanTier / SubscriptionStatus
    plan_tier: Mapped[str] = mapped_column(String(30), nullable=False, default="free")
    subscription_status: Mapped[str] = mapped_column(String(30), nullable=False, default="active")
    trial_ends_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Organization-level SMS capability
    sms_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )

    @staticmethod
    def generate_code() -> str:
        return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(ORGANIZATION_CODE_LENGTH))
