# backend/maintdesk/models/profile.py
import re
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from maintdesk.core.clock import utcnow
from maintdesk.core.roles import ActorRole
from maintdesk.db.base import Base

_E164_RE = re.compile(r"^\+[1-9]\d{1,14}$")


class Profile(Base):
    """
    An actor: one person with exactly one role in exactly one organization.
    """

    __tablename__ = "profiles"
    __table_args__ = (
        Index("ix_profiles_org_role_active", "organization_id", "role", "is_active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )

    # owner | manager | worker | tenant
    role: Mapped[str] = mapped_column(String(20), nullable=False)

    # Login identity (global)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True, nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    full_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    phone_e164: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Master switch for SMS, on top of per-event preferences
    sms_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Soft delete = removed from the organization
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )

    @property
    def actor_role(self) -> ActorRole:
        return ActorRole(self.role)

    @staticmethod
    def normalize_email(value: str) -> str:
        return (value or "").strip().lower()

    @staticmethod
    def normalize_full_name(value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        v = " ".join(value.strip().split())
        return v or None

    @staticmethod
    def normalize_phone_e164(value: Optional[str]) -> Optional[str]:
        """
        Keep '+' and digits only. Bare 10-digit numbers are treated as
        North American and get a +1 prefix.
        """
        if value is None:
            return None
        v = value.strip()
        if not v:
            return None
        v = re.sub(r"[^\d+]", "", v)
        if not v.startswith("+"):
            if len(v) == 10:
                v = "+1" + v
            else:
                v = "+" + v
        if not _E164_RE.match(v):
            raise ValueError("phone must be a valid E.164 number (e.g., +15551234567).")
        return v
