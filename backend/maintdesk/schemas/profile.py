from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from maintdesk.models.profile import Profile


class ProfileOut(BaseModel):
    id: UUID
    organization_id: UUID
    role: str
    email: EmailStr
    full_name: Optional[str] = None
    phone_e164: Optional[str] = None
    sms_notifications: bool
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class TenantOut(ProfileOut):
    # occupied unit, if any
    unit_id: Optional[UUID] = None


class StaffCreate(BaseModel):
    """Direct creation of a worker or manager account with a password."""

    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    full_name: Optional[str] = Field(default=None, max_length=200)
    phone_e164: Optional[str] = Field(default=None, max_length=20)

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: Optional[str]) -> Optional[str]:
        return Profile.normalize_full_name(v)

    @field_validator("phone_e164")
    @classmethod
    def validate_phone_e164(cls, v: Optional[str]) -> Optional[str]:
        return Profile.normalize_phone_e164(v)
