# backend/maintdesk/schemas/auth.py
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from maintdesk.models.profile import Profile
from maintdesk.schemas.profile import ProfileOut


class SignupRequest(BaseModel):
    organization_name: str = Field(min_length=2, max_length=200)
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


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    profile: ProfileOut


class ProfileUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Allow null to clear; empty strings normalize to None
    full_name: Optional[str] = Field(default=None, max_length=200)
    phone_e164: Optional[str] = Field(default=None, max_length=20)
    sms_notifications: Optional[bool] = None

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: Optional[str]) -> Optional[str]:
        return Profile.normalize_full_name(v)

    @field_validator("phone_e164")
    @classmethod
    def validate_phone_e164(cls, v: Optional[str]) -> Optional[str]:
        return Profile.normalize_phone_e164(v)
