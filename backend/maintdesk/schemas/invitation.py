from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from maintdesk.schemas.profile import ProfileOut


class InvitationCreate(BaseModel):
    email: EmailStr
    role: str = Field(..., description="tenant, worker or manager")
    property_id: Optional[UUID] = None
    unit_id: Optional[UUID] = None


class InvitationOut(BaseModel):
    id: UUID
    organization_id: UUID
    email: EmailStr
    role: str
    property_id: Optional[UUID] = None
    unit_id: Optional[UUID] = None
    expires_at: datetime
    invited_by: Optional[UUID] = None
    accepted_at: Optional[datetime] = None
    accepted_by: Optional[UUID] = None
    revoked_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class InvitationIssued(InvitationOut):
    token: str
    invite_url: str


class InvitationPreview(BaseModel):
    email: EmailStr
    role: str
    organization_name: Optional[str] = None
    property_id: Optional[UUID] = None
    unit_id: Optional[UUID] = None
    expires_at: datetime


class AcceptInvitation(BaseModel):
    token: str = Field(..., min_length=1, description="Invitation token")
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    full_name: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=20)


class AcceptInvitationResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    profile: ProfileOut
