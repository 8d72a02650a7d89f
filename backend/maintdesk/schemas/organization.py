from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class OrganizationOut(BaseModel):
    id: UUID
    name: str
    code: str
    plan_tier: str
    subscription_status: str
    trial_ends_at: Optional[datetime] = None
    sms_enabled: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class OrganizationUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=2, max_length=200)
    sms_enabled: Optional[bool] = None
