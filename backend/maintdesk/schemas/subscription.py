from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel


class ResourceUsage(BaseModel):
    current: int
    max: Optional[int] = None
    at_limit: bool
    percentage: float
    status: str  # green | yellow | red


class UsageSummaryOut(BaseModel):
    organization_id: UUID
    plan_tier: str
    effective_tier: str
    subscription_status: str
    trial_ends_at: Optional[datetime] = None
    next_tier: Optional[str] = None
    resources: Dict[str, ResourceUsage]


class CheckLimitRequest(BaseModel):
    resource_type: str


class CheckLimitResponse(BaseModel):
    allowed: bool
    resource_type: str
    current: int
    max: Optional[int] = None
    tier: str
