from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class PropertyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    address_line: Optional[str] = Field(default=None, max_length=300)
    city: Optional[str] = Field(default=None, max_length=120)
    state: Optional[str] = Field(default=None, max_length=120)
    postal_code: Optional[str] = Field(default=None, max_length=20)


class PropertyOut(BaseModel):
    id: UUID
    organization_id: UUID
    name: str
    address_line: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class UnitCreate(BaseModel):
    label: str = Field(min_length=1, max_length=50)


class UnitOut(BaseModel):
    id: UUID
    organization_id: UUID
    property_id: UUID
    label: str
    tenant_id: Optional[UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class UnitTenantUpdate(BaseModel):
    # null vacates the unit
    tenant_id: Optional[UUID] = None
