from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class RequestCreate(BaseModel):
    unit_id: UUID
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=10000)
    priority: str = Field(default="medium", description="low, medium, high or emergency")
    category: str = Field(default="general", max_length=50)


class RequestUpdate(BaseModel):
    """
    Partial update. `assigned_to` sent as null unassigns; omitted leaves the
    assignee alone. Assignment is applied before the status change.
    """

    model_config = ConfigDict(extra="forbid")

    assigned_to: Optional[UUID] = None
    status: Optional[str] = None
    resolution_notes: Optional[str] = Field(default=None, max_length=10000)

    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=10000)
    priority: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=50)


class RequestOut(BaseModel):
    id: UUID
    organization_id: UUID
    property_id: UUID
    unit_id: UUID
    tenant_id: UUID
    created_by: UUID
    assigned_to: Optional[UUID] = None
    status: str
    priority: str
    category: str
    title: str
    description: str
    completed_at: Optional[datetime] = None
    completed_by: Optional[UUID] = None
    resolution_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CommentCreate(BaseModel):
    text: str = Field(min_length=1, max_length=5000)
    is_internal: bool = False


class CommentOut(BaseModel):
    id: UUID
    request_id: UUID
    author_id: UUID
    text: str
    is_internal: bool
    created_at: datetime

    model_config = {"from_attributes": True}
