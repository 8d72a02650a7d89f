from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class NotificationOut(BaseModel):
    id: UUID
    type: str
    related_request_id: Optional[UUID] = None
    title: str
    message: str
    read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class UnreadCount(BaseModel):
    unread: int


class PreferencesOut(BaseModel):
    in_app_new_request: bool
    in_app_assignment: bool
    in_app_status_update: bool
    in_app_comment: bool
    in_app_emergency: bool

    email_new_request: bool
    email_assignment: bool
    email_status_update: bool
    email_comment: bool
    email_emergency: bool

    sms_new_request: bool
    sms_assignment: bool
    sms_status_update: bool
    sms_comment: bool
    sms_emergency: bool

    model_config = {"from_attributes": True}


class PreferencesUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    in_app_new_request: Optional[bool] = None
    in_app_assignment: Optional[bool] = None
    in_app_status_update: Optional[bool] = None
    in_app_comment: Optional[bool] = None
    in_app_emergency: Optional[bool] = None

    email_new_request: Optional[bool] = None
    email_assignment: Optional[bool] = None
    email_status_update: Optional[bool] = None
    email_comment: Optional[bool] = None
    email_emergency: Optional[bool] = None

    sms_new_request: Optional[bool] = None
    sms_assignment: Optional[bool] = None
    sms_status_update: Optional[bool] = None
    sms_comment: Optional[bool] = None
    sms_emergency: Optional[bool] = None
