"""
Domain events and the publisher seam between services and NotificationFanout.

Services publish only after their transaction commits.
"""
from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol


class EventType(str, enum.Enum):
    REQUEST_CREATED = "request.created"
    REQUEST_ASSIGNED = "request.assigned"
    REQUEST_UNASSIGNED = "request.unassigned"
    REQUEST_STATUS_CHANGED = "request.status_changed"
    REQUEST_COMMENT_ADDED = "request.comment_added"
    REQUEST_PRIORITY_EMERGENCY = "request.priority_emergency"
    INVITATION_ISSUED = "invitation.issued"
    INVITATION_ACCEPTED = "invitation.accepted"


@dataclass(frozen=True)
class DomainEvent:
    type: EventType
    organization_id: uuid.UUID
    actor_id: Optional[uuid.UUID]
    request_id: Optional[uuid.UUID] = None
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    payload: dict[str, Any] = field(default_factory=dict)


class EventPublisher(Protocol):
    def publish(self, event: DomainEvent) -> None: ...

