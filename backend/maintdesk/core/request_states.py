# maintdesk/core/request_states.py
from __future__ import annotations

import enum


class RequestStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RequestPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EMERGENCY = "emergency"


TERMINAL_STATUSES = frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED})
ACTIVE_STATUSES = frozenset({RequestStatus.SUBMITTED, RequestStatus.ASSIGNED, RequestStatus.IN_PROGRESS})

# Statuses that require a non-null assigned_to (and only these).
ASSIGNED_STATUSES = frozenset({RequestStatus.ASSIGNED, RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED})

# Moves reachable through set_status(). Entering ASSIGNED happens through assign().
STATUS_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.SUBMITTED: frozenset({RequestStatus.CANCELLED}),
    RequestStatus.ASSIGNED: frozenset(
        {RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED, RequestStatus.CANCELLED}
    ),
    RequestStatus.IN_PROGRESS: frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED}),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}


def is_terminal(status: RequestStatus | str) -> bool:
    return RequestStatus(status) in TERMINAL_STATUSES


def can_transition(current: RequestStatus | str, target: RequestStatus | str) -> bool:
    return RequestStatus(target) in STATUS_TRANSITIONS[RequestStatus(current)]
