# maintdesk/core/roles.py

import enum


class ActorRole(str, enum.Enum):
    OWNER = "owner"      # created the organization; unrestricted inside it
    MANAGER = "manager"  # runs day-to-day operations
    WORKER = "worker"    # handles requests assigned to them
    TENANT = "tenant"    # occupies a unit and files requests


INVITABLE_ROLES = frozenset({ActorRole.MANAGER, ActorRole.WORKER, ActorRole.TENANT})
STAFF_ROLES = frozenset({ActorRole.OWNER, ActorRole.MANAGER})


def parse_role(value) -> ActorRole:
    """Raises ValueError for anything outside the closed role set."""
    if isinstance(value, ActorRole):
        return value
    return ActorRole((value or "").strip().lower())
