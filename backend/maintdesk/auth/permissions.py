"""
Organization-scoped authorization.

``authorize(actor, action, resource)`` is a pure decision function over a
closed ``(role, action)`` capability table. It never touches the database and
never raises for an expected denial; only malformed input raises
``AuthorizationInputError``.
"""
from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from typing import Mapping, Optional

from maintdesk.core.errors import ForbiddenError, NotFoundError
from maintdesk.core.roles import ActorRole


class Action(str, enum.Enum):
    # request.*
    REQUEST_CREATE = "request.create"
    REQUEST_READ = "request.read"
    REQUEST_UPDATE = "request.update"
    REQUEST_UPDATE_STATUS = "request.update_status"
    REQUEST_ASSIGN = "request.assign"
    REQUEST_SELF_ASSIGN = "request.self_assign"
    REQUEST_UNASSIGN = "request.unassign"

    # comment.*
    COMMENT_CREATE = "comment.create"
    COMMENT_CREATE_INTERNAL = "comment.create_internal"
    COMMENT_READ_INTERNAL = "comment.read_internal"

    # property.* / unit.*
    PROPERTY_READ = "property.read"
    PROPERTY_MANAGE = "property.manage"
    UNIT_MANAGE = "unit.manage"

    # people
    TENANT_READ = "tenant.read"
    TENANT_DELETE = "tenant.delete"
    WORKER_READ = "worker.read"
    WORKER_CREATE = "worker.create"
    WORKER_DELETE = "worker.delete"
    MANAGER_READ = "manager.read"
    MANAGER_CREATE = "manager.create"
    MANAGER_DELETE = "manager.delete"

    # invitation.*
    INVITATION_READ = "invitation.read"
    INVITATION_CREATE_TENANT = "invitation.create_tenant"
    INVITATION_CREATE_WORKER = "invitation.create_worker"
    INVITATION_CREATE_MANAGER = "invitation.create_manager"
    INVITATION_REVOKE = "invitation.revoke"

    # organization.*
    ORGANIZATION_READ = "organization.read"
    ORGANIZATION_MANAGE = "organization.manage"


class DenyReason(str, enum.Enum):
    ORG_MISMATCH = "org_mismatch"
    ROLE_INSUFFICIENT = "role_insufficient"
    NOT_OWNER_OF_RESOURCE = "not_owner_of_resource"


class Rule(str, enum.Enum):
    ALLOW = "allow"
    DENY = "deny"
    OWN_REQUEST = "own_request"  # resource.tenant_id == actor.id
    ASSIGNEE = "assignee"        # resource.assigned_to == actor.id
    UNASSIGNED = "unassigned"    # resource.assigned_to is None
    SELF = "self"                # resource.subject_id == actor.id


class AuthorizationInputError(ValueError):
    pass


@dataclass(frozen=True)
class ActorRef:
    id: uuid.UUID
    role: ActorRole
    organization_id: uuid.UUID


@dataclass(frozen=True)
class ResourceRef:
    organization_id: uuid.UUID
    # request subject, or the occupant when the resource is a unit
    tenant_id: Optional[uuid.UUID] = None
    assigned_to: Optional[uuid.UUID] = None
    # target actor for account actions
    subject_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


def _deny(reason: DenyReason) -> Decision:
    return Decision(False, reason)


_A = Action
_R = Rule

# Exhaustive table: every role lists every action (checked in tests).
CAPABILITIES: Mapping[ActorRole, Mapping[Action, Rule]] = {
    ActorRole.OWNER: {action: _R.ALLOW for action in Action},
    ActorRole.MANAGER: {
        **{action: _R.ALLOW for action in Action},
        _A.MANAGER_CREATE: _R.DENY,
        _A.MANAGER_DELETE: _R.DENY,
        _A.INVITATION_CREATE_MANAGER: _R.DENY,
        _A.ORGANIZATION_MANAGE: _R.DENY,
    },
    ActorRole.WORKER: {
        _A.REQUEST_CREATE: _R.DENY,
        _A.REQUEST_READ: _R.ASSIGNEE,
        _A.REQUEST_UPDATE: _R.ASSIGNEE,
        _A.REQUEST_UPDATE_STATUS: _R.ASSIGNEE,
        _A.REQUEST_ASSIGN: _R.DENY,
        _A.REQUEST_SELF_ASSIGN: _R.UNASSIGNED,
        _A.REQUEST_UNASSIGN: _R.DENY,
        _A.COMMENT_CREATE: _R.ASSIGNEE,
        _A.COMMENT_CREATE_INTERNAL: _R.ASSIGNEE,
        _A.COMMENT_READ_INTERNAL: _R.ASSIGNEE,
        _A.PROPERTY_READ: _R.ALLOW,
        _A.PROPERTY_MANAGE: _R.DENY,
        _A.UNIT_MANAGE: _R.DENY,
        _A.TENANT_READ: _R.DENY,
        _A.TENANT_DELETE: _R.DENY,
        _A.WORKER_READ: _R.SELF,
        _A.WORKER_CREATE: _R.DENY,
        _A.WORKER_DELETE: _R.DENY,
        _A.MANAGER_READ: _R.DENY,
        _A.MANAGER_CREATE: _R.DENY,
        _A.MANAGER_DELETE: _R.DENY,
        _A.INVITATION_READ: _R.DENY,
        _A.INVITATION_CREATE_TENANT: _R.DENY,
        _A.INVITATION_CREATE_WORKER: _R.DENY,
        _A.INVITATION_CREATE_MANAGER: _R.DENY,
        _A.INVITATION_REVOKE: _R.DENY,
        _A.ORGANIZATION_READ: _R.ALLOW,
        _A.ORGANIZATION_MANAGE: _R.DENY,
    },
    ActorRole.TENANT: {
        # resource.tenant_id is the unit's current occupant
        _A.REQUEST_CREATE: _R.OWN_REQUEST,
        _A.REQUEST_READ: _R.OWN_REQUEST,
        _A.REQUEST_UPDATE: _R.DENY,
        _A.REQUEST_UPDATE_STATUS: _R.DENY,
        _A.REQUEST_ASSIGN: _R.DENY,
        _A.REQUEST_SELF_ASSIGN: _R.DENY,
        _A.REQUEST_UNASSIGN: _R.DENY,
        _A.COMMENT_CREATE: _R.OWN_REQUEST,
        _A.COMMENT_CREATE_INTERNAL: _R.DENY,
        _A.COMMENT_READ_INTERNAL: _R.DENY,
        _A.PROPERTY_READ: _R.DENY,
        _A.PROPERTY_MANAGE: _R.DENY,
        _A.UNIT_MANAGE: _R.DENY,
        _A.TENANT_READ: _R.SELF,
        _A.TENANT_DELETE: _R.DENY,
        _A.WORKER_READ: _R.DENY,
        _A.WORKER_CREATE: _R.DENY,
        _A.WORKER_DELETE: _R.DENY,
        _A.MANAGER_READ: _R.DENY,
        _A.MANAGER_CREATE: _R.DENY,
        _A.MANAGER_DELETE: _R.DENY,
        _A.INVITATION_READ: _R.DENY,
        _A.INVITATION_CREATE_TENANT: _R.DENY,
        _A.INVITATION_CREATE_WORKER: _R.DENY,
        _A.INVITATION_CREATE_MANAGER: _R.DENY,
        _A.INVITATION_REVOKE: _R.DENY,
        _A.ORGANIZATION_READ: _R.ALLOW,
        _A.ORGANIZATION_MANAGE: _R.DENY,
    },
}

INVITE_ACTION_BY_ROLE: Mapping[ActorRole, Action] = {
    ActorRole.TENANT: Action.INVITATION_CREATE_TENANT,
    ActorRole.WORKER: Action.INVITATION_CREATE_WORKER,
    ActorRole.MANAGER: Action.INVITATION_CREATE_MANAGER,
}


def _actor_role(actor) -> ActorRole:
    raw = getattr(actor, "role", None)
    try:
        return raw if isinstance(raw, ActorRole) else ActorRole(str(raw).strip().lower())
    except ValueError:
        raise AuthorizationInputError(f"Unknown actor role: {raw!r}")


def _check_rule(rule: Rule, actor_id, resource: ResourceRef) -> Decision:
    if rule is Rule.ALLOW:
        return ALLOW
    if rule is Rule.DENY:
        return _deny(DenyReason.ROLE_INSUFFICIENT)

    if rule is Rule.OWN_REQUEST:
        ok = resource.tenant_id is not None and resource.tenant_id == actor_id
    elif rule is Rule.ASSIGNEE:
        ok = resource.assigned_to is not None and resource.assigned_to == actor_id
    elif rule is Rule.UNASSIGNED:
        ok = resource.assigned_to is None
    elif rule is Rule.SELF:
        ok = resource.subject_id is not None and resource.subject_id == actor_id
    else:  # pragma: no cover - closed enum
        raise AuthorizationInputError(f"Unknown rule: {rule!r}")

    return ALLOW if ok else _deny(DenyReason.NOT_OWNER_OF_RESOURCE)


def authorize(actor, action: Action | str, resource: ResourceRef) -> Decision:
    """
    Decide whether `actor` may perform `action` on `resource`.

    Organization mismatch is checked first and always denies. The role's
    table entry then decides; a missing entry is treated as a role denial.
    """
    if actor is None or getattr(actor, "id", None) is None:
        raise AuthorizationInputError("actor with an id is required")
    if getattr(actor, "organization_id", None) is None:
        raise AuthorizationInputError("actor.organization_id is required")
    if resource is None or resource.organization_id is None:
        raise AuthorizationInputError("resource.organization_id is required")

    try:
        action = Action(action)
    except ValueError:
        raise AuthorizationInputError(f"Unknown action: {action!r}")

    role = _actor_role(actor)

    if actor.organization_id != resource.organization_id:
        return _deny(DenyReason.ORG_MISMATCH)

    rule = CAPABILITIES.get(role, {}).get(action)
    if rule is None:
        return _deny(DenyReason.ROLE_INSUFFICIENT)

    return _check_rule(rule, actor.id, resource)


def require(actor, action: Action | str, resource: ResourceRef) -> None:
    """
    authorize() for service code: raises instead of returning a deny.

    Organization mismatch surfaces as NotFound so callers cannot probe for
    other organizations' ids.
    """
    decision = authorize(actor, action, resource)
    if decision.allowed:
        return
    if decision.reason is DenyReason.ORG_MISMATCH:
        raise NotFoundError()
    raise ForbiddenError(code=decision.reason.value.upper(), action=Action(action).value)
