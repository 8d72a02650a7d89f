# tests/test_permissions.py
from __future__ import annotations

import uuid

import pytest

from maintdesk.auth.permissions import (
    CAPABILITIES,
    Action,
    ActorRef,
    AuthorizationInputError,
    DenyReason,
    ResourceRef,
    authorize,
    require,
)
from maintdesk.core.errors import ForbiddenError, NotFoundError
from maintdesk.core.roles import ActorRole

ORG = uuid.uuid4()
OTHER_ORG = uuid.uuid4()


def actor(role: ActorRole, org: uuid.UUID = ORG) -> ActorRef:
    return ActorRef(id=uuid.uuid4(), role=role, organization_id=org)


def test_capability_table_covers_every_role_and_action():
    for role in ActorRole:
        assert set(CAPABILITIES[role]) == set(Action), role


@pytest.mark.parametrize("role", list(ActorRole))
@pytest.mark.parametrize("action", list(Action))
def test_org_mismatch_always_denies(role, action):
    a = actor(role)
    res = ResourceRef(organization_id=OTHER_ORG, tenant_id=a.id, assigned_to=a.id, subject_id=a.id)
    decision = authorize(a, action, res)
    assert not decision.allowed
    assert decision.reason is DenyReason.ORG_MISMATCH


def test_owner_can_do_everything_in_own_org():
    owner = actor(ActorRole.OWNER)
    for action in Action:
        assert authorize(owner, action, ResourceRef(organization_id=ORG)).allowed


@pytest.mark.parametrize(
    "action",
    [
        Action.MANAGER_CREATE,
        Action.MANAGER_DELETE,
        Action.INVITATION_CREATE_MANAGER,
        Action.ORGANIZATION_MANAGE,
    ],
)
def test_manager_denied_owner_only_actions(action):
    decision = authorize(actor(ActorRole.MANAGER), action, ResourceRef(organization_id=ORG))
    assert decision.reason is DenyReason.ROLE_INSUFFICIENT


def test_manager_can_assign_and_invite_workers():
    m = actor(ActorRole.MANAGER)
    res = ResourceRef(organization_id=ORG)
    assert authorize(m, Action.REQUEST_ASSIGN, res)
    assert authorize(m, Action.INVITATION_CREATE_WORKER, res)
    assert authorize(m, Action.INVITATION_CREATE_TENANT, res)
    assert authorize(m, Action.WORKER_DELETE, res)


def test_tenant_reads_only_own_requests():
    t = actor(ActorRole.TENANT)
    own = ResourceRef(organization_id=ORG, tenant_id=t.id)
    other = ResourceRef(organization_id=ORG, tenant_id=uuid.uuid4())

    assert authorize(t, Action.REQUEST_READ, own).allowed
    decision = authorize(t, Action.REQUEST_READ, other)
    assert not decision.allowed
    assert decision.reason is DenyReason.NOT_OWNER_OF_RESOURCE


def test_tenant_never_sees_internal_comments_or_assigns():
    t = actor(ActorRole.TENANT)
    own = ResourceRef(organization_id=ORG, tenant_id=t.id)
    assert authorize(t, Action.COMMENT_CREATE, own).allowed
    assert authorize(t, Action.COMMENT_READ_INTERNAL, own).reason is DenyReason.ROLE_INSUFFICIENT
    assert authorize(t, Action.COMMENT_CREATE_INTERNAL, own).reason is DenyReason.ROLE_INSUFFICIENT
    assert authorize(t, Action.REQUEST_ASSIGN, own).reason is DenyReason.ROLE_INSUFFICIENT


def test_worker_limited_to_assigned_requests():
    w = actor(ActorRole.WORKER)
    assigned = ResourceRef(organization_id=ORG, assigned_to=w.id)
    someone_elses = ResourceRef(organization_id=ORG, assigned_to=uuid.uuid4())
    unassigned = ResourceRef(organization_id=ORG)

    assert authorize(w, Action.REQUEST_UPDATE_STATUS, assigned).allowed
    assert authorize(w, Action.REQUEST_UPDATE_STATUS, someone_elses).reason is DenyReason.NOT_OWNER_OF_RESOURCE
    assert authorize(w, Action.REQUEST_SELF_ASSIGN, unassigned).allowed
    assert not authorize(w, Action.REQUEST_SELF_ASSIGN, someone_elses).allowed
    assert authorize(w, Action.REQUEST_CREATE, unassigned).reason is DenyReason.ROLE_INSUFFICIENT
    assert authorize(w, Action.PROPERTY_MANAGE, unassigned).reason is DenyReason.ROLE_INSUFFICIENT
    assert not authorize(w, Action.INVITATION_CREATE_TENANT, unassigned).allowed


def test_self_rule_for_account_reads():
    w = actor(ActorRole.WORKER)
    assert authorize(w, Action.WORKER_READ, ResourceRef(organization_id=ORG, subject_id=w.id)).allowed
    assert not authorize(w, Action.WORKER_READ, ResourceRef(organization_id=ORG, subject_id=uuid.uuid4())).allowed


def test_action_accepts_dotted_string():
    m = actor(ActorRole.MANAGER)
    assert authorize(m, "request.update_status", ResourceRef(organization_id=ORG)).allowed


@pytest.mark.parametrize(
    "bad_actor, action, resource",
    [
        (None, Action.REQUEST_READ, ResourceRef(organization_id=ORG)),
        (ActorRef(id=uuid.uuid4(), role=ActorRole.OWNER, organization_id=None), Action.REQUEST_READ, ResourceRef(organization_id=ORG)),
        (ActorRef(id=uuid.uuid4(), role="janitor", organization_id=ORG), Action.REQUEST_READ, ResourceRef(organization_id=ORG)),
        (ActorRef(id=uuid.uuid4(), role=ActorRole.OWNER, organization_id=ORG), "request.teleport", ResourceRef(organization_id=ORG)),
        (ActorRef(id=uuid.uuid4(), role=ActorRole.OWNER, organization_id=ORG), Action.REQUEST_READ, ResourceRef(organization_id=None)),
    ],
)
def test_malformed_input_raises(bad_actor, action, resource):
    with pytest.raises(AuthorizationInputError):
        authorize(bad_actor, action, resource)


def test_require_maps_org_mismatch_to_not_found():
    with pytest.raises(NotFoundError):
        require(actor(ActorRole.OWNER), Action.REQUEST_READ, ResourceRef(organization_id=OTHER_ORG))


def test_require_maps_role_denial_to_forbidden_with_reason_code():
    with pytest.raises(ForbiddenError) as exc:
        require(actor(ActorRole.MANAGER), Action.MANAGER_DELETE, ResourceRef(organization_id=ORG))
    assert exc.value.code == "ROLE_INSUFFICIENT"
    assert exc.value.extra["action"] == "manager.delete"
