# tests/test_request_lifecycle.py
from __future__ import annotations

import pytest
from sqlalchemy import func, select, update

from maintdesk.core.errors import (
    DomainError,
    ForbiddenError,
    InvalidTransition,
    NotAssignee,
    NotFoundError,
    RequestChanged,
    ValidationError,
)
from maintdesk.core.request_states import ASSIGNED_STATUSES, RequestStatus
from maintdesk.models import ActivityLog, MaintenanceRequest
from maintdesk.services.request_lifecycle import RequestLifecycle


@pytest.fixture()
async def world(db, make):
    org = await make.organization()
    owner = await make.profile(org, "owner")
    manager = await make.profile(org, "manager")
    worker = await make.profile(org, "worker")
    worker2 = await make.profile(org, "worker")
    tenant = await make.profile(org, "tenant")
    tenant2 = await make.profile(org, "tenant")
    prop = await make.property(org)
    unit = await make.unit(prop, "1A", tenant=tenant)
    unit2 = await make.unit(prop, "1B", tenant=tenant2)
    await db.commit()
    return {
        "org": org,
        "owner": owner,
        "manager": manager,
        "worker": worker,
        "worker2": worker2,
        "tenant": tenant,
        "tenant2": tenant2,
        "unit": unit,
        "unit2": unit2,
    }


@pytest.fixture()
def lc(db, publisher) -> RequestLifecycle:
    return RequestLifecycle(db, publisher)


def assert_assignment_invariant(req: MaintenanceRequest) -> None:
    in_assigned_state = RequestStatus(req.status) in ASSIGNED_STATUSES
    assert (req.assigned_to is not None) == in_assigned_state, (req.status, req.assigned_to)


# ---------------------------------------------------------
# Happy path
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_full_lifecycle(db, lc, publisher, world):
    tenant, manager, worker = world["tenant"], world["manager"], world["worker"]

    req = await lc.create(tenant, unit_id=world["unit"].id, title="  Leaking tap  ", description="drips")
    assert req.status == "submitted"
    assert req.assigned_to is None
    assert req.tenant_id == tenant.id
    assert req.title == "Leaking tap"

    req = await lc.assign(manager, req.id, worker.id)
    assert req.status == "assigned"
    assert req.assigned_to == worker.id

    req = await lc.set_status(worker, req.id, "in_progress")
    assert req.status == "in_progress"

    req = await lc.set_status(worker, req.id, "completed", resolution_notes="Replaced washer")
    assert req.status == "completed"
    assert req.assigned_to == worker.id
    assert req.completed_by == worker.id
    assert req.completed_at is not None
    assert req.resolution_notes == "Replaced washer"

    assert publisher.types() == [
        "request.created",
        "request.assigned",
        "request.status_changed",
        "request.status_changed",
        "request.status_changed",
    ]
    last = publisher.events[-1]
    assert (last.previous_status, last.new_status) == ("in_progress", "completed")
    assert last.actor_id == worker.id

    logged = await db.scalar(
        select(func.count(ActivityLog.id)).where(ActivityLog.request_id == req.id)
    )
    assert logged == 5


@pytest.mark.asyncio
async def test_manager_files_on_behalf_of_occupant(lc, publisher, world):
    req = await lc.create(world["manager"], unit_id=world["unit"].id, title="Broken heater", priority="emergency")
    assert req.tenant_id == world["tenant"].id
    assert req.created_by == world["manager"].id
    assert publisher.types() == ["request.created", "request.priority_emergency"]


@pytest.mark.asyncio
async def test_tenant_cannot_file_for_someone_elses_unit(lc, world):
    with pytest.raises(ForbiddenError):
        await lc.create(world["tenant"], unit_id=world["unit2"].id, title="Not mine")


@pytest.mark.asyncio
async def test_vacant_unit_rejected(db, make, lc, world):
    prop = await make.property(world["org"], "Empty block")
    vacant = await make.unit(prop, "9Z")
    await db.commit()
    with pytest.raises(ValidationError) as exc:
        await lc.create(world["manager"], unit_id=vacant.id, title="Paint")
    assert exc.value.code == "UNIT_VACANT"


@pytest.mark.asyncio
async def test_invalid_priority_rejected(lc, world):
    with pytest.raises(ValidationError) as exc:
        await lc.create(world["tenant"], unit_id=world["unit"].id, title="x", priority="whenever")
    assert exc.value.code == "INVALID_PRIORITY"


# ---------------------------------------------------------
# Transitions
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_completed_request_cannot_go_back_to_in_progress(db, make, lc, world):
    req = await make.request(world["unit"], created_by=world["tenant"], status="completed", assigned_to=world["worker"])
    await db.commit()

    with pytest.raises(InvalidTransition) as exc:
        await lc.set_status(world["manager"], req.id, "in_progress")
    assert exc.value.status_code == 400
    assert exc.value.extra["current_status"] == "completed"

    await db.refresh(req)
    assert req.status == "completed"


@pytest.mark.asyncio
async def test_submitted_cannot_jump_to_in_progress(db, make, lc, world):
    req = await make.request(world["unit"], created_by=world["tenant"])
    await db.commit()
    with pytest.raises(InvalidTransition):
        await lc.set_status(world["manager"], req.id, "in_progress")


@pytest.mark.asyncio
async def test_unknown_status_is_validation_error(db, make, lc, world):
    req = await make.request(world["unit"], created_by=world["tenant"])
    await db.commit()
    with pytest.raises(ValidationError) as exc:
        await lc.set_status(world["manager"], req.id, "done")
    assert exc.value.code == "INVALID_STATUS"


@pytest.mark.asyncio
async def test_unassigned_worker_gets_not_assignee(db, make, lc, world):
    req = await make.request(world["unit"], created_by=world["tenant"], status="assigned", assigned_to=world["worker"])
    await db.commit()
    with pytest.raises(NotAssignee):
        await lc.set_status(world["worker2"], req.id, "in_progress")


@pytest.mark.asyncio
async def test_tenant_cannot_change_status(db, make, lc, world):
    req = await make.request(world["unit"], created_by=world["tenant"], status="assigned", assigned_to=world["worker"])
    await db.commit()
    with pytest.raises(ForbiddenError) as exc:
        await lc.set_status(world["tenant"], req.id, "cancelled")
    assert exc.value.code == "ROLE_INSUFFICIENT"


@pytest.mark.asyncio
async def test_cancel_clears_assignee(db, make, lc, world):
    req = await make.request(world["unit"], created_by=world["tenant"], status="in_progress", assigned_to=world["worker"])
    await db.commit()

    req = await lc.set_status(world["manager"], req.id, "cancelled")
    assert req.status == "cancelled"
    assert req.assigned_to is None


@pytest.mark.asyncio
async def test_unassign_in_progress_returns_to_submitted(db, make, lc, publisher, world):
    req = await make.request(world["unit"], created_by=world["tenant"], status="in_progress", assigned_to=world["worker"])
    await db.commit()

    req = await lc.unassign(world["manager"], req.id)
    assert req.status == "submitted"
    assert req.assigned_to is None
    assert publisher.types() == ["request.unassigned", "request.status_changed"]
    assert publisher.events[0].payload["previous_assignee_id"] == str(world["worker"].id)


# ---------------------------------------------------------
# Assignment rules
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_worker_self_assigns_unassigned_request(db, make, lc, world):
    req = await make.request(world["unit"], created_by=world["tenant"])
    await db.commit()

    req = await lc.assign(world["worker"], req.id, world["worker"].id)
    assert req.status == "assigned"
    assert req.assigned_to == world["worker"].id

    # already taken
    with pytest.raises(ForbiddenError) as exc:
        await lc.assign(world["worker2"], req.id, world["worker2"].id)
    assert exc.value.code == "NOT_OWNER_OF_RESOURCE"


@pytest.mark.asyncio
async def test_worker_cannot_assign_someone_else(db, make, lc, world):
    req = await make.request(world["unit"], created_by=world["tenant"])
    await db.commit()
    with pytest.raises(ForbiddenError) as exc:
        await lc.assign(world["worker"], req.id, world["worker2"].id)
    assert exc.value.code == "SELF_ASSIGN_ONLY"


@pytest.mark.asyncio
async def test_manager_reassigns_between_workers(db, make, lc, publisher, world):
    req = await make.request(world["unit"], created_by=world["tenant"], status="in_progress", assigned_to=world["worker"])
    await db.commit()

    req = await lc.assign(world["manager"], req.id, world["worker2"].id)
    assert req.assigned_to == world["worker2"].id
    assert req.status == "in_progress"
    assert publisher.types() == ["request.assigned", "request.unassigned"]


@pytest.mark.asyncio
async def test_assignee_must_be_active_worker_in_org(db, make, lc, world):
    other_org = await make.organization()
    outsider = await make.profile(other_org, "worker")
    removed = await make.profile(world["org"], "worker", is_active=False)
    req = await make.request(world["unit"], created_by=world["tenant"])
    await db.commit()

    for candidate in (outsider, removed, world["tenant"]):
        with pytest.raises(ValidationError) as exc:
            await lc.assign(world["manager"], req.id, candidate.id)
        assert exc.value.code == "INVALID_ASSIGNEE"


@pytest.mark.asyncio
async def test_manager_may_assign_self(db, make, lc, world):
    req = await make.request(world["unit"], created_by=world["tenant"])
    await db.commit()
    req = await lc.assign(world["manager"], req.id, world["manager"].id)
    assert req.assigned_to == world["manager"].id


# ---------------------------------------------------------
# Visibility
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_tenant_cannot_read_another_tenants_request(db, make, lc, world):
    req = await make.request(world["unit2"], created_by=world["tenant2"])
    await db.commit()
    with pytest.raises(ForbiddenError):
        await lc.get(world["tenant"], req.id)


@pytest.mark.asyncio
async def test_other_organization_sees_not_found(db, make, lc, world):
    req = await make.request(world["unit"], created_by=world["tenant"])
    outsider_org = await make.organization()
    outsider = await make.profile(outsider_org, "owner")
    await db.commit()
    with pytest.raises(NotFoundError):
        await lc.get(outsider, req.id)
    with pytest.raises(NotFoundError):
        await lc.set_status(outsider, req.id, "cancelled")


@pytest.mark.asyncio
async def test_list_for_actor_scopes_by_role(db, make, lc, world):
    mine = await make.request(world["unit"], created_by=world["tenant"], status="assigned", assigned_to=world["worker"])
    theirs = await make.request(world["unit2"], created_by=world["tenant2"])
    await db.commit()

    assert [r.id for r in await lc.list_for_actor(world["tenant"])] == [mine.id]
    assert [r.id for r in await lc.list_for_actor(world["worker"])] == [mine.id]
    assert {r.id for r in await lc.list_for_actor(world["manager"])} == {mine.id, theirs.id}
    assert [r.id for r in await lc.list_for_actor(world["manager"], status="submitted")] == [theirs.id]


# ---------------------------------------------------------
# Comments
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_internal_comment_hidden_from_tenant(db, make, lc, world):
    other_manager = await make.profile(world["org"], "manager")
    req = await make.request(world["unit"], created_by=world["tenant"])
    await db.commit()

    await lc.add_comment(world["tenant"], req.id, "Any update?")
    await lc.add_comment(world["manager"], req.id, "Vendor quote is high", is_internal=True)

    tenant_view = await lc.list_comments(world["tenant"], req.id)
    assert [c.text for c in tenant_view] == ["Any update?"]

    staff_view = await lc.list_comments(other_manager, req.id)
    assert [c.text for c in staff_view] == ["Any update?", "Vendor quote is high"]


@pytest.mark.asyncio
async def test_tenant_cannot_post_internal_comment(db, make, lc, world):
    req = await make.request(world["unit"], created_by=world["tenant"])
    await db.commit()
    with pytest.raises(ForbiddenError):
        await lc.add_comment(world["tenant"], req.id, "psst", is_internal=True)


@pytest.mark.asyncio
async def test_empty_comment_rejected(db, make, lc, world):
    req = await make.request(world["unit"], created_by=world["tenant"])
    await db.commit()
    with pytest.raises(ValidationError):
        await lc.add_comment(world["tenant"], req.id, "   ")


# ---------------------------------------------------------
# Details
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_raising_priority_to_emergency_emits_event(db, make, lc, publisher, world):
    req = await make.request(world["unit"], created_by=world["tenant"], status="assigned", assigned_to=world["worker"])
    await db.commit()

    req = await lc.update_details(world["worker"], req.id, priority="emergency", title="Gas smell")
    assert req.priority == "emergency"
    assert req.title == "Gas smell"
    assert publisher.types() == ["request.priority_emergency"]


@pytest.mark.asyncio
async def test_terminal_request_details_frozen(db, make, lc, world):
    req = await make.request(world["unit"], created_by=world["tenant"], status="cancelled")
    await db.commit()
    with pytest.raises(InvalidTransition):
        await lc.update_details(world["manager"], req.id, title="Too late")


# ---------------------------------------------------------
# Concurrency + invariants
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_stale_read_loses_compare_and_swap(db, make, sessionmaker, lc, publisher, world):
    req = await make.request(world["unit"], created_by=world["tenant"], status="assigned", assigned_to=world["worker"])
    await db.commit()
    req_id = req.id

    # Someone else cancels after our session loaded the row
    async with sessionmaker() as other:
        await other.execute(
            update(MaintenanceRequest)
            .where(MaintenanceRequest.id == req.id)
            .values(status="cancelled", assigned_to=None)
        )
        await other.commit()

    with pytest.raises(RequestChanged) as exc:
        await lc.set_status(world["worker"], req_id, "in_progress")
    assert exc.value.status_code == 409
    assert publisher.events == []

    async with sessionmaker() as fresh:
        row = await fresh.get(MaintenanceRequest, req_id)
        assert row.status == "cancelled"


@pytest.mark.asyncio
async def test_concurrent_assign_loser_gets_request_changed(db, make, sessionmaker, lc, publisher, world):
    manager, worker, worker2 = world["manager"], world["worker"], world["worker2"]
    req = await make.request(world["unit"], created_by=world["tenant"])
    await db.commit()
    req_id, worker_id, worker2_id = req.id, worker.id, worker2.id

    # the manager's session has the submitted row loaded
    loaded = await lc.get(manager, req_id)
    assert loaded.assigned_to is None

    async with sessionmaker() as other:
        await other.execute(
            update(MaintenanceRequest)
            .where(MaintenanceRequest.id == req_id)
            .values(status="assigned", assigned_to=worker2_id)
        )
        await other.commit()

    with pytest.raises(RequestChanged) as exc:
        await lc.assign(manager, req_id, worker_id)
    assert exc.value.code == "REQUEST_CHANGED"
    assert publisher.events == []

    async with sessionmaker() as fresh:
        row = await fresh.get(MaintenanceRequest, req_id)
        assert (row.status, row.assigned_to) == ("assigned", worker2_id)
        activity = await fresh.scalar(
            select(func.count(ActivityLog.id)).where(ActivityLog.request_id == req_id)
        )
        assert activity == 0


@pytest.mark.asyncio
async def test_assignment_invariant_holds_after_mixed_operations(db, make, lc, world):
    manager, worker, worker2 = world["manager"], world["worker"], world["worker2"]
    ids = []
    for _ in range(4):
        r = await lc.create(world["tenant"], unit_id=world["unit"].id, title="Issue")
        ids.append(r.id)

    steps = [
        lambda: lc.assign(manager, ids[0], worker.id),
        lambda: lc.set_status(worker, ids[0], "in_progress"),
        lambda: lc.unassign(manager, ids[0]),
        lambda: lc.assign(worker2, ids[0], worker2.id),
        lambda: lc.set_status(worker2, ids[0], "completed"),
        lambda: lc.set_status(manager, ids[0], "cancelled"),
        lambda: lc.assign(manager, ids[1], worker.id),
        lambda: lc.set_status(manager, ids[1], "cancelled"),
        lambda: lc.assign(manager, ids[1], worker.id),
        lambda: lc.set_status(manager, ids[2], "cancelled"),
        lambda: lc.unassign(manager, ids[3]),
        lambda: lc.assign(manager, ids[3], worker.id),
        lambda: lc.assign(manager, ids[3], worker2.id),
        lambda: lc.set_status(worker, ids[3], "completed"),
    ]
    for step in steps:
        try:
            await step()
        except DomainError:
            pass

    rows = (await db.execute(select(MaintenanceRequest).execution_options(populate_existing=True))).scalars().all()
    assert len(rows) == 4
    for row in rows:
        assert_assignment_invariant(row)
        assert row.organization_id == world["org"].id
