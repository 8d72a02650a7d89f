"""
Maintenance-request state machine.

    submitted -> assigned -> in_progress -> completed
    submitted | assigned | in_progress -> cancelled

completed and cancelled are terminal. assigned_to is set exactly when the
status is assigned, in_progress or completed.

Every write is a conditional UPDATE on the status/assignee the caller read
(compare-and-swap), committed together with its activity-log row. Events are
published only after the commit.
"""
from __future__ import annotations

import logging
import uuid
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from maintdesk.auth.permissions import Action, DenyReason, ResourceRef, authorize, require
from maintdesk.core.clock import utcnow
from maintdesk.core.errors import (
    ForbiddenError,
    InvalidTransition,
    NotAssignee,
    RequestChanged,
    ValidationError,
)
from maintdesk.core.request_states import (
    RequestPriority,
    RequestStatus,
    can_transition,
    is_terminal,
)
from maintdesk.core.roles import ActorRole
from maintdesk.crud.activity import record_activity
from maintdesk.crud.scoped import must_get_request, must_get_unit
from maintdesk.models.maintenance_request import MaintenanceRequest
from maintdesk.models.profile import Profile
from maintdesk.models.request_comment import RequestComment
from maintdesk.services.events import DomainEvent, EventPublisher, EventType

log = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 5000


def request_resource(req: MaintenanceRequest) -> ResourceRef:
    return ResourceRef(
        organization_id=req.organization_id,
        tenant_id=req.tenant_id,
        assigned_to=req.assigned_to,
    )


def _parse_status(value) -> RequestStatus:
    try:
        return RequestStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in RequestStatus)
        raise ValidationError(f"Invalid status. Allowed: {allowed}", code="INVALID_STATUS")


def _parse_priority(value) -> RequestPriority:
    try:
        return RequestPriority(value)
    except ValueError:
        allowed = ", ".join(p.value for p in RequestPriority)
        raise ValidationError(f"Invalid priority. Allowed: {allowed}", code="INVALID_PRIORITY")


def _clean_text(value: Optional[str], field: str, *, max_length: int) -> str:
    v = (value or "").strip()
    if not v:
        raise ValidationError(f"{field} is required", field=field)
    if len(v) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", field=field)
    return v


class RequestLifecycle:
    def __init__(self, db: AsyncSession, publisher: EventPublisher) -> None:
        self.db = db
        self.publisher = publisher

    # =========================================================
    # Reads
    # =========================================================
    async def get(self, actor: Profile, request_id: uuid.UUID) -> MaintenanceRequest:
        req = await must_get_request(self.db, org_id=actor.organization_id, request_id=request_id)
        require(actor, Action.REQUEST_READ, request_resource(req))
        return req

    async def list_for_actor(
        self,
        actor: Profile,
        *,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[MaintenanceRequest]:
        """
        Requests the actor may see: tenants their own, workers those assigned
        to them, managers and owners everything in the organization.
        """
        stmt = select(MaintenanceRequest).where(
            MaintenanceRequest.organization_id == actor.organization_id
        )

        role = ActorRole(actor.role)
        if role is ActorRole.TENANT:
            stmt = stmt.where(MaintenanceRequest.tenant_id == actor.id)
        elif role is ActorRole.WORKER:
            stmt = stmt.where(MaintenanceRequest.assigned_to == actor.id)

        if status is not None:
            stmt = stmt.where(MaintenanceRequest.status == _parse_status(status).value)

        stmt = stmt.order_by(MaintenanceRequest.created_at.desc()).limit(limit).offset(offset)
        return list((await self.db.execute(stmt)).scalars().all())

    async def list_comments(self, actor: Profile, request_id: uuid.UUID) -> list[RequestComment]:
        req = await self.get(actor, request_id)

        stmt = select(RequestComment).where(
            RequestComment.request_id == req.id,
            RequestComment.organization_id == actor.organization_id,
        )
        if not authorize(actor, Action.COMMENT_READ_INTERNAL, request_resource(req)).allowed:
            stmt = stmt.where(RequestComment.is_internal.is_(False))

        stmt = stmt.order_by(RequestComment.created_at.asc())
        return list((await self.db.execute(stmt)).scalars().all())

    # =========================================================
    # Create
    # =========================================================
    async def create(
        self,
        actor: Profile,
        *,
        unit_id: uuid.UUID,
        title: str,
        description: str = "",
        priority: str = RequestPriority.MEDIUM.value,
        category: str = "general",
    ) -> MaintenanceRequest:
        """
        File a request for a unit. Tenants may only file for the unit they
        occupy; managers and owners file on behalf of the current occupant.
        """
        unit = await must_get_unit(self.db, org_id=actor.organization_id, unit_id=unit_id)
        require(
            actor,
            Action.REQUEST_CREATE,
            ResourceRef(organization_id=unit.organization_id, tenant_id=unit.tenant_id),
        )
        if unit.tenant_id is None:
            raise ValidationError("This unit has no tenant to file the request for", code="UNIT_VACANT")

        prio = _parse_priority(priority)
        req = MaintenanceRequest(
            organization_id=unit.organization_id,
            property_id=unit.property_id,
            unit_id=unit.id,
            tenant_id=unit.tenant_id,
            created_by=actor.id,
            assigned_to=None,
            status=RequestStatus.SUBMITTED.value,
            priority=prio.value,
            category=(category or "general").strip().lower()[:50] or "general",
            title=_clean_text(title, "title", max_length=200),
            description=(description or "").strip(),
        )
        self.db.add(req)
        await self.db.flush()

        events = [
            DomainEvent(
                type=EventType.REQUEST_CREATED,
                organization_id=req.organization_id,
                actor_id=actor.id,
                request_id=req.id,
                previous_status=None,
                new_status=req.status,
                payload={"priority": req.priority},
            )
        ]
        if prio is RequestPriority.EMERGENCY:
            events.append(self._emergency_event(req, actor))

        record_activity(
            self.db,
            organization_id=req.organization_id,
            actor_id=actor.id,
            request_id=req.id,
            action=EventType.REQUEST_CREATED.value,
            details={"priority": req.priority, "unit_id": str(req.unit_id)},
        )
        await self.db.commit()
        await self.db.refresh(req)

        log.info(
            "request created",
            extra={"org_id": req.organization_id, "actor_id": actor.id, "maintenance_request_id": req.id},
        )
        self._publish(events)
        return req

    # =========================================================
    # Assignment
    # =========================================================
    async def assign(
        self,
        actor: Profile,
        request_id: uuid.UUID,
        assignee_id: uuid.UUID,
    ) -> MaintenanceRequest:
        """
        Managers/owners assign any active worker in the organization or
        themselves, and may reassign. Workers may only take an unassigned
        request for themselves.
        """
        req = await must_get_request(
            self.db, org_id=actor.organization_id, request_id=request_id, for_update=True
        )
        resource = request_resource(req)
        role = ActorRole(actor.role)

        if role is ActorRole.WORKER:
            require(actor, Action.REQUEST_SELF_ASSIGN, resource)
            if assignee_id != actor.id:
                raise ForbiddenError("Workers can only assign requests to themselves", code="SELF_ASSIGN_ONLY")
        else:
            require(actor, Action.REQUEST_ASSIGN, resource)
            await self._validate_assignee(actor, assignee_id)

        current = RequestStatus(req.status)
        if is_terminal(current):
            raise InvalidTransition(f"Cannot assign a {current.value} request")

        if req.assigned_to == assignee_id:
            return req

        new_status = RequestStatus.ASSIGNED if current is RequestStatus.SUBMITTED else current
        previous_assignee = req.assigned_to

        await self._compare_and_swap(
            req,
            expected_status=current,
            expected_assigned_to=previous_assignee,
            values={"assigned_to": assignee_id, "status": new_status.value},
        )

        events = [
            DomainEvent(
                type=EventType.REQUEST_ASSIGNED,
                organization_id=req.organization_id,
                actor_id=actor.id,
                request_id=req.id,
                previous_status=current.value,
                new_status=new_status.value,
                payload={
                    "assignee_id": str(assignee_id),
                    "previous_assignee_id": str(previous_assignee) if previous_assignee else None,
                },
            )
        ]
        if previous_assignee is not None:
            events.append(
                DomainEvent(
                    type=EventType.REQUEST_UNASSIGNED,
                    organization_id=req.organization_id,
                    actor_id=actor.id,
                    request_id=req.id,
                    previous_status=current.value,
                    new_status=new_status.value,
                    payload={"previous_assignee_id": str(previous_assignee)},
                )
            )
        if new_status is not current:
            events.append(self._status_event(req, actor, current, new_status))

        await self._commit_transition(req, actor, events)
        return req

    async def unassign(self, actor: Profile, request_id: uuid.UUID) -> MaintenanceRequest:
        """
        Clear the assignee. The request goes back to submitted, the only
        status that carries no assignee before work is closed.
        """
        req = await must_get_request(
            self.db, org_id=actor.organization_id, request_id=request_id, for_update=True
        )
        require(actor, Action.REQUEST_UNASSIGN, request_resource(req))

        current = RequestStatus(req.status)
        if is_terminal(current):
            raise InvalidTransition(f"Cannot unassign a {current.value} request")
        if req.assigned_to is None:
            raise InvalidTransition("Request is not assigned")

        previous_assignee = req.assigned_to
        await self._compare_and_swap(
            req,
            expected_status=current,
            expected_assigned_to=previous_assignee,
            values={"assigned_to": None, "status": RequestStatus.SUBMITTED.value},
        )

        events = [
            DomainEvent(
                type=EventType.REQUEST_UNASSIGNED,
                organization_id=req.organization_id,
                actor_id=actor.id,
                request_id=req.id,
                previous_status=current.value,
                new_status=RequestStatus.SUBMITTED.value,
                payload={"previous_assignee_id": str(previous_assignee)},
            ),
            self._status_event(req, actor, current, RequestStatus.SUBMITTED),
        ]
        await self._commit_transition(req, actor, events)
        return req

    # =========================================================
    # Status
    # =========================================================
    async def set_status(
        self,
        actor: Profile,
        request_id: uuid.UUID,
        new_status: str,
        *,
        resolution_notes: Optional[str] = None,
    ) -> MaintenanceRequest:
        target = _parse_status(new_status)
        req = await must_get_request(
            self.db, org_id=actor.organization_id, request_id=request_id, for_update=True
        )

        decision = authorize(actor, Action.REQUEST_UPDATE_STATUS, request_resource(req))
        if not decision.allowed:
            # only the worker rule is ownership-based here
            if decision.reason is DenyReason.NOT_OWNER_OF_RESOURCE:
                raise NotAssignee()
            require(actor, Action.REQUEST_UPDATE_STATUS, request_resource(req))

        current = RequestStatus(req.status)
        if not can_transition(current, target):
            raise InvalidTransition(
                f"Cannot change status from {current.value} to {target.value}",
                current_status=current.value,
                requested_status=target.value,
            )

        values: dict = {"status": target.value}
        if target is RequestStatus.COMPLETED:
            values["completed_at"] = utcnow()
            values["completed_by"] = actor.id
            if resolution_notes is not None:
                values["resolution_notes"] = resolution_notes.strip() or None
        elif target is RequestStatus.CANCELLED:
            # cancelled requests carry no assignee
            values["assigned_to"] = None

        await self._compare_and_swap(
            req,
            expected_status=current,
            expected_assigned_to=req.assigned_to,
            values=values,
        )

        await self._commit_transition(req, actor, [self._status_event(req, actor, current, target)])
        return req

    async def update_details(
        self,
        actor: Profile,
        request_id: uuid.UUID,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        priority: Optional[str] = None,
        category: Optional[str] = None,
    ) -> MaintenanceRequest:
        req = await must_get_request(
            self.db, org_id=actor.organization_id, request_id=request_id, for_update=True
        )
        require(actor, Action.REQUEST_UPDATE, request_resource(req))

        current = RequestStatus(req.status)
        if is_terminal(current):
            raise InvalidTransition(f"A {current.value} request can no longer be edited")

        values: dict = {}
        if title is not None:
            values["title"] = _clean_text(title, "title", max_length=200)
        if description is not None:
            values["description"] = description.strip()
        if category is not None:
            values["category"] = category.strip().lower()[:50] or "general"
        if priority is not None:
            values["priority"] = _parse_priority(priority).value

        if not values:
            return req

        became_emergency = (
            values.get("priority") == RequestPriority.EMERGENCY.value
            and req.priority != RequestPriority.EMERGENCY.value
        )

        await self._compare_and_swap(
            req,
            expected_status=current,
            expected_assigned_to=req.assigned_to,
            values=values,
        )

        events = [self._emergency_event(req, actor)] if became_emergency else []
        await self._commit_transition(
            req,
            actor,
            events,
            action="request.updated",
            details={"fields": sorted(values)},
        )
        return req

    # =========================================================
    # Comments
    # =========================================================
    async def add_comment(
        self,
        actor: Profile,
        request_id: uuid.UUID,
        text: str,
        *,
        is_internal: bool = False,
    ) -> RequestComment:
        req = await must_get_request(self.db, org_id=actor.organization_id, request_id=request_id)
        resource = request_resource(req)
        require(actor, Action.COMMENT_CREATE, resource)
        if is_internal:
            require(actor, Action.COMMENT_CREATE_INTERNAL, resource)

        comment = RequestComment(
            organization_id=req.organization_id,
            request_id=req.id,
            author_id=actor.id,
            text=_clean_text(text, "text", max_length=MAX_COMMENT_LENGTH),
            is_internal=bool(is_internal),
        )
        self.db.add(comment)
        await self.db.flush()

        record_activity(
            self.db,
            organization_id=req.organization_id,
            actor_id=actor.id,
            request_id=req.id,
            action=EventType.REQUEST_COMMENT_ADDED.value,
            details={"comment_id": str(comment.id), "is_internal": comment.is_internal},
        )
        await self.db.commit()
        await self.db.refresh(comment)

        self._publish(
            [
                DomainEvent(
                    type=EventType.REQUEST_COMMENT_ADDED,
                    organization_id=req.organization_id,
                    actor_id=actor.id,
                    request_id=req.id,
                    previous_status=req.status,
                    new_status=req.status,
                    payload={"comment_id": str(comment.id), "is_internal": comment.is_internal},
                )
            ]
        )
        return comment

    # =========================================================
    # Internals
    # =========================================================
    async def _validate_assignee(self, actor: Profile, assignee_id: uuid.UUID) -> None:
        if assignee_id == actor.id:
            return
        assignee = await self.db.scalar(
            select(Profile).where(
                Profile.id == assignee_id,
                Profile.organization_id == actor.organization_id,
                Profile.is_active.is_(True),
            )
        )
        if assignee is None or assignee.role != ActorRole.WORKER.value:
            raise ValidationError(
                "Assignee must be an active worker in this organization",
                code="INVALID_ASSIGNEE",
            )

    async def _compare_and_swap(
        self,
        req: MaintenanceRequest,
        *,
        expected_status: RequestStatus,
        expected_assigned_to: Optional[uuid.UUID],
        values: dict,
    ) -> None:
        req_id, org_id = req.id, req.organization_id
        assignee_guard = (
            MaintenanceRequest.assigned_to.is_(None)
            if expected_assigned_to is None
            else MaintenanceRequest.assigned_to == expected_assigned_to
        )
        stmt = (
            update(MaintenanceRequest)
            .where(
                MaintenanceRequest.id == req_id,
                MaintenanceRequest.organization_id == org_id,
                MaintenanceRequest.status == expected_status.value,
                assignee_guard,
            )
            .values(**values, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            # rollback expires every loaded instance, req included
            await self.db.rollback()
            log.info(
                "request changed concurrently",
                extra={"org_id": org_id, "maintenance_request_id": req_id},
            )
            raise RequestChanged()

    async def _commit_transition(
        self,
        req: MaintenanceRequest,
        actor: Profile,
        events: list[DomainEvent],
        *,
        action: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        for event in events:
            record_activity(
                self.db,
                organization_id=req.organization_id,
                actor_id=actor.id,
                request_id=req.id,
                action=event.type.value,
                details={
                    "previous_status": event.previous_status,
                    "new_status": event.new_status,
                    **event.payload,
                },
            )
        if action is not None:
            record_activity(
                self.db,
                organization_id=req.organization_id,
                actor_id=actor.id,
                request_id=req.id,
                action=action,
                details=details,
            )

        await self.db.commit()
        await self.db.refresh(req)

        log.info(
            "request transition committed: %s",
            ", ".join(e.type.value for e in events) or action,
            extra={"org_id": req.organization_id, "actor_id": actor.id, "maintenance_request_id": req.id},
        )
        self._publish(events)

    def _publish(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            self.publisher.publish(event)

    @staticmethod
    def _status_event(
        req: MaintenanceRequest,
        actor: Profile,
        previous: RequestStatus,
        new: RequestStatus,
    ) -> DomainEvent:
        return DomainEvent(
            type=EventType.REQUEST_STATUS_CHANGED,
            organization_id=req.organization_id,
            actor_id=actor.id,
            request_id=req.id,
            previous_status=previous.value,
            new_status=new.value,
        )

    @staticmethod
    def _emergency_event(req: MaintenanceRequest, actor: Profile) -> DomainEvent:
        return DomainEvent(
            type=EventType.REQUEST_PRIORITY_EMERGENCY,
            organization_id=req.organization_id,
            actor_id=actor.id,
            request_id=req.id,
            previous_status=req.status,
            new_status=req.status,
            payload={"priority": RequestPriority.EMERGENCY.value},
        )

