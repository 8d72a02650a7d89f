"""
People in the organization: managers, workers and tenants.

Removal is a soft delete (`is_active = false`): the profile keeps its id so
request history stays valid, and its plan seat is freed.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from maintdesk.api.deps.actor import get_current_actor
from maintdesk.auth.permissions import Action, ResourceRef, require
from maintdesk.core.errors import ConflictError
from maintdesk.core.request_states import ACTIVE_STATUSES
from maintdesk.core.roles import ActorRole
from maintdesk.core.security import hash_password
from maintdesk.crud.activity import record_activity
from maintdesk.crud.scoped import must_get_profile
from maintdesk.crud.units import vacate_units_of_tenant
from maintdesk.db.session import get_db
from maintdesk.models.maintenance_request import MaintenanceRequest
from maintdesk.models.notification_preference import NotificationPreference
from maintdesk.models.profile import Profile
from maintdesk.models.unit import Unit
from maintdesk.schemas.profile import ProfileOut, StaffCreate, TenantOut
from maintdesk.services.usage_limiter import ROLE_RESOURCE, UsageLimiter

log = logging.getLogger(__name__)

managers_router = APIRouter(prefix="/managers", tags=["managers"])
workers_router = APIRouter(prefix="/workers", tags=["workers"])
tenants_router = APIRouter(prefix="/tenants", tags=["tenants"])


@dataclass(frozen=True)
class RoleActions:
    read: Action
    delete: Action
    create: Optional[Action] = None


ROLE_ACTIONS = {
    ActorRole.MANAGER: RoleActions(Action.MANAGER_READ, Action.MANAGER_DELETE, Action.MANAGER_CREATE),
    ActorRole.WORKER: RoleActions(Action.WORKER_READ, Action.WORKER_DELETE, Action.WORKER_CREATE),
    ActorRole.TENANT: RoleActions(Action.TENANT_READ, Action.TENANT_DELETE),
}


# =========================================================
# Shared helpers
# =========================================================
async def _list_profiles(db: AsyncSession, actor: Profile, role: ActorRole) -> list[Profile]:
    require(actor, ROLE_ACTIONS[role].read, ResourceRef(organization_id=actor.organization_id))
    stmt = (
        select(Profile)
        .where(
            Profile.organization_id == actor.organization_id,
            Profile.role == role.value,
            Profile.is_active.is_(True),
        )
        .order_by(Profile.created_at.asc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def _get_profile(db: AsyncSession, actor: Profile, role: ActorRole, profile_id: uuid.UUID) -> Profile:
    profile = await must_get_profile(db, org_id=actor.organization_id, profile_id=profile_id, role=role)
    require(
        actor,
        ROLE_ACTIONS[role].read,
        ResourceRef(organization_id=profile.organization_id, subject_id=profile.id),
    )
    return profile


async def _create_staff(db: AsyncSession, actor: Profile, role: ActorRole, payload: StaffCreate) -> Profile:
    require(actor, ROLE_ACTIONS[role].create, ResourceRef(organization_id=actor.organization_id))

    email = Profile.normalize_email(str(payload.email))
    existing = await db.scalar(select(Profile).where(Profile.email == email))
    if existing is not None:
        if existing.organization_id != actor.organization_id:
            raise ConflictError("An account with this email already exists", code="ACCOUNT_EXISTS")
        if existing.is_active:
            raise ConflictError("This person is already a member of your organization", code="ALREADY_MEMBER")

    await UsageLimiter(db).enforce(actor.organization_id, ROLE_RESOURCE[role])

    if existing is not None:
        # removed member of this organization comes back
        profile = existing
        profile.is_active = True
        profile.role = role.value
        profile.password_hash = hash_password(payload.password)
        profile.full_name = payload.full_name or profile.full_name
        profile.phone_e164 = payload.phone_e164 or profile.phone_e164
    else:
        profile = Profile(
            organization_id=actor.organization_id,
            role=role.value,
            email=email,
            password_hash=hash_password(payload.password),
            full_name=payload.full_name,
            phone_e164=payload.phone_e164,
            is_active=True,
        )
        db.add(profile)
        await db.flush()
        db.add(NotificationPreference.defaults(profile.id))

    record_activity(
        db,
        organization_id=actor.organization_id,
        actor_id=actor.id,
        action=f"{role.value}.created",
        details={"profile_id": str(profile.id)},
    )
    await db.commit()
    await db.refresh(profile)

    log.info("%s account created", role.value, extra={"org_id": actor.organization_id, "actor_id": actor.id})
    return profile


async def _remove_profile(db: AsyncSession, actor: Profile, role: ActorRole, profile_id: uuid.UUID) -> Profile:
    profile = await must_get_profile(db, org_id=actor.organization_id, profile_id=profile_id, role=role)
    require(
        actor,
        ROLE_ACTIONS[role].delete,
        ResourceRef(organization_id=profile.organization_id, subject_id=profile.id),
    )

    if role is ActorRole.WORKER:
        active = await db.scalar(
            select(func.count(MaintenanceRequest.id)).where(
                MaintenanceRequest.organization_id == profile.organization_id,
                MaintenanceRequest.assigned_to == profile.id,
                MaintenanceRequest.status.in_([s.value for s in ACTIVE_STATUSES]),
            )
        )
        if active:
            raise ConflictError(
                "Reassign or close this worker's open requests first",
                code="WORKER_HAS_ACTIVE_REQUESTS",
                active_requests=int(active),
            )

    if role is ActorRole.TENANT:
        await vacate_units_of_tenant(db, profile.id)

    profile.is_active = False
    record_activity(
        db,
        organization_id=actor.organization_id,
        actor_id=actor.id,
        action=f"{role.value}.removed",
        details={"profile_id": str(profile.id)},
    )
    await db.commit()

    log.info("%s removed", role.value, extra={"org_id": actor.organization_id, "actor_id": actor.id})
    return profile


async def _tenant_units(db: AsyncSession, tenant_ids: list[uuid.UUID]) -> dict[uuid.UUID, uuid.UUID]:
    if not tenant_ids:
        return {}
    res = await db.execute(select(Unit.tenant_id, Unit.id).where(Unit.tenant_id.in_(tenant_ids)))
    return {tenant_id: unit_id for tenant_id, unit_id in res.all()}


def _tenant_out(profile: Profile, unit_id: Optional[uuid.UUID]) -> TenantOut:
    return TenantOut.model_validate(profile).model_copy(update={"unit_id": unit_id})


# =========================================================
# MANAGERS
# =========================================================
@managers_router.get("", response_model=List[ProfileOut])
async def list_managers(db: AsyncSession = Depends(get_db), actor: Profile = Depends(get_current_actor)):
    return await _list_profiles(db, actor, ActorRole.MANAGER)


@managers_router.post("", response_model=ProfileOut, status_code=status.HTTP_201_CREATED)
async def create_manager(
    payload: StaffCreate,
    db: AsyncSession = Depends(get_db),
    actor: Profile = Depends(get_current_actor),
):
    """Owner only. Counts against the plan's manager seats."""
    return await _create_staff(db, actor, ActorRole.MANAGER, payload)


@managers_router.get("/{manager_id}", response_model=ProfileOut)
async def get_manager(
    manager_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor: Profile = Depends(get_current_actor),
):
    return await _get_profile(db, actor, ActorRole.MANAGER, manager_id)


@managers_router.delete("/{manager_id}", response_model=ProfileOut)
async def delete_manager(
    manager_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor: Profile = Depends(get_current_actor),
):
    return await _remove_profile(db, actor, ActorRole.MANAGER, manager_id)


# =========================================================
# WORKERS
# =========================================================
@workers_router.get("", response_model=List[ProfileOut])
async def list_workers(db: AsyncSession = Depends(get_db), actor: Profile = Depends(get_current_actor)):
    return await _list_profiles(db, actor, ActorRole.WORKER)


@workers_router.post("", response_model=ProfileOut, status_code=status.HTTP_201_CREATED)
async def create_worker(
    payload: StaffCreate,
    db: AsyncSession = Depends(get_db),
    actor: Profile = Depends(get_current_actor),
):
    return await _create_staff(db, actor, ActorRole.WORKER, payload)


@workers_router.get("/{worker_id}", response_model=ProfileOut)
async def get_worker(
    worker_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor: Profile = Depends(get_current_actor),
):
    return await _get_profile(db, actor, ActorRole.WORKER, worker_id)


@workers_router.delete("/{worker_id}", response_model=ProfileOut)
async def delete_worker(
    worker_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor: Profile = Depends(get_current_actor),
):
    """
    Blocked with 409 WORKER_HAS_ACTIVE_REQUESTS while the worker still holds
    open requests. Completed requests keep pointing at the removed worker.
    """
    return await _remove_profile(db, actor, ActorRole.WORKER, worker_id)


# =========================================================
# TENANTS
# =========================================================
@tenants_router.get("", response_model=List[TenantOut])
async def list_tenants(db: AsyncSession = Depends(get_db), actor: Profile = Depends(get_current_actor)):
    tenants = await _list_profiles(db, actor, ActorRole.TENANT)
    units = await _tenant_units(db, [t.id for t in tenants])
    return [_tenant_out(t, units.get(t.id)) for t in tenants]


@tenants_router.get("/{tenant_id}", response_model=TenantOut)
async def get_tenant(
    tenant_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor: Profile = Depends(get_current_actor),
):
    tenant = await _get_profile(db, actor, ActorRole.TENANT, tenant_id)
    units = await _tenant_units(db, [tenant.id])
    return _tenant_out(tenant, units.get(tenant.id))


@tenants_router.delete("/{tenant_id}", response_model=ProfileOut)
async def delete_tenant(
    tenant_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor: Profile = Depends(get_current_actor),
):
    """Removes the tenant and frees the unit they occupied."""
    return await _remove_profile(db, actor, ActorRole.TENANT, tenant_id)
