# maintdesk/crud/scoped.py
"""
Organization-scoped lookups. A row from another organization is reported
exactly like a missing row.
"""
from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from maintdesk.core.errors import NotFoundError
from maintdesk.core.roles import ActorRole
from maintdesk.models.invitation import Invitation
from maintdesk.models.maintenance_request import MaintenanceRequest
from maintdesk.models.profile import Profile
from maintdesk.models.property import Property
from maintdesk.models.unit import Unit


async def must_get_property(db: AsyncSession, *, org_id: uuid.UUID, property_id: uuid.UUID) -> Property:
    row = await db.scalar(
        select(Property).where(Property.id == property_id, Property.organization_id == org_id)
    )
    if row is None:
        raise NotFoundError("Property not found")
    return row


async def must_get_unit(db: AsyncSession, *, org_id: uuid.UUID, unit_id: uuid.UUID) -> Unit:
    row = await db.scalar(select(Unit).where(Unit.id == unit_id, Unit.organization_id == org_id))
    if row is None:
        raise NotFoundError("Unit not found")
    return row


async def must_get_request(
    db: AsyncSession,
    *,
    org_id: uuid.UUID,
    request_id: uuid.UUID,
    for_update: bool = False,
) -> MaintenanceRequest:
    stmt = select(MaintenanceRequest).where(
        MaintenanceRequest.id == request_id,
        MaintenanceRequest.organization_id == org_id,
    )
    if for_update:
        stmt = stmt.with_for_update()
    row = await db.scalar(stmt)
    if row is None:
        raise NotFoundError("Request not found")
    return row


async def must_get_profile(
    db: AsyncSession,
    *,
    org_id: uuid.UUID,
    profile_id: uuid.UUID,
    role: ActorRole | None = None,
    active_only: bool = True,
) -> Profile:
    stmt = select(Profile).where(Profile.id == profile_id, Profile.organization_id == org_id)
    if role is not None:
        stmt = stmt.where(Profile.role == role.value)
    if active_only:
        stmt = stmt.where(Profile.is_active.is_(True))
    row = await db.scalar(stmt)
    if row is None:
        label = role.value.capitalize() if role is not None else "Profile"
        raise NotFoundError(f"{label} not found")
    return row


async def must_get_invitation(db: AsyncSession, *, org_id: uuid.UUID, invitation_id: uuid.UUID) -> Invitation:
    row = await db.scalar(
        select(Invitation).where(Invitation.id == invitation_id, Invitation.organization_id == org_id)
    )
    if row is None:
        raise NotFoundError("Invitation not found")
    return row
