from __future__ import annotations

import logging
import uuid
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from maintdesk.api.deps.actor import get_current_actor
from maintdesk.auth.permissions import Action, ResourceRef, require
from maintdesk.core.errors import ConflictError
from maintdesk.core.roles import ActorRole
from maintdesk.core.tier_limits import ResourceType
from maintdesk.crud.activity import record_activity
from maintdesk.crud.scoped import must_get_profile, must_get_property, must_get_unit
from maintdesk.crud.units import place_tenant
from maintdesk.db.session import get_db
from maintdesk.models.profile import Profile
from maintdesk.models.property import Property
from maintdesk.models.unit import Unit
from maintdesk.schemas.property import PropertyCreate, PropertyOut, UnitCreate, UnitOut, UnitTenantUpdate
from maintdesk.services.usage_limiter import UsageLimiter

log = logging.getLogger(__name__)

router = APIRouter(prefix="/properties", tags=["properties"])
units_router = APIRouter(prefix="/units", tags=["units"])


def _org_ref(actor: Profile) -> ResourceRef:
    return ResourceRef(organization_id=actor.organization_id)


# =========================================================
# PROPERTIES
# =========================================================
@router.post("", response_model=PropertyOut, status_code=status.HTTP_201_CREATED)
async def create_property(
    payload: PropertyCreate,
    db: AsyncSession = Depends(get_db),
    actor: Profile = Depends(get_current_actor),
):
    require(actor, Action.PROPERTY_MANAGE, _org_ref(actor))
    await UsageLimiter(db).enforce(actor.organization_id, ResourceType.PROPERTIES)

    prop = Property(organization_id=actor.organization_id, **payload.model_dump())
    db.add(prop)
    await db.flush()
    record_activity(
        db,
        organization_id=actor.organization_id,
        actor_id=actor.id,
        action="property.created",
        details={"property_id": str(prop.id)},
    )
    await db.commit()
    await db.refresh(prop)
    return prop


@router.get("", response_model=List[PropertyOut])
async def list_properties(db: AsyncSession = Depends(get_db), actor: Profile = Depends(get_current_actor)):
    require(actor, Action.PROPERTY_READ, _org_ref(actor))
    res = await db.execute(
        select(Property)
        .where(Property.organization_id == actor.organization_id)
        .order_by(Property.name.asc())
    )
    return list(res.scalars().all())


@router.get("/{property_id}", response_model=PropertyOut)
async def get_property(
    property_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor: Profile = Depends(get_current_actor),
):
    require(actor, Action.PROPERTY_READ, _org_ref(actor))
    return await must_get_property(db, org_id=actor.organization_id, property_id=property_id)


# =========================================================
# UNITS (nested under a property)
# =========================================================
@router.post("/{property_id}/units", response_model=UnitOut, status_code=status.HTTP_201_CREATED)
async def create_unit(
    property_id: uuid.UUID,
    payload: UnitCreate,
    db: AsyncSession = Depends(get_db),
    actor: Profile = Depends(get_current_actor),
):
    require(actor, Action.UNIT_MANAGE, _org_ref(actor))
    prop = await must_get_property(db, org_id=actor.organization_id, property_id=property_id)

    label = payload.label.strip()
    taken = await db.scalar(select(Unit.id).where(Unit.property_id == prop.id, Unit.label == label))
    if taken is not None:
        raise ConflictError("A unit with this label already exists in the property", code="UNIT_LABEL_TAKEN")

    await UsageLimiter(db).enforce(actor.organization_id, ResourceType.UNITS)

    unit = Unit(organization_id=prop.organization_id, property_id=prop.id, label=label)
    db.add(unit)
    await db.commit()
    await db.refresh(unit)
    return unit


@router.get("/{property_id}/units", response_model=List[UnitOut])
async def list_units(
    property_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor: Profile = Depends(get_current_actor),
):
    require(actor, Action.PROPERTY_READ, _org_ref(actor))
    prop = await must_get_property(db, org_id=actor.organization_id, property_id=property_id)
    res = await db.execute(select(Unit).where(Unit.property_id == prop.id).order_by(Unit.label.asc()))
    return list(res.scalars().all())


@units_router.put("/{unit_id}/tenant", response_model=UnitOut)
async def set_unit_tenant(
    unit_id: uuid.UUID,
    payload: UnitTenantUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Profile = Depends(get_current_actor),
):
    """
    Place a tenant in the unit (moving them out of any other unit) or
    vacate it with `{"tenant_id": null}`.
    """
    require(actor, Action.UNIT_MANAGE, _org_ref(actor))
    unit = await must_get_unit(db, org_id=actor.organization_id, unit_id=unit_id)

    tenant_id = None
    if payload.tenant_id is not None:
        tenant = await must_get_profile(
            db, org_id=actor.organization_id, profile_id=payload.tenant_id, role=ActorRole.TENANT
        )
        tenant_id = tenant.id

    previous = unit.tenant_id
    await place_tenant(db, unit, tenant_id)
    record_activity(
        db,
        organization_id=actor.organization_id,
        actor_id=actor.id,
        action="unit.tenant_changed",
        details={
            "unit_id": str(unit.id),
            "previous_tenant_id": str(previous) if previous else None,
            "tenant_id": str(tenant_id) if tenant_id else None,
        },
    )
    await db.commit()
    await db.refresh(unit)

    log.info("unit occupancy changed", extra={"org_id": actor.organization_id, "actor_id": actor.id})
    return unit
