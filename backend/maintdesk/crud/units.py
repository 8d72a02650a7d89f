# maintdesk/crud/units.py
from __future__ import annotations

import uuid

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from maintdesk.models.unit import Unit


async def vacate_units_of_tenant(db: AsyncSession, tenant_id: uuid.UUID) -> None:
    await db.execute(
        update(Unit)
        .where(Unit.tenant_id == tenant_id)
        .values(tenant_id=None)
        .execution_options(synchronize_session=False)
    )


async def place_tenant(db: AsyncSession, unit: Unit, tenant_id: uuid.UUID | None) -> Unit:
    """
    Make `tenant_id` the sole occupant of `unit` (or empty it with None).

    The tenant is cleared from whatever unit it occupied before, within the
    caller's transaction, so a tenant never occupies two units at once.
    The previous occupant of `unit`, if any, loses the unit.
    """
    if tenant_id is not None:
        await vacate_units_of_tenant(db, tenant_id)
    await db.execute(
        update(Unit)
        .where(Unit.id == unit.id)
        .values(tenant_id=tenant_id)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(unit)
    return unit
