# maintdesk/crud/usage_counts.py
from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from maintdesk.core.roles import ActorRole
from maintdesk.models.profile import Profile
from maintdesk.models.property import Property
from maintdesk.models.sms_log import SmsLog
from maintdesk.models.unit import Unit


async def count_properties(db: AsyncSession, organization_id: uuid.UUID) -> int:
    stmt = select(func.count(Property.id)).where(Property.organization_id == organization_id)
    res = await db.execute(stmt)
    return int(res.scalar() or 0)


async def count_units(db: AsyncSession, organization_id: uuid.UUID) -> int:
    stmt = select(func.count(Unit.id)).where(Unit.organization_id == organization_id)
    res = await db.execute(stmt)
    return int(res.scalar() or 0)


async def count_active_profiles(db: AsyncSession, organization_id: uuid.UUID, role: ActorRole) -> int:
    """
    Counts ACTIVE profiles with the given role. Soft-deleted actors free their slot.
    """
    stmt = (
        select(func.count(Profile.id))
        .where(Profile.organization_id == organization_id)
        .where(Profile.is_active.is_(True))
        .where(Profile.role == role.value)
    )
    res = await db.execute(stmt)
    return int(res.scalar() or 0)


async def count_sms_sent_since(db: AsyncSession, organization_id: uuid.UUID, since: datetime) -> int:
    stmt = (
        select(func.count(SmsLog.id))
        .where(SmsLog.organization_id == organization_id)
        .where(SmsLog.status == "sent")
        .where(SmsLog.created_at >= since)
    )
    res = await db.execute(stmt)
    return int(res.scalar() or 0)
