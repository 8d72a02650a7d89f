from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from maintdesk.api.deps.actor import get_current_actor
from maintdesk.core.errors import NotFoundError
from maintdesk.db.session import get_db
from maintdesk.models.notification import Notification
from maintdesk.models.notification_preference import NotificationPreference
from maintdesk.models.profile import Profile
from maintdesk.schemas.notification import NotificationOut, PreferencesOut, PreferencesUpdate, UnreadCount

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _own(actor: Profile):
    return (
        Notification.recipient_id == actor.id,
        Notification.organization_id == actor.organization_id,
    )


# =========================================================
# INBOX
# =========================================================
@router.get("", response_model=List[NotificationOut])
async def list_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    actor: Profile = Depends(get_current_actor),
):
    stmt = select(Notification).where(*_own(actor))
    if unread_only:
        stmt = stmt.where(Notification.read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc()).limit(limit).offset(offset)
    return list((await db.execute(stmt)).scalars().all())


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(db: AsyncSession = Depends(get_db), actor: Profile = Depends(get_current_actor)):
    count = await db.scalar(
        select(func.count(Notification.id)).where(*_own(actor), Notification.read.is_(False))
    )
    return UnreadCount(unread=int(count or 0))


@router.post("/read-all", response_model=UnreadCount)
async def mark_all_read(db: AsyncSession = Depends(get_db), actor: Profile = Depends(get_current_actor)):
    await db.execute(
        update(Notification)
        .where(*_own(actor), Notification.read.is_(False))
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return UnreadCount(unread=0)


@router.post("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(
    notification_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor: Profile = Depends(get_current_actor),
):
    row = await db.scalar(select(Notification).where(Notification.id == notification_id, *_own(actor)))
    if row is None:
        raise NotFoundError("Notification not found")
    if not row.read:
        row.read = True
        await db.commit()
        await db.refresh(row)
    return row


# =========================================================
# PREFERENCES
# =========================================================
async def _preferences(db: AsyncSession, actor: Profile) -> NotificationPreference:
    pref = await db.get(NotificationPreference, actor.id)
    if pref is None:
        pref = NotificationPreference.defaults(actor.id)
        db.add(pref)
        await db.flush()
    return pref


@router.get("/preferences", response_model=PreferencesOut)
async def get_preferences(db: AsyncSession = Depends(get_db), actor: Profile = Depends(get_current_actor)):
    pref = await _preferences(db, actor)
    await db.commit()
    return pref


@router.put("/preferences", response_model=PreferencesOut)
async def update_preferences(
    payload: PreferencesUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Profile = Depends(get_current_actor),
):
    """Only flags present in the body change."""
    pref = await _preferences(db, actor)
    for field, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(pref, field, value)
    await db.commit()
    await db.refresh(pref)
    return pref
