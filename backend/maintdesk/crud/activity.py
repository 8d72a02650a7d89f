# maintdesk/crud/activity.py
from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from maintdesk.models.activity_log import ActivityLog


def record_activity(
    db: AsyncSession,
    *,
    organization_id: uuid.UUID,
    actor_id: uuid.UUID | None,
    action: str,
    request_id: uuid.UUID | None = None,
    details: dict[str, Any] | None = None,
) -> ActivityLog:
    """Adds an audit row to the caller's transaction (no flush, no commit)."""
    row = ActivityLog(
        organization_id=organization_id,
        actor_id=actor_id,
        request_id=request_id,
        action=action,
        details=details or {},
    )
    db.add(row)
    return row
