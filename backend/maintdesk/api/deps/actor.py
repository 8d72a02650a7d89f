from __future__ import annotations

import uuid

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from maintdesk.core.errors import UnauthorizedError
from maintdesk.core.security import bearer_scheme, decode_access_token
from maintdesk.db.session import get_db
from maintdesk.models.profile import Profile


async def get_current_actor(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    """
    Resolve the bearer token to an ACTIVE profile. Soft-deleted actors are
    rejected even while their token has not expired.
    """
    if creds is None or not creds.credentials:
        raise UnauthorizedError("Missing bearer token")

    sub = decode_access_token(creds.credentials)
    try:
        profile_id = uuid.UUID(sub)
    except ValueError:
        raise UnauthorizedError("Invalid token")

    profile = await db.get(Profile, profile_id)
    if profile is None or not profile.is_active:
        raise UnauthorizedError("This account is no longer active")
    return profile
