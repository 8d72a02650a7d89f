# backend/maintdesk/api/v1/auth.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from maintdesk.api.deps.actor import get_current_actor
from maintdesk.core.errors import ConflictError, InternalError, UnauthorizedError
from maintdesk.core.roles import ActorRole
from maintdesk.core.security import create_access_token, hash_password, verify_password
from maintdesk.crud.activity import record_activity
from maintdesk.db.session import get_db
from maintdesk.models.notification_preference import NotificationPreference
from maintdesk.models.organization import Organization
from maintdesk.models.profile import Profile
from maintdesk.schemas.auth import LoginRequest, ProfileUpdateRequest, SignupRequest, TokenResponse
from maintdesk.schemas.profile import ProfileOut

router = APIRouter(prefix="/auth", tags=["auth"])

log = logging.getLogger(__name__)

ORGANIZATION_CODE_ATTEMPTS = 5


async def _unique_organization_code(db: AsyncSession) -> str:
    for _ in range(ORGANIZATION_CODE_ATTEMPTS):
        code = Organization.generate_code()
        taken = await db.scalar(select(Organization.id).where(Organization.code == code))
        if taken is None:
            return code
    raise InternalError("Could not allocate an organization code")


def _token_response(profile: Profile) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(str(profile.id)),
        profile=ProfileOut.model_validate(profile),
    )


# =========================================================
# SIGNUP (creates organization + owner)
# =========================================================
@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def signup(payload: SignupRequest, db: AsyncSession = Depends(get_db)) -> TokenResponse:
    """
    Body: {"organization_name": "...", "email": "...", "password": "..."}
    Creates the organization on the free tier and its owner, returns a token.
    """
    email = Profile.normalize_email(str(payload.email))

    existing = await db.scalar(select(Profile.id).where(Profile.email == email))
    if existing is not None:
        raise ConflictError("An account with this email already exists", code="ACCOUNT_EXISTS")

    org = Organization(
        name=" ".join(payload.organization_name.split()),
        code=await _unique_organization_code(db),
    )
    db.add(org)
    await db.flush()

    owner = Profile(
        organization_id=org.id,
        role=ActorRole.OWNER.value,
        email=email,
        password_hash=hash_password(payload.password),
        full_name=payload.full_name,
        phone_e164=payload.phone_e164,
        is_active=True,
    )
    db.add(owner)
    await db.flush()
    db.add(NotificationPreference.defaults(owner.id))

    record_activity(db, organization_id=org.id, actor_id=owner.id, action="organization.created")
    await db.commit()
    await db.refresh(owner)

    log.info("organization created", extra={"org_id": org.id, "actor_id": owner.id})
    return _token_response(owner)


# =========================================================
# LOGIN
# =========================================================
@router.post("/login", response_model=TokenResponse)
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)) -> TokenResponse:
    email = Profile.normalize_email(str(payload.email))
    profile = await db.scalar(select(Profile).where(Profile.email == email))

    # Same answer for unknown email, wrong password and removed account
    if profile is None or not profile.is_active or not verify_password(payload.password, profile.password_hash):
        raise UnauthorizedError("Invalid email or password", code="INVALID_CREDENTIALS")

    return _token_response(profile)


# =========================================================
# ME
# =========================================================
@router.get("/me", response_model=ProfileOut)
async def me(actor: Profile = Depends(get_current_actor)):
    return actor


@router.patch("/me", response_model=ProfileOut)
async def update_me(
    payload: ProfileUpdateRequest,
    db: AsyncSession = Depends(get_db),
    actor: Profile = Depends(get_current_actor),
):
    """
    Update own profile fields.
    Only fields present in the body are changed; explicit null clears.
    """
    for field in payload.model_fields_set:
        value = getattr(payload, field)
        if field == "sms_notifications" and value is None:
            continue
        setattr(actor, field, value)

    await db.commit()
    await db.refresh(actor)
    return actor
