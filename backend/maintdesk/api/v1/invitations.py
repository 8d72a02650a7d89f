from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends, Query

from maintdesk.api.deps.actor import get_current_actor
from maintdesk.api.deps.services import get_invitation_service
from maintdesk.core.security import create_access_token
from maintdesk.models.profile import Profile
from maintdesk.schemas.invitation import (
    AcceptInvitation,
    AcceptInvitationResponse,
    InvitationCreate,
    InvitationIssued,
    InvitationOut,
    InvitationPreview,
)
from maintdesk.schemas.profile import ProfileOut
from maintdesk.services.invitations import InvitationService

router = APIRouter(prefix="/invitations", tags=["invitations"])


# =========================================================
# PUBLIC (token holder, no session yet)
# =========================================================
@router.get("/accept", response_model=InvitationPreview)
async def preview_invitation(
    token: str = Query(..., min_length=1),
    service: InvitationService = Depends(get_invitation_service),
):
    """
    Validate a token without consuming it. Used to pre-fill the join form.
    """
    inv, org = await service.preview(token)
    return InvitationPreview(
        email=inv.email,
        role=inv.role,
        organization_name=org.name if org else None,
        property_id=inv.property_id,
        unit_id=inv.unit_id,
        expires_at=inv.expires_at,
    )


@router.post("/accept", response_model=AcceptInvitationResponse)
async def accept_invitation(
    payload: AcceptInvitation,
    service: InvitationService = Depends(get_invitation_service),
):
    """
    Redeem a token: creates the account in the inviting organization and
    signs it in. A token can be redeemed exactly once.
    """
    profile = await service.redeem(
        token=payload.token,
        email=str(payload.email),
        password=payload.password,
        full_name=payload.full_name,
        phone=payload.phone,
    )
    return AcceptInvitationResponse(
        access_token=create_access_token(str(profile.id)),
        profile=ProfileOut.model_validate(profile),
    )


# =========================================================
# ISSUE / LIST / REVOKE (manager/owner)
# =========================================================
@router.post("", response_model=InvitationIssued)
async def create_invitation(
    payload: InvitationCreate,
    actor: Profile = Depends(get_current_actor),
    service: InvitationService = Depends(get_invitation_service),
):
    """
    Invite a tenant, worker or manager (manager invitations are owner-only).
    Seats are counted against the plan here and again on acceptance.
    """
    inv = await service.issue(
        actor,
        email=str(payload.email),
        role=payload.role,
        property_id=payload.property_id,
        unit_id=payload.unit_id,
    )
    return InvitationIssued(
        **InvitationOut.model_validate(inv).model_dump(),
        token=inv.token,
        invite_url=service.invite_url(inv.token),
    )


@router.get("", response_model=List[InvitationOut])
async def list_invitations(
    actor: Profile = Depends(get_current_actor),
    service: InvitationService = Depends(get_invitation_service),
):
    return await service.list(actor)


@router.delete("/{invitation_id}", response_model=InvitationOut)
async def revoke_invitation(
    invitation_id: uuid.UUID,
    actor: Profile = Depends(get_current_actor),
    service: InvitationService = Depends(get_invitation_service),
):
    return await service.revoke(actor, invitation_id)
