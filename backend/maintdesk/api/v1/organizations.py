from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from maintdesk.api.deps.actor import get_current_actor
from maintdesk.auth.permissions import Action, ResourceRef, require
from maintdesk.core.errors import NotFoundError
from maintdesk.crud.activity import record_activity
from maintdesk.db.session import get_db
from maintdesk.models.organization import Organization
from maintdesk.models.profile import Profile
from maintdesk.schemas.organization import OrganizationOut, OrganizationUpdate

router = APIRouter(prefix="/organizations", tags=["organizations"])


async def _current_organization(db: AsyncSession, actor: Profile) -> Organization:
    org = await db.get(Organization, actor.organization_id)
    if org is None:
        raise NotFoundError("Organization not found")
    return org


@router.get("/current", response_model=OrganizationOut)
async def get_current_organization(
    db: AsyncSession = Depends(get_db),
    actor: Profile = Depends(get_current_actor),
):
    require(actor, Action.ORGANIZATION_READ, ResourceRef(organization_id=actor.organization_id))
    return await _current_organization(db, actor)


@router.patch("/current", response_model=OrganizationOut)
async def update_current_organization(
    payload: OrganizationUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Profile = Depends(get_current_actor),
):
    """Owner only. Plan and billing fields are not editable here."""
    require(actor, Action.ORGANIZATION_MANAGE, ResourceRef(organization_id=actor.organization_id))
    org = await _current_organization(db, actor)

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "name" in changes:
        changes["name"] = " ".join(changes["name"].split())
    for field, value in changes.items():
        setattr(org, field, value)

    if changes:
        record_activity(
            db,
            organization_id=org.id,
            actor_id=actor.id,
            action="organization.updated",
            details={"fields": sorted(changes)},
        )
        await db.commit()
        await db.refresh(org)
    return org
