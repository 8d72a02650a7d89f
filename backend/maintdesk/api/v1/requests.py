from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from maintdesk.api.deps.actor import get_current_actor
from maintdesk.api.deps.services import get_request_lifecycle
from maintdesk.models.profile import Profile
from maintdesk.schemas.maintenance_request import (
    CommentCreate,
    CommentOut,
    RequestCreate,
    RequestOut,
    RequestUpdate,
)
from maintdesk.services.request_lifecycle import RequestLifecycle

router = APIRouter(prefix="/requests", tags=["requests"])

DETAIL_FIELDS = ("title", "description", "priority", "category")


# =========================================================
# CREATE + LIST
# =========================================================
@router.post("", response_model=RequestOut, status_code=status.HTTP_201_CREATED)
async def create_request(
    payload: RequestCreate,
    actor: Profile = Depends(get_current_actor),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
):
    return await lifecycle.create(
        actor,
        unit_id=payload.unit_id,
        title=payload.title,
        description=payload.description,
        priority=payload.priority,
        category=payload.category,
    )


@router.get("", response_model=List[RequestOut])
async def list_requests(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    actor: Profile = Depends(get_current_actor),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
):
    """
    Tenants see their own requests, workers the ones assigned to them,
    managers and owners the whole organization.
    """
    return await lifecycle.list_for_actor(actor, status=status_filter, limit=limit, offset=offset)


# =========================================================
# DETAIL + UPDATE
# =========================================================
@router.get("/{request_id}", response_model=RequestOut)
async def get_request(
    request_id: uuid.UUID,
    actor: Profile = Depends(get_current_actor),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
):
    return await lifecycle.get(actor, request_id)


@router.put("/{request_id}", response_model=RequestOut)
async def update_request(
    request_id: uuid.UUID,
    payload: RequestUpdate,
    actor: Profile = Depends(get_current_actor),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
):
    """
    Applies, in order: assignment (`assigned_to`, null unassigns), detail
    edits, then the status change. Each step is its own transition.
    """
    sent = payload.model_fields_set
    req = None

    if "assigned_to" in sent:
        if payload.assigned_to is None:
            req = await lifecycle.unassign(actor, request_id)
        else:
            req = await lifecycle.assign(actor, request_id, payload.assigned_to)

    details = {f: getattr(payload, f) for f in DETAIL_FIELDS if f in sent and getattr(payload, f) is not None}
    if details:
        req = await lifecycle.update_details(actor, request_id, **details)

    if payload.status is not None:
        req = await lifecycle.set_status(
            actor,
            request_id,
            payload.status,
            resolution_notes=payload.resolution_notes,
        )

    if req is None:
        req = await lifecycle.get(actor, request_id)
    return req


# =========================================================
# COMMENTS
# =========================================================
@router.get("/{request_id}/comments", response_model=List[CommentOut])
async def list_comments(
    request_id: uuid.UUID,
    actor: Profile = Depends(get_current_actor),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
):
    """Internal comments are left out for tenants."""
    return await lifecycle.list_comments(actor, request_id)


@router.post("/{request_id}/comments", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
async def add_comment(
    request_id: uuid.UUID,
    payload: CommentCreate,
    actor: Profile = Depends(get_current_actor),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
):
    return await lifecycle.add_comment(actor, request_id, payload.text, is_internal=payload.is_internal)
