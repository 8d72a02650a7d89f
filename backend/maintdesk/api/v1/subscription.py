from __future__ import annotations

from fastapi import APIRouter, Depends

from maintdesk.api.deps.actor import get_current_actor
from maintdesk.api.deps.services import get_usage_limiter
from maintdesk.core.errors import ForbiddenError, ValidationError
from maintdesk.core.roles import STAFF_ROLES
from maintdesk.core.tier_limits import ResourceType
from maintdesk.models.profile import Profile
from maintdesk.schemas.subscription import CheckLimitRequest, CheckLimitResponse, UsageSummaryOut
from maintdesk.services.usage_limiter import UsageLimiter

router = APIRouter(prefix="/subscription", tags=["subscription"])


def _require_staff(actor: Profile) -> None:
    if actor.actor_role not in STAFF_ROLES:
        raise ForbiddenError("Only managers and owners can view plan usage", code="ROLE_INSUFFICIENT")


@router.get("", response_model=UsageSummaryOut)
async def get_subscription(
    actor: Profile = Depends(get_current_actor),
    limiter: UsageLimiter = Depends(get_usage_limiter),
):
    """
    Plan tier, effective tier and current usage for every limited resource.
    """
    _require_staff(actor)
    return await limiter.usage_summary(actor.organization_id)


@router.post("/check-limit", response_model=CheckLimitResponse)
async def check_limit(
    payload: CheckLimitRequest,
    actor: Profile = Depends(get_current_actor),
    limiter: UsageLimiter = Depends(get_usage_limiter),
):
    """Pre-flight check used before showing an "add" form."""
    _require_staff(actor)
    try:
        resource = ResourceType(payload.resource_type.strip().lower())
    except ValueError:
        allowed = ", ".join(r.value for r in ResourceType)
        raise ValidationError(f"Invalid resource_type. Allowed: {allowed}", code="INVALID_RESOURCE_TYPE")

    decision = await limiter.check_limit(actor.organization_id, resource)
    return CheckLimitResponse(
        allowed=decision.allowed,
        resource_type=decision.resource_type.value,
        current=decision.current,
        max=decision.max,
        tier=decision.tier,
    )
