from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from maintdesk.core.clock import utcnow
from maintdesk.core.errors import LimitExceeded, NotFoundError
from maintdesk.core.roles import ActorRole
from maintdesk.core.tier_limits import (
    ResourceType,
    get_limits_for_tier,
    get_next_tier,
    is_at_limit,
    usage_percentage,
    usage_status,
)
from maintdesk.core.tier_resolver import resolve_effective_tier
from maintdesk.crud import usage_counts
from maintdesk.models.organization import Organization

log = logging.getLogger(__name__)

ROLE_RESOURCE: dict[ActorRole, ResourceType] = {
    ActorRole.TENANT: ResourceType.TENANTS,
    ActorRole.WORKER: ResourceType.WORKERS,
    ActorRole.MANAGER: ResourceType.MANAGERS,
}


@dataclass(frozen=True)
class LimitDecision:
    allowed: bool
    resource_type: ResourceType
    current: int
    max: Optional[int]
    tier: str

    def raise_if_denied(self) -> None:
        if self.allowed:
            return
        raise LimitExceeded(
            f"Your {self.tier} plan allows {self.max} {self.resource_type.value}. "
            "Upgrade your plan to add more.",
            resource_type=self.resource_type.value,
            current=self.current,
            max=self.max,
            tier=self.tier,
            next_tier=get_next_tier(self.tier),
        )


def month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class UsageLimiter:
    """
    Compares current per-organization counts against the plan tier.

    Read-then-compare with no locking: two creations racing at the boundary
    can both pass. Plan limits are soft.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _organization(self, organization_id: uuid.UUID) -> Organization:
        org = await self.db.get(Organization, organization_id)
        if org is None:
            raise NotFoundError("Organization not found")
        return org

    async def current_count(self, organization_id: uuid.UUID, resource: ResourceType) -> int:
        if resource is ResourceType.PROPERTIES:
            return await usage_counts.count_properties(self.db, organization_id)
        if resource is ResourceType.UNITS:
            return await usage_counts.count_units(self.db, organization_id)
        if resource is ResourceType.TENANTS:
            return await usage_counts.count_active_profiles(self.db, organization_id, ActorRole.TENANT)
        if resource is ResourceType.WORKERS:
            return await usage_counts.count_active_profiles(self.db, organization_id, ActorRole.WORKER)
        if resource is ResourceType.MANAGERS:
            return await usage_counts.count_active_profiles(self.db, organization_id, ActorRole.MANAGER)
        if resource is ResourceType.SMS:
            return await usage_counts.count_sms_sent_since(self.db, organization_id, month_start(utcnow()))
        raise ValueError(f"Unknown resource type: {resource!r}")

    async def check_limit(self, organization_id: uuid.UUID, resource_type: ResourceType | str) -> LimitDecision:
        resource = ResourceType(resource_type)
        org = await self._organization(organization_id)
        tier = resolve_effective_tier(org)
        maximum = get_limits_for_tier(tier).max_for(resource)
        current = await self.current_count(organization_id, resource)

        decision = LimitDecision(
            allowed=not is_at_limit(current, maximum),
            resource_type=resource,
            current=current,
            max=maximum,
            tier=tier,
        )
        if not decision.allowed:
            log.info(
                "usage limit reached for %s (%s/%s on %s)",
                resource.value,
                current,
                maximum,
                tier,
                extra={"org_id": organization_id},
            )
        return decision

    async def enforce(self, organization_id: uuid.UUID, resource_type: ResourceType | str) -> LimitDecision:
        decision = await self.check_limit(organization_id, resource_type)
        decision.raise_if_denied()
        return decision

    async def usage_summary(self, organization_id: uuid.UUID) -> dict:
        org = await self._organization(organization_id)
        tier = resolve_effective_tier(org)
        limits = get_limits_for_tier(tier)

        resources = {}
        for resource in ResourceType:
            current = await self.current_count(organization_id, resource)
            maximum = limits.max_for(resource)
            resources[resource.value] = {
                "current": current,
                "max": maximum,
                "at_limit": is_at_limit(current, maximum),
                "percentage": usage_percentage(current, maximum),
                "status": usage_status(current, maximum),
            }

        return {
            "organization_id": org.id,
            "plan_tier": org.plan_tier,
            "effective_tier": tier,
            "subscription_status": org.subscription_status,
            "trial_ends_at": org.trial_ends_at,
            "next_tier": get_next_tier(tier),
            "resources": resources,
        }
