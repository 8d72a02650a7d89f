from __future__ import annotations

from datetime import datetime

from maintdesk.core.clock import as_utc, utcnow
from maintdesk.core.tier_limits import DEFAULT_TIER, normalize_tier, tier_to_str


def resolve_effective_tier(organization, now: datetime | None = None) -> str:
    """
    Resolve the tier used for limit enforcement from the organization's
    billing fields.

    - active subscription: plan tier
    - trialing and trial not over: plan tier
    - anything else (canceled, past_due, lapsed trial): free tier
    """
    status = normalize_tier(tier_to_str(getattr(organization, "subscription_status", None)))
    plan_tier = tier_to_str(getattr(organization, "plan_tier", None))
    trial_ends_at = as_utc(getattr(organization, "trial_ends_at", None))

    now = now or utcnow()

    if not plan_tier:
        return DEFAULT_TIER

    if status == "active":
        return normalize_tier(plan_tier)

    if status == "trialing":
        if trial_ends_at is None or trial_ends_at > now:
            return normalize_tier(plan_tier)

    return DEFAULT_TIER
