# ============================
# FILE: maintdesk/core/tier_limits.py
# Canonical plan limits per resource
# ============================
from __future__ import annotations

import enum
from dataclasses import dataclass


class ResourceType(str, enum.Enum):
    PROPERTIES = "properties"
    UNITS = "units"
    TENANTS = "tenants"
    WORKERS = "workers"
    MANAGERS = "managers"
    SMS = "sms"  # per calendar month


@dataclass(frozen=True)
class TierLimits:
    # None = unlimited
    max_properties: int | None
    max_units: int | None
    max_tenants: int | None
    max_workers: int | None
    max_managers: int | None
    max_sms_per_month: int | None

    def max_for(self, resource: ResourceType) -> int | None:
        return {
            ResourceType.PROPERTIES: self.max_properties,
            ResourceType.UNITS: self.max_units,
            ResourceType.TENANTS: self.max_tenants,
            ResourceType.WORKERS: self.max_workers,
            ResourceType.MANAGERS: self.max_managers,
            ResourceType.SMS: self.max_sms_per_month,
        }[resource]


DEFAULT_TIER = "free"

TIER_LIMITS: dict[str, TierLimits] = {
    "free": TierLimits(
        max_properties=1,
        max_units=10,
        max_tenants=10,
        max_workers=2,
        max_managers=1,
        max_sms_per_month=0,
    ),
    "basic": TierLimits(
        max_properties=5,
        max_units=50,
        max_tenants=50,
        max_workers=5,
        max_managers=2,
        max_sms_per_month=100,
    ),
    "pro": TierLimits(
        max_properties=25,
        max_units=250,
        max_tenants=250,
        max_workers=25,
        max_managers=10,
        max_sms_per_month=1000,
    ),
    "enterprise": TierLimits(
        max_properties=None,
        max_units=None,
        max_tenants=None,
        max_workers=None,
        max_managers=None,
        max_sms_per_month=None,
    ),
}

_UPGRADE_PATH = {"free": "basic", "basic": "pro", "pro": "enterprise"}


def normalize_tier(value: str | None) -> str:
    return (value or "").strip().lower()


def tier_to_str(tier_obj) -> str | None:
    """
    Supports Enum-like tier objects (tier.value) or plain strings.
    Returns None if empty.
    """
    if tier_obj is None:
        return None
    v = getattr(tier_obj, "value", None)
    if isinstance(v, str) and v:
        return v
    s = str(tier_obj)
    return s if s else None


def get_limits_for_tier(tier: str | None) -> TierLimits:
    """
    Returns the limits table for the given tier.
    Unknown tiers fall back to the free tier.
    """
    t = normalize_tier(tier)
    return TIER_LIMITS.get(t, TIER_LIMITS[DEFAULT_TIER])


def get_limit(tier: str | None, resource: ResourceType | str) -> int | None:
    return get_limits_for_tier(tier).max_for(ResourceType(resource))


def is_at_limit(current: int, maximum: int | None) -> bool:
    if maximum is None:
        return False
    return current >= maximum


def usage_percentage(current: int, maximum: int | None) -> int:
    if maximum is None:
        return 0
    if maximum == 0:
        return 100
    return round(current / maximum * 100)


def usage_status(current: int, maximum: int | None) -> str:
    """green below 80 %, yellow from 80 %, red at or over the limit."""
    if maximum is None:
        return "green"
    pct = usage_percentage(current, maximum)
    if pct >= 100:
        return "red"
    if pct >= 80:
        return "yellow"
    return "green"


def get_next_tier(tier: str | None) -> str | None:
    """
    Returns the next tier in the upgrade path, or None if already highest/unknown.
    """
    return _UPGRADE_PATH.get(normalize_tier(tier))
