# tests/test_usage_limiter.py
from __future__ import annotations

from datetime import timedelta
from types import SimpleNamespace

import pytest

from maintdesk.core.clock import utcnow
from maintdesk.core.errors import LimitExceeded
from maintdesk.core.tier_limits import (
    ResourceType,
    get_limit,
    get_next_tier,
    usage_percentage,
    usage_status,
)
from maintdesk.core.tier_resolver import resolve_effective_tier
from maintdesk.models import SmsLog
from maintdesk.services.usage_limiter import UsageLimiter, month_start


# ---------------------------------------------------------
# Tier resolution
# ---------------------------------------------------------
def org_like(tier, status, trial_ends_at=None):
    return SimpleNamespace(plan_tier=tier, subscription_status=status, trial_ends_at=trial_ends_at)


def test_active_subscription_uses_plan_tier():
    assert resolve_effective_tier(org_like("pro", "active")) == "pro"


def test_running_trial_uses_plan_tier():
    now = utcnow()
    assert resolve_effective_tier(org_like("basic", "trialing", now + timedelta(days=3)), now) == "basic"


def test_lapsed_trial_falls_back_to_free():
    now = utcnow()
    assert resolve_effective_tier(org_like("pro", "trialing", now - timedelta(seconds=1)), now) == "free"


@pytest.mark.parametrize("status", ["past_due", "canceled", "", None])
def test_inactive_subscription_falls_back_to_free(status):
    assert resolve_effective_tier(org_like("enterprise", status)) == "free"


def test_naive_trial_end_is_treated_as_utc():
    now = utcnow()
    naive = (now + timedelta(hours=1)).replace(tzinfo=None)
    assert resolve_effective_tier(org_like("pro", "trialing", naive), now) == "pro"


def test_limits_table():
    assert get_limit("free", ResourceType.WORKERS) == 2
    assert get_limit("basic", "sms") == 100
    assert get_limit("enterprise", ResourceType.UNITS) is None
    # unknown tiers are treated as free
    assert get_limit("platinum", ResourceType.PROPERTIES) == 1
    assert get_next_tier("pro") == "enterprise"
    assert get_next_tier("enterprise") is None


@pytest.mark.parametrize(
    "current, maximum, pct, status",
    [
        (0, 10, 0, "green"),
        (7, 10, 70, "green"),
        (8, 10, 80, "yellow"),
        (10, 10, 100, "red"),
        (12, 10, 120, "red"),
        (5, None, 0, "green"),
        (0, 0, 100, "red"),
    ],
)
def test_usage_percentage_and_status(current, maximum, pct, status):
    assert usage_percentage(current, maximum) == pct
    assert usage_status(current, maximum) == status


# ---------------------------------------------------------
# Counting against the database
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_check_limit_counts_active_profiles_only(db, make):
    org = await make.organization(tier="free")
    await make.profile(org, "worker")
    await make.profile(org, "worker", is_active=False)
    await db.commit()

    limiter = UsageLimiter(db)
    decision = await limiter.check_limit(org.id, ResourceType.WORKERS)
    assert decision.allowed
    assert (decision.current, decision.max, decision.tier) == (1, 2, "free")

    await make.profile(org, "worker")
    await db.commit()
    decision = await limiter.check_limit(org.id, "workers")
    assert not decision.allowed
    with pytest.raises(LimitExceeded) as exc:
        decision.raise_if_denied()
    assert exc.value.extra["resource_type"] == "workers"


@pytest.mark.asyncio
async def test_lapsed_trial_enforces_free_limits(db, make):
    org = await make.organization(tier="pro", status="trialing", trial_days=-1)
    prop = await make.property(org)
    await db.commit()

    with pytest.raises(LimitExceeded) as exc:
        await UsageLimiter(db).enforce(org.id, ResourceType.PROPERTIES)
    assert exc.value.extra["tier"] == "free"
    assert prop.id is not None


@pytest.mark.asyncio
async def test_enterprise_is_unlimited(db, make):
    org = await make.organization(tier="enterprise")
    for _ in range(3):
        await make.profile(org, "manager")
    await db.commit()

    decision = await UsageLimiter(db).enforce(org.id, ResourceType.MANAGERS)
    assert decision.allowed
    assert decision.max is None


@pytest.mark.asyncio
async def test_sms_counts_sent_messages_this_month(db, make):
    org = await make.organization(tier="basic", sms_enabled=True)
    now = utcnow()
    for status, created_at in (
        ("sent", now),
        ("failed", now),
        ("sent", month_start(now) - timedelta(days=1)),
    ):
        db.add(
            SmsLog(
                organization_id=org.id,
                to_number="+15550000000",
                event_type="request.created",
                status=status,
                created_at=created_at,
            )
        )
    await db.commit()

    decision = await UsageLimiter(db).check_limit(org.id, ResourceType.SMS)
    assert decision.current == 1
    assert decision.max == 100
    assert decision.allowed


@pytest.mark.asyncio
async def test_free_tier_has_no_sms(db, make):
    org = await make.organization(tier="free")
    await db.commit()
    decision = await UsageLimiter(db).check_limit(org.id, ResourceType.SMS)
    assert not decision.allowed


@pytest.mark.asyncio
async def test_usage_summary(db, make):
    org = await make.organization(tier="free")
    prop = await make.property(org)
    for i in range(8):
        await make.unit(prop, f"{i + 1}")
    await db.commit()

    summary = await UsageLimiter(db).usage_summary(org.id)
    assert summary["effective_tier"] == "free"
    assert summary["next_tier"] == "basic"

    resources = summary["resources"]
    assert set(resources) == {r.value for r in ResourceType}
    assert resources["properties"] == {
        "current": 1,
        "max": 1,
        "at_limit": True,
        "percentage": 100,
        "status": "red",
    }
    assert resources["units"]["status"] == "yellow"
    assert resources["tenants"]["status"] == "green"
