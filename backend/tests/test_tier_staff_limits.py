# tests/test_tier_staff_limits.py
from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from maintdesk.core.clock import utcnow
from maintdesk.models.invitation import Invitation
from maintdesk.models.organization import Organization
from maintdesk.models.profile import Profile

PASSWORD = "welcome-aboard"


async def create_organization(db, tier: str, status: str = "active") -> Organization:
    org = Organization(
        name=f"Test Org {uuid.uuid4().hex[:8]}",
        code=Organization.generate_code(),
        plan_tier=tier,
        subscription_status=status,
    )
    db.add(org)
    await db.flush()
    return org


async def add_profile(db, org_id: uuid.UUID, email: str, role: str, is_active: bool = True) -> Profile:
    p = Profile(
        organization_id=org_id,
        email=email.lower().strip(),
        role=role,
        is_active=is_active,
    )
    db.add(p)
    await db.flush()
    return p


async def create_invite(db, org_id: uuid.UUID, email: str, role: str = "worker") -> Invitation:
    inv = Invitation(
        organization_id=org_id,
        email=email.lower().strip(),
        role=role,
        token=f"tok_{uuid.uuid4().hex}",
        expires_at=utcnow() + timedelta(days=7),
        accepted_at=None,
    )
    db.add(inv)
    await db.flush()
    return inv


async def accept(client, inv: Invitation):
    return await client.post(
        "/api/v1/invitations/accept",
        json={"token": inv.token, "email": inv.email, "password": PASSWORD},
    )


@pytest.mark.asyncio
async def test_free_blocks_third_worker(client, db):
    org = await create_organization(db, tier="free")

    # existing active workers = 2 (limit is 2)
    for i in range(2):
        await add_profile(db, org.id, f"worker{i}@example.com", role="worker")

    inv = await create_invite(db, org.id, "worker2@example.com")
    await db.commit()

    r = await accept(client, inv)

    assert r.status_code == 409
    body = r.json()
    assert body["detail"]["error"] == "LIMIT_EXCEEDED"
    assert body["detail"]["resource_type"] == "workers"
    assert body["detail"]["max"] == 2
    assert body["detail"]["current"] == 2


@pytest.mark.asyncio
async def test_basic_blocks_sixth_worker(client, db):
    org = await create_organization(db, tier="basic")

    # existing active workers = 5 (limit is 5)
    for i in range(5):
        await add_profile(db, org.id, f"worker{i}@example.com", role="worker")

    inv = await create_invite(db, org.id, "worker5@example.com")
    await db.commit()

    r = await accept(client, inv)

    assert r.status_code == 409
    body = r.json()
    assert body["detail"]["error"] == "LIMIT_EXCEEDED"
    assert body["detail"]["max"] == 5
    assert body["detail"]["current"] == 5
    assert body["detail"]["next_tier"] == "pro"


@pytest.mark.asyncio
async def test_pro_blocks_eleventh_manager(client, db):
    org = await create_organization(db, tier="pro")

    # existing active managers = 10 (limit is 10)
    for i in range(10):
        await add_profile(db, org.id, f"manager{i}@example.com", role="manager")

    inv = await create_invite(db, org.id, "manager10@example.com", role="manager")
    await db.commit()

    r = await accept(client, inv)

    assert r.status_code == 409
    body = r.json()
    assert body["detail"]["resource_type"] == "managers"
    assert body["detail"]["max"] == 10
    assert body["detail"]["current"] == 10


@pytest.mark.asyncio
async def test_past_due_organization_gets_free_limits(client, db):
    org = await create_organization(db, tier="pro", status="past_due")

    for i in range(2):
        await add_profile(db, org.id, f"worker{i}@example.com", role="worker")

    inv = await create_invite(db, org.id, "worker2@example.com")
    await db.commit()

    r = await accept(client, inv)

    assert r.status_code == 409
    assert r.json()["detail"]["tier"] == "free"


@pytest.mark.asyncio
async def test_tenant_invite_not_blocked_when_workers_full(client, db):
    org = await create_organization(db, tier="free")

    # worker seats full
    for i in range(2):
        await add_profile(db, org.id, f"worker{i}@example.com", role="worker")

    inv = await create_invite(db, org.id, "tenant1@example.com", role="tenant")
    await db.commit()

    r = await accept(client, inv)

    assert r.status_code == 200
    body = r.json()
    assert body["access_token"]
    assert body["profile"]["organization_id"] == str(org.id)
    assert body["profile"]["role"] == "tenant"


@pytest.mark.asyncio
async def test_inactive_worker_does_not_count(client, db):
    org = await create_organization(db, tier="free")

    await add_profile(db, org.id, "worker0@example.com", role="worker")
    await add_profile(db, org.id, "worker1@example.com", role="worker", is_active=False)  # removed, frees the seat

    inv = await create_invite(db, org.id, "worker2@example.com")
    await db.commit()

    r = await accept(client, inv)

    assert r.status_code == 200
    assert r.json()["profile"]["role"] == "worker"


@pytest.mark.asyncio
async def test_blocked_accept_leaves_invitation_redeemable(client, db):
    org = await create_organization(db, tier="free")

    workers = [await add_profile(db, org.id, f"worker{i}@example.com", role="worker") for i in range(2)]
    inv = await create_invite(db, org.id, "worker2@example.com")
    await db.commit()

    r = await accept(client, inv)
    assert r.status_code == 409

    # a seat opens up
    workers[0].is_active = False
    await db.commit()

    r = await accept(client, inv)
    assert r.status_code == 200
    assert r.json()["profile"]["email"] == "worker2@example.com"
