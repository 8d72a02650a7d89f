from __future__ import annotations

import os
import uuid
from datetime import timedelta
from typing import Optional

# Cheap hashing for tests; must be set before settings are loaded
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from maintdesk.api.deps.services import get_email_sender, get_sms_sender
from maintdesk.core.clock import utcnow
from maintdesk.core.security import create_access_token, hash_password
from maintdesk.db.session import get_db, get_session_factory
from maintdesk.services.events import DomainEvent
from maintdesk.services.notification_fanout import NotificationFanout
from maintdesk.services.transports import DeliveryError

# Ensure Base + models are registered before create_all
from maintdesk.db.base import Base  # noqa: F401
import maintdesk.models  # noqa: F401
from maintdesk.models import (
    Invitation,
    MaintenanceRequest,
    NotificationPreference,
    Organization,
    Profile,
    Property,
    Unit,
)

TEST_PASSWORD = "correct-horse-battery"


# ---------------------------------------------------------
# Database config
# ---------------------------------------------------------
@pytest.fixture(scope="session")
def database_url_async(tmp_path_factory) -> str:
    """
    TEST_DATABASE_URL (e.g. a throwaway Postgres) when set, otherwise a
    temporary SQLite file.
    """
    url = os.getenv("TEST_DATABASE_URL")
    if url:
        return url
    path = tmp_path_factory.mktemp("db") / "maintdesk_test.db"
    return f"sqlite+aiosqlite:///{path}"


# ---------------------------------------------------------
# Engine + schema lifecycle
# ---------------------------------------------------------
@pytest_asyncio.fixture(scope="session")
async def engine(database_url_async: str):
    engine = create_async_engine(database_url_async, echo=False, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="session")
def sessionmaker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# ---------------------------------------------------------
# AUTOUSE: clean DB before every test
# ---------------------------------------------------------
@pytest_asyncio.fixture(autouse=True)
async def _clear_tables(engine):
    """
    Each test starts from empty tables. Children first so foreign keys hold
    on backends that enforce them.
    """
    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())
    yield


# ---------------------------------------------------------
# DB session for setup / assertions
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def db(sessionmaker):
    """
    Session for test setup & assertions ONLY. Commit setup before calling
    the API so other sessions can see (and lock) the rows.
    """
    async with sessionmaker() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------
# Outbound fakes
# ---------------------------------------------------------
class FakeEmailSender:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.fail_for: set[str] = set()

    async def send(self, *, to: str, subject: str, html: str) -> None:
        if to in self.fail_for:
            raise DeliveryError(f"mailbox unavailable: {to}")
        self.sent.append({"to": to, "subject": subject, "html": html})

    def to(self, address: str) -> list[dict]:
        return [m for m in self.sent if m["to"] == address]


class FakeSmsSender:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.fail_for: set[str] = set()

    async def send(self, *, to: str, body: str) -> None:
        if to in self.fail_for:
            raise DeliveryError(f"unreachable: {to}")
        self.sent.append({"to": to, "body": body})


class RecordingPublisher:
    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    def publish(self, event: DomainEvent) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [e.type.value for e in self.events]


@pytest.fixture()
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture()
def sms_sender() -> FakeSmsSender:
    return FakeSmsSender()


@pytest.fixture()
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture()
def fanout(sessionmaker, email_sender, sms_sender) -> NotificationFanout:
    return NotificationFanout(sessionmaker, email_sender, sms_sender, app_url="http://app.test")


# ---------------------------------------------------------
# Row builders
# ---------------------------------------------------------
class Factory:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def organization(
        self,
        *,
        tier: str = "free",
        status: str = "active",
        trial_days: Optional[int] = None,
        sms_enabled: bool = False,
    ) -> Organization:
        org = Organization(
            name=f"Org {uuid.uuid4().hex[:6]}",
            code=Organization.generate_code(),
            plan_tier=tier,
            subscription_status=status,
            trial_ends_at=utcnow() + timedelta(days=trial_days) if trial_days is not None else None,
            sms_enabled=sms_enabled,
        )
        self.db.add(org)
        await self.db.flush()
        return org

    async def profile(
        self,
        org: Organization,
        role: str,
        *,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        is_active: bool = True,
        with_password: bool = False,
    ) -> Profile:
        p = Profile(
            organization_id=org.id,
            role=role,
            email=(email or f"{role}-{uuid.uuid4().hex[:8]}@example.com").lower(),
            password_hash=hash_password(TEST_PASSWORD) if with_password else None,
            full_name=f"{role.title()} Person",
            phone_e164=phone,
            is_active=is_active,
        )
        self.db.add(p)
        await self.db.flush()
        return p

    async def preferences(self, profile: Profile, **flags) -> NotificationPreference:
        pref = NotificationPreference.defaults(profile.id)
        for k, v in flags.items():
            setattr(pref, k, v)
        self.db.add(pref)
        await self.db.flush()
        return pref

    async def property(self, org: Organization, name: str = "Maple Court") -> Property:
        prop = Property(organization_id=org.id, name=name)
        self.db.add(prop)
        await self.db.flush()
        return prop

    async def unit(self, prop: Property, label: Optional[str] = None, tenant: Optional[Profile] = None) -> Unit:
        unit = Unit(
            organization_id=prop.organization_id,
            property_id=prop.id,
            label=label or f"U-{uuid.uuid4().hex[:4]}",
            tenant_id=tenant.id if tenant else None,
        )
        self.db.add(unit)
        await self.db.flush()
        return unit

    async def request(
        self,
        unit: Unit,
        *,
        created_by: Profile,
        status: str = "submitted",
        assigned_to: Optional[Profile] = None,
        priority: str = "medium",
    ) -> MaintenanceRequest:
        req = MaintenanceRequest(
            organization_id=unit.organization_id,
            property_id=unit.property_id,
            unit_id=unit.id,
            tenant_id=unit.tenant_id,
            created_by=created_by.id,
            assigned_to=assigned_to.id if assigned_to else None,
            status=status,
            priority=priority,
            title="Leaking tap",
            description="Kitchen tap drips all night",
        )
        self.db.add(req)
        await self.db.flush()
        return req

    async def invitation(
        self,
        org: Organization,
        email: str,
        role: str = "worker",
        *,
        invited_by: Optional[Profile] = None,
        expires_in: timedelta = timedelta(days=7),
        unit: Optional[Unit] = None,
    ) -> Invitation:
        inv = Invitation(
            organization_id=org.id,
            email=email.lower().strip(),
            role=role,
            unit_id=unit.id if unit else None,
            property_id=unit.property_id if unit else None,
            token=f"tok_{uuid.uuid4().hex}",
            expires_at=utcnow() + expires_in,
            invited_by=invited_by.id if invited_by else None,
        )
        self.db.add(inv)
        await self.db.flush()
        return inv


@pytest.fixture()
def make(db) -> Factory:
    return Factory(db)


@pytest.fixture()
def auth():
    def _headers(profile: Profile) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(str(profile.id))}"}

    return _headers


# ---------------------------------------------------------
# FastAPI app + dependency override
# ---------------------------------------------------------
@pytest.fixture()
def app(sessionmaker, email_sender, sms_sender):
    from maintdesk.main import app as fastapi_app

    async def _override_get_db():
        async with sessionmaker() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    fastapi_app.dependency_overrides[get_session_factory] = lambda: sessionmaker
    fastapi_app.dependency_overrides[get_email_sender] = lambda: email_sender
    fastapi_app.dependency_overrides[get_sms_sender] = lambda: sms_sender
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


# ---------------------------------------------------------
# HTTP client
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as ac:
        yield ac
