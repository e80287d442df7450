"""
Shared test fixtures for the TimeLedger test suite.

Every test gets a fresh in-memory SQLite database (aiosqlite + AsyncSession)
and an httpx AsyncClient wired to the app with ``get_db`` overridden.
"""

import os
import sys
from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOCK_BACKEND"] = "memory"

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from timeledger.api.v1.deps import get_db
from timeledger.core.security import create_access_token
from timeledger.db.base import Base
from timeledger.main import app
from timeledger.models.entry import Entry
from timeledger.models.organization import Location, Organization
from timeledger.models.user import User
from timeledger.services.context import OrgContext

TZ = "America/New_York"


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Create all tables on a private in-memory engine, drop them afterwards."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def async_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


# ── Seed data ───────────────────────────────────────────────────────
@pytest.fixture
async def org(db_session: AsyncSession) -> Organization:
    org = Organization(name="Acme", timezone=TZ, min_daily_minutes=480)
    db_session.add(org)
    await db_session.commit()
    return org


@pytest.fixture
async def location(db_session: AsyncSession, org: Organization) -> Location:
    location = Location(org_id=org.id, name="HQ", code="HQ", is_active=True)
    db_session.add(location)
    await db_session.commit()
    return location


async def make_user(
    db: AsyncSession, org_id: int, email: str, role: str = "employee"
) -> User:
    user = User(
        org_id=org_id,
        email=email,
        hashed_password="not-a-real-hash",
        full_name=email.split("@")[0].title(),
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def admin(db_session: AsyncSession, org: Organization) -> User:
    return await make_user(db_session, org.id, "admin@acme.test", role="admin")


@pytest.fixture
async def employee(db_session: AsyncSession, org: Organization) -> User:
    return await make_user(db_session, org.id, "worker@acme.test")


def auth_headers(user: User, **extra: str) -> dict[str, str]:
    token = create_access_token(user.id, user.org_id)
    return {"Authorization": f"Bearer {token}", **extra}


@pytest.fixture
def admin_ctx(org: Organization, admin: User) -> OrgContext:
    return OrgContext(
        org_id=org.id, actor_id=admin.id, role="admin", timezone=TZ, min_daily_minutes=480
    )


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


async def add_entry(
    db: AsyncSession,
    user: User,
    location: Location,
    type_: str,
    at: datetime,
) -> Entry:
    entry = Entry(
        type=type_,
        user_id=user.id,
        location_id=location.id,
        timestamp_client=at,
        timestamp_server=at,
    )
    db.add(entry)
    await db.commit()
    return entry
