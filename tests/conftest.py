"""Shared fixtures for FamilySync tests.

Every test gets its own in-memory SQLite database (aiosqlite) with
StaticPool, so the store and the API see the same connection.
"""

import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from familysync.database import Base
from familysync.models import Role
from familysync.services.entity_store import EntityStore
from familysync.services.mock_transport import MockTransport
from familysync.services.sync_engine import SyncEngine

TEST_DATABASE_URL = "sqlite+aiosqlite://"


# ---------------------------------------------------------------------------
# Engine and session: fresh schema per test
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture()
async def db_engine():
    import familysync.models  # noqa: F401  populate Base.metadata

    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(db_engine):
    session_factory = async_sessionmaker(
        bind=db_engine, class_=AsyncSession, expire_on_commit=False,
    )
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def store(db_session: AsyncSession) -> EntityStore:
    return EntityStore(db_session)


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------

@pytest.fixture()
def mock_transport() -> MockTransport:
    return MockTransport()


@pytest.fixture()
def sync_engine(store: EntityStore, mock_transport: MockTransport) -> SyncEngine:
    """Engine with short timeouts and no backoff delay."""
    return SyncEngine(
        store,
        mock_transport,
        timeout=1.0,
        max_retries=2,
        retry_base_delay=0,
        retry_max_delay=0,
    )


# ---------------------------------------------------------------------------
# Sample records
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture()
async def user(store: EntityStore):
    return await store.create_user_profile("Test User", "test_hash_0123456789")


@pytest_asyncio.fixture()
async def family(store: EntityStore, user):
    return await store.create_family("Test Family", "TEST123", user.id)


@pytest_asyncio.fixture()
async def parent_membership(store: EntityStore, family, user):
    return await store.create_membership(family, user, Role.parent_admin)


@pytest.fixture()
def make_user(store: EntityStore):
    """Factory for user profiles with a unique Apple ID hash."""

    async def _make(name: str = "Member"):
        return await store.create_user_profile(name, f"hash_{uuid.uuid4().hex}")

    return _make


# ---------------------------------------------------------------------------
# HTTP test client
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture()
async def client(db_session: AsyncSession, mock_transport: MockTransport):
    from familysync.core.dependencies import get_transport
    from familysync.database import get_db
    from familysync.main import app
    from familysync.services.sync_engine import SyncRunState

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_transport] = lambda: mock_transport
    app.state.sync_run_state = SyncRunState()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
