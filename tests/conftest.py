"""
Test configuration and fixtures for the TIDESK test suite.
Provides an in-memory database, seeded profiles, users with tokens and an HTTP client.
"""

from typing import AsyncGenerator, Dict

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tidesk.core.config import get_settings
from tidesk.core.database import seed_defaults
from tidesk.core.permissions import permission_resolver
from tidesk.db.base import Base
from tidesk.db.session import get_db
from tidesk.main import app
from tests.helpers import create_user

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,
)

TestSessionLocal = async_sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@pytest.fixture(autouse=True)
def clear_permission_cache():
    """The resolver is process-wide; start every test from an empty cache."""
    permission_resolver.invalidate_all()
    yield
    permission_resolver.invalidate_all()


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session on a fresh schema."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def profiles(db_session: AsyncSession) -> Dict[str, int]:
    """Seed reserved profiles and the admin account; returns profile ids by name."""
    ids = await seed_defaults(db_session)
    await db_session.commit()
    return ids


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app with the database session overridden."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession, profiles: Dict[str, int]):
    settings = get_settings()
    return await create_user(
        db_session, "boss@example.com", role="admin",
        profile_id=profiles[settings.ADMIN_PROFILE_NAME], name="Admin User",
    )


@pytest_asyncio.fixture
async def agent_user(db_session: AsyncSession, profiles: Dict[str, int]):
    settings = get_settings()
    return await create_user(
        db_session, "agent@example.com", role="agent",
        profile_id=profiles[settings.AGENT_PROFILE_NAME], name="Agent User",
    )


@pytest_asyncio.fixture
async def plain_user(db_session: AsyncSession, profiles: Dict[str, int]):
    settings = get_settings()
    return await create_user(
        db_session, "user@example.com", role="user",
        profile_id=profiles[settings.USER_PROFILE_NAME], name="Plain User",
    )


@pytest.fixture
def sample_ticket_data():
    return {
        "title": "Impressora não imprime",
        "description": "A impressora do segundo andar não responde",
        "priority": "high",
    }
