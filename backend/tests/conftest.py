import os

# Set test environment
os.environ["DEBUG"] = "true"
os.environ["SECRET_KEY"] = "change-me-in-production"
os.environ["STORAGE_RETRY_BACKOFF_SECONDS"] = "0"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from focusdesk.api.deps import get_stores
from focusdesk.config import Settings, get_settings
from focusdesk.database import Base
from focusdesk.events import EventChannel
from focusdesk.main import app
from focusdesk.repositories import Stores
from focusdesk.repositories.memory import MemoryDatabase, memory_stores
from focusdesk.repositories.sql import sql_stores
from focusdesk.schemas.user import InternalUser
from focusdesk.services.focus_service import FocusRegistry
from focusdesk.services.identity_service import IdentityMappingService
from focusdesk.services.layout_service import LayoutPersistence
from focusdesk.services.preference_service import PreferenceService
from focusdesk.services.workspace_service import WorkspaceService
from focusdesk.utils.auth import create_access_token

# SQL store tests run on in-memory SQLite unless a real database is given
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

ADMIN_EXTERNAL_ID = "admin-ext"
USER_EXTERNAL_ID = "user-ext"


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def memory_db() -> MemoryDatabase:
    return MemoryDatabase()


@pytest.fixture
def stores(memory_db: MemoryDatabase) -> Stores:
    return memory_stores(memory_db)


@pytest.fixture
def events() -> EventChannel:
    return EventChannel()


@pytest.fixture
def identity(stores: Stores, settings: Settings) -> IdentityMappingService:
    return IdentityMappingService(stores.users, settings)


@pytest.fixture
def preferences(stores: Stores) -> PreferenceService:
    return PreferenceService(stores.preferences)


@pytest.fixture
def layouts(stores: Stores, settings: Settings, events: EventChannel) -> LayoutPersistence:
    return LayoutPersistence(stores.layouts, settings, events)


@pytest.fixture
def registry(
    stores: Stores, preferences: PreferenceService, layouts: LayoutPersistence, events: EventChannel
) -> FocusRegistry:
    return FocusRegistry(stores.focuses, preferences, layouts, users=stores.users, events=events)


@pytest.fixture
def workspace(
    registry: FocusRegistry, preferences: PreferenceService, layouts: LayoutPersistence, events: EventChannel
) -> WorkspaceService:
    return WorkspaceService(registry, preferences, layouts, events)


@pytest_asyncio.fixture
async def admin_user(identity: IdentityMappingService) -> InternalUser:
    """The first user created, and therefore the bootstrap admin."""
    return await identity.resolve(ADMIN_EXTERNAL_ID, "admin@example.com")


@pytest_asyncio.fixture
async def regular_user(identity: IdentityMappingService, admin_user: InternalUser) -> InternalUser:
    return await identity.resolve(USER_EXTERNAL_ID, "user@example.com")


@pytest.fixture
def admin_headers(admin_user: InternalUser) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(ADMIN_EXTERNAL_ID)}"}


@pytest.fixture
def user_headers(regular_user: InternalUser) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(USER_EXTERNAL_ID)}"}


@pytest_asyncio.fixture(scope="function")
async def client(stores: Stores) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client backed by the in-memory stores."""

    async def override_get_stores() -> Stores:
        return stores

    app.dependency_overrides[get_stores] = override_get_stores

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create async engine for each test."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_maker() as session:
        yield session


@pytest.fixture
def sql(db_session: AsyncSession) -> Stores:
    return sql_stores(db_session, timeout=5.0)


def make_snapshot(**overrides: Any) -> dict[str, Any]:
    """A well-formed workspace snapshot document with two panels side by side."""
    snapshot: dict[str, Any] = {
        "panelDocument": {
            "panels": {
                "kpis": {"id": "kpis", "contentComponent": "kpi-cards", "title": "Key Performance Indicators"},
                "sailings": {"id": "sailings", "contentComponent": "table", "title": "Sailings Table"},
            },
            "grid": {
                "root": {
                    "type": "branch",
                    "data": [
                        {"type": "leaf", "data": {"id": "1", "views": ["kpis"], "activeView": "kpis"}, "size": 400},
                        {"type": "leaf", "data": {"id": "2", "views": ["sailings"]}, "size": 600},
                    ],
                },
                "width": 1000,
                "height": 800,
                "orientation": "HORIZONTAL",
            },
        },
        "sidebar": {"collapsed": True, "width": 320},
        "globalFilters": {"ship": "Aurora", "dateFrom": "2026-01-01", "dateTo": "2026-03-31"},
        "appearance": {"theme": "dark", "fontSize": 14, "fontFamily": "Inter", "spacingMode": "compact"},
    }
    snapshot.update(overrides)
    return snapshot


@pytest.fixture
def sample_snapshot() -> dict[str, Any]:
    return make_snapshot()
