"""
Later Sync - Test Fixtures
==========================

Shared pytest fixtures for all tests.
"""

import os

# Settings are read at import time
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from collections.abc import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from fakes import FakeContentRepository, FakePreferences, FakeSpaceRepository  # noqa: E402
from later_sync.api.deps import get_organizer  # noqa: E402
from later_sync.api.main import app  # noqa: E402
from later_sync.core import models  # noqa: E402,F401
from later_sync.core.database import Base  # noqa: E402
from later_sync.core.errors import clear_errors  # noqa: E402
from later_sync.core.repositories import SqlStore  # noqa: E402
from later_sync.core.retry import RetryExecutor  # noqa: E402
from later_sync.core.schemas import ContentKind, Space  # noqa: E402
from later_sync.core.sync import Organizer  # noqa: E402


# ==========================================================================
# Test Database Setup
# ==========================================================================

# Use in-memory SQLite for tests (fast)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(autouse=True)
def reset_error_log():
    """Each test starts with an empty recent-errors ring."""
    clear_errors()
    yield
    clear_errors()


# ==========================================================================
# Retry Fixtures
# ==========================================================================

@pytest.fixture
def sleeps() -> list[float]:
    """Delays requested by the retry executor, in seconds."""
    return []


@pytest.fixture
def retry(sleeps: list[float]) -> RetryExecutor:
    """Retry executor that records backoff instead of sleeping."""
    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    return RetryExecutor(max_attempts=3, base_delay_ms=300, sleep=fake_sleep)


# ==========================================================================
# In-Memory Fixtures
# ==========================================================================

@pytest.fixture
def space_a() -> Space:
    return Space(id="space-a", name="Personal")


@pytest.fixture
def space_b() -> Space:
    return Space(id="space-b", name="Work")


@pytest.fixture
def todo_repo() -> FakeContentRepository:
    return FakeContentRepository(ContentKind.TODO_LIST)


@pytest.fixture
def list_repo() -> FakeContentRepository:
    return FakeContentRepository(ContentKind.LIST)


@pytest.fixture
def note_repo() -> FakeContentRepository:
    return FakeContentRepository(ContentKind.NOTE)


@pytest.fixture
def space_repo(space_a: Space, space_b: Space, todo_repo, list_repo, note_repo) -> FakeSpaceRepository:
    repository = FakeSpaceRepository(space_a, space_b)
    repository.content = [todo_repo, list_repo, note_repo]
    return repository


@pytest.fixture
def preferences() -> FakePreferences:
    return FakePreferences()


@pytest.fixture
def organizer(space_repo, todo_repo, list_repo, note_repo, preferences, retry) -> Organizer:
    """Organizer over in-memory fakes with instant retries."""
    return Organizer(
        spaces=space_repo,
        todo_lists=todo_repo,
        lists=list_repo,
        notes=note_repo,
        preferences=preferences,
        retry=retry,
    )


# ==========================================================================
# Database Fixtures
# ==========================================================================

@pytest_asyncio.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Provide a clean database for each test.

    One StaticPool engine per test keeps the in-memory database alive
    for the whole test and bound to that test's event loop.
    """
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    await test_engine.dispose()


@pytest.fixture
def store(session_factory) -> SqlStore:
    return SqlStore(session_factory)


@pytest.fixture
def sql_organizer(store: SqlStore, retry: RetryExecutor) -> Organizer:
    return Organizer.from_store(store, retry=retry)


@pytest_asyncio.fixture(scope="function")
async def client(sql_organizer: Organizer) -> AsyncGenerator[AsyncClient, None]:
    """
    Provide test HTTP client with the organizer override.
    """
    await sql_organizer.load()
    app.dependency_overrides[get_organizer] = lambda: sql_organizer

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
