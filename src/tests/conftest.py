"""Shared pytest fixtures for test suite."""

import os
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

# Set test environment variables BEFORE any persistence imports
# This ensures tracing and other features are disabled during module initialization
os.environ["ENVIRONMENT"] = "testing"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["OTEL_ENABLED"] = "false"  # Disable OpenTelemetry to prevent background threads
os.environ["VALKEY_URL"] = ""  # Process-wide cache client becomes FakeRedis
os.environ["EVENT_SINK"] = "memory"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from persistence.core.cache import EntityCache
from persistence.core.clock import FrozenClock
from persistence.core.config import Settings
from persistence.core.database import create_schema
from persistence.core.events import EventEmitter, MemoryEventSink
from persistence.models import FAQ, Entity
from persistence.repositories.base import BaseRepository
from persistence.repositories.store import SQLDocumentStore

START_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Get settings configured for testing.

    Returns:
        Settings: Test environment settings
    """
    return Settings(
        environment="testing",
        log_level="WARNING",
    )


# ===== Document Store Fixtures =====


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh in-memory SQLite engine with the documents table.

    Every test gets its own database, so no cleanup between tests is needed.
    StaticPool keeps the single in-memory connection shared by all sessions.

    Yields:
        AsyncEngine: Test database engine
    """
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_schema(test_engine)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
def store(session_maker: async_sessionmaker[AsyncSession]) -> SQLDocumentStore:
    return SQLDocumentStore(session_maker)


# ===== Cache Fixtures =====


@pytest_asyncio.fixture
async def redis_client() -> AsyncGenerator[FakeAsyncRedis, None]:
    """Provide a clean in-memory Redis for each test.

    Responses are bytes, like the process-wide client.

    Yields:
        FakeAsyncRedis: Empty fake Redis client
    """
    client = FakeAsyncRedis()
    await client.flushall()

    yield client

    await client.flushall()
    await client.aclose()


@pytest.fixture
def cache(redis_client: FakeAsyncRedis) -> EntityCache:
    return EntityCache(redis_client, ttl_seconds=60, timeout_seconds=0.5)


# ===== Event Fixtures =====


@pytest.fixture
def sink() -> MemoryEventSink:
    return MemoryEventSink()


@pytest_asyncio.fixture
async def emitter(sink: MemoryEventSink) -> AsyncGenerator[EventEmitter, None]:
    """Event emitter delivering into the in-memory sink.

    Tests call ``await emitter.drain()`` before inspecting ``sink``.
    """
    test_emitter = EventEmitter(sink, max_queue_size=100)

    yield test_emitter

    await test_emitter.stop(timeout=1.0)


# ===== Repository Fixtures =====


@pytest.fixture
def clock() -> FrozenClock:
    """Clock starting at 2024-01-01 UTC, one millisecond per reading."""
    return FrozenClock(START_TIME, tick=timedelta(milliseconds=1))


@pytest.fixture
def make_repository(
    store: SQLDocumentStore,
    cache: EntityCache,
    emitter: EventEmitter,
    clock: FrozenClock,
) -> Callable[..., BaseRepository[Any]]:
    """Factory for repositories wired to the test collaborators.

    Example:
        def test_something(make_repository):
            repo = make_repository(Order, trust_cache_hits=True)
    """

    def _make(entity_type: type[Entity] = FAQ, **kwargs: Any) -> BaseRepository[Any]:
        collaborators: dict[str, Any] = {
            "store": store,
            "cache": cache,
            "emitter": emitter,
            "clock": clock,
        }
        collaborators.update(kwargs)
        return BaseRepository(entity_type, **collaborators)

    return _make


@pytest.fixture
def faq_repo(make_repository: Callable[..., BaseRepository[Any]]) -> BaseRepository[FAQ]:
    return make_repository(FAQ)


# ===== Utility Fixtures =====


@pytest.fixture
def anyio_backend() -> str:
    """Specify asyncio as the backend for anyio tests.

    Returns:
        str: Backend name
    """
    return "asyncio"
