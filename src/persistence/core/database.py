"""Document store connection management with async SQLAlchemy."""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from persistence.core.config import settings
from persistence.core.logging import get_logger
from persistence.core.tracing import trace_database
from persistence.models.base import Base

logger = get_logger(__name__)


class DBErrorMessage:
    """Standardized database error messages."""
    CREATE_ENGINE_NO_URL = "Database URL is not configured"
    CREATE_ENGINE_MIN_DB_POOL_SIZE = "DATABASE_POOL_SIZE must be at least 1"
    CREATE_ENGINE_NEGATIVE_MAX_OVERFLOW = "DATABASE_MAX_OVERFLOW must be non-negative"
    CREATE_ENGINE_FAILED = "Failed to create database engine"

    CREATE_SCHEMA_FAILED = "Failed to create document store schema"
    CLOSE_DATABASE_FAILED = "Failed to close database connections"


def _engine_options(database_url: str) -> dict[str, Any]:
    """Build pool options for the configured backend.

    SQLite has no server-side pool; in-memory databases must share a single
    connection or every session would see an empty database.
    """
    if database_url.startswith("sqlite"):
        options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url:
            options["poolclass"] = StaticPool
        return options

    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_pre_ping": True,  # Test connections before using them
        "pool_recycle": 3600,  # Recycle connections after 1 hour
    }


def create_engine() -> AsyncEngine:
    """Create AsyncEngine with connection pooling configuration.

    Returns:
        AsyncEngine: Configured async SQLAlchemy engine

    Connection Pool Configuration (server databases only):
        - pool_size: Number of connections to keep in the pool (default: 20)
        - max_overflow: Maximum overflow connections (default: 10)
        - pool_pre_ping / pool_recycle: connection liveness

    Raises:
        ValueError: If database URL is invalid or settings are misconfigured
    """
    try:
        if not settings.database_url:
            raise ValueError(DBErrorMessage.CREATE_ENGINE_NO_URL)

        if settings.database_pool_size < 1:
            raise ValueError(DBErrorMessage.CREATE_ENGINE_MIN_DB_POOL_SIZE)

        if settings.database_max_overflow < 0:
            raise ValueError(DBErrorMessage.CREATE_ENGINE_NEGATIVE_MAX_OVERFLOW)

        logger.info(
            "Creating async database engine",
            url=settings.database_url.split("@")[1] if "@" in settings.database_url else "***",
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )

        return create_async_engine(
            settings.database_url,
            echo=False,
            **_engine_options(settings.database_url),
        )
    except ValueError:
        raise
    except Exception as e:
        logger.error(f"Failed to create database engine, due to configuration error: {e}")
        raise ValueError(DBErrorMessage.CREATE_ENGINE_FAILED) from e


# Create engine instance
engine: AsyncEngine = create_engine()

# Create async session factory
async_session_maker: async_sessionmaker[AsyncSession] = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def create_schema(target: AsyncEngine | None = None) -> None:
    """Create the documents table and its indexes if they do not exist.

    Args:
        target: Engine to create the schema on (default: module engine)

    Raises:
        RuntimeError: If the schema cannot be created
    """
    bind = target or engine
    try:
        async with bind.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Document store schema ready")
    except Exception as e:
        logger.error(f"Error creating document store schema: {e}")
        raise RuntimeError(DBErrorMessage.CREATE_SCHEMA_FAILED) from e


@trace_database()
async def check_database_connection() -> bool:
    """Check if database connection is available.

    Used for health checks and diagnostics.

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.debug("Database connection check passed")
        return True
    except Exception as e:
        logger.error(f"Database connection check failed with error: {e}")
        return False


async def close_database() -> None:
    """Close all database connections.

    Should be called during application shutdown.

    Raises:
        RuntimeError: If graceful shutdown fails (connection closure is attempted once)
    """
    try:
        logger.info("Closing database connections")
        await engine.dispose()
    except Exception as e:
        logger.error(f"Error closing database connections: {e}")
        raise RuntimeError(DBErrorMessage.CLOSE_DATABASE_FAILED) from e
