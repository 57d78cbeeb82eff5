"""Process startup, shutdown and health diagnostics."""

import time
from datetime import UTC, datetime
from typing import Any

from persistence import __version__
from persistence.core.cache import check_cache_connection, close_cache
from persistence.core.config import settings
from persistence.core.database import check_database_connection, close_database, create_schema
from persistence.core.events import event_emitter
from persistence.core.logging import configure_logging, get_logger
from persistence.core.tracing import configure_tracing

logger = get_logger(__name__)


def _timestamp() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def startup() -> None:
    """Configure logging and tracing, create the schema and start the emitter."""
    configure_logging()
    tracing_enabled = configure_tracing()
    logger.info(
        "Starting persistence service",
        version=__version__,
        environment=settings.environment,
        tracing=tracing_enabled,
    )
    await create_schema()
    await event_emitter.start()


async def shutdown() -> None:
    """Flush pending events, then close the store and cache connections."""
    logger.info("Shutting down persistence service")
    await event_emitter.stop()
    await close_database()
    await close_cache()


async def check_health() -> dict[str, Any]:
    """Check every dependency and report their status with response times.

    Returns:
        Report with ``status`` ("healthy" or "degraded"), ``version``,
        ``timestamp`` and per-dependency ``checks``. The event emitter is
        reported with its delivery counters and never degrades the status.
    """
    start_time = time.perf_counter()

    db_start = time.perf_counter()
    db_healthy = await check_database_connection()
    db_response_time = round((time.perf_counter() - db_start) * 1000, 2)

    cache_start = time.perf_counter()
    cache_healthy = await check_cache_connection()
    cache_response_time = round((time.perf_counter() - cache_start) * 1000, 2)

    overall_status = "healthy" if db_healthy and cache_healthy else "degraded"

    logger.info(
        "Health check completed",
        status=overall_status,
        database="healthy" if db_healthy else "unhealthy",
        cache="healthy" if cache_healthy else "unhealthy",
        duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
    )

    return {
        "status": overall_status,
        "service": settings.otel_service_name,
        "version": __version__,
        "timestamp": _timestamp(),
        "checks": {
            "database": {
                "status": "healthy" if db_healthy else "unhealthy",
                "response_time_ms": db_response_time,
            },
            "cache": {
                "status": "healthy" if cache_healthy else "unhealthy",
                "response_time_ms": cache_response_time,
            },
            "events": {
                "status": "running" if event_emitter.running else "idle",
                "counts": event_emitter.get_counts(),
            },
        },
    }
