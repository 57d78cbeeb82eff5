"""Valkey/Redis connection management and the entity cache.

The cache is a subordinate view of the document store: every failure here is
logged and swallowed so a cache outage can never fail a repository operation.
"""

import asyncio
from typing import Any

import redis.asyncio as redis
from redis.asyncio import Redis

from persistence.core.config import settings
from persistence.core.logging import get_logger
from persistence.core.tracing import trace_cache

# Import FakeRedis for testing
try:
    from fakeredis import FakeAsyncRedis
    FAKEREDIS_AVAILABLE = True
except ImportError:
    FAKEREDIS_AVAILABLE = False

logger = get_logger(__name__)


class CacheErrorMessage:
    """Standardized cache error messages."""

    CREATE_CLIENT_NO_URL = "Valkey URL is not configured"
    CREATE_CLIENT_FAILED = "Failed to create Valkey client"
    CLOSE_CACHE_FAILED = "Failed to close cache connections"


def create_client() -> Redis:
    """Create async Redis client with connection pooling.

    Responses are left as bytes: cached entities are opaque blobs.

    Returns:
        Redis: Configured async Redis client (or FakeRedis for testing)

    Raises:
        ValueError: If Valkey URL is invalid or settings are misconfigured
    """
    try:
        # Use FakeRedis for testing when VALKEY_URL is empty/not set
        if not settings.valkey_url and FAKEREDIS_AVAILABLE:
            logger.info("Creating FakeRedis client for testing")
            return FakeAsyncRedis()  # type: ignore[return-value]

        if not settings.valkey_url:
            raise ValueError(CacheErrorMessage.CREATE_CLIENT_NO_URL)

        logger.info(
            "Creating async Valkey client",
            url=settings.valkey_url.split("@")[1] if "@" in settings.valkey_url else "***",
            max_connections=20,
        )

        client: Redis = redis.from_url(  # type: ignore[no-untyped-call]
            settings.valkey_url,
            decode_responses=False,
            max_connections=20,
            socket_connect_timeout=5,
            socket_timeout=settings.cache_timeout_seconds,
            socket_keepalive=True,
            health_check_interval=30,
        )

        return client
    except ValueError:
        raise
    except Exception as e:
        logger.error(
            f"Failed to create Valkey client due to configuration error: {e}"
        )
        raise ValueError(CacheErrorMessage.CREATE_CLIENT_FAILED) from e


# Create client instance
cache_client: Any = create_client()


@trace_cache()
async def check_cache_connection() -> bool:
    """Check if cache connection is available.

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        await cache_client.ping()
        logger.debug("Cache connection check passed")
        return True
    except Exception as e:
        logger.error(f"Cache connection check failed with error: {e}")
        return False


@trace_cache()
async def close_cache() -> None:
    """Close all cache connections.

    Should be called during application shutdown.

    Raises:
        RuntimeError: If graceful shutdown fails
    """
    try:
        logger.info("Closing cache connections")
        await cache_client.aclose()
        # Wait for connection pool to be cleaned up (real Redis only)
        if hasattr(cache_client, "connection_pool"):
            await cache_client.connection_pool.disconnect()
    except Exception as e:
        logger.error(f"Error closing cache connections: {e}")
        raise RuntimeError(CacheErrorMessage.CLOSE_CACHE_FAILED) from e


class EntityCache:
    """Best-effort key/value access for serialized entities.

    Keys are entity ids; values are the serializer's byte blobs. Every call is
    bounded by ``timeout_seconds`` and never raises: failures are logged at
    warning level and reported through the return value.

    Args:
        client: Redis client (default: the process-wide ``cache_client``)
        ttl_seconds: Expiration applied to every write
        timeout_seconds: Per-call deadline
    """

    def __init__(
        self,
        client: Redis | None = None,
        ttl_seconds: int | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._client = client if client is not None else cache_client
        self._ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.cache_ttl_seconds
        self._timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.cache_timeout_seconds
        )

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    @trace_cache("cache.get")
    async def get(self, key: str) -> bytes | None:
        """Return the cached blob for key, or None on miss or failure."""
        try:
            async with asyncio.timeout(self._timeout_seconds):
                value = await self._client.get(key)
        except Exception as e:
            logger.warning("Cache read failed", key=key, error=repr(e))
            return None

        if value is None:
            logger.debug("Cache miss", key=key)
            return None
        if isinstance(value, str):
            value = value.encode("utf-8")
        return bytes(value)

    @trace_cache("cache.set")
    async def set(self, key: str, blob: bytes) -> bool:
        """Store blob under key with the default TTL.

        Returns:
            True if the write was acknowledged, False if it failed
        """
        try:
            async with asyncio.timeout(self._timeout_seconds):
                await self._client.set(key, blob, ex=self._ttl_seconds)
            return True
        except Exception as e:
            logger.warning("Cache write failed", key=key, error=repr(e))
            return False

    @trace_cache("cache.delete")
    async def delete(self, key: str) -> bool:
        """Invalidate key.

        Returns:
            True if the delete was acknowledged (whether or not the key
            existed), False if it failed
        """
        try:
            async with asyncio.timeout(self._timeout_seconds):
                await self._client.delete(key)
            return True
        except Exception as e:
            logger.warning("Cache invalidation failed", key=key, error=repr(e))
            return False
