"""
Redis caching layer and barber cache invalidation.
"""

import logging
from typing import Optional, Protocol

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError
from redis.exceptions import ConnectionError as RedisConnectionError

from .config import Settings
from .utils.exceptions import CacheServiceError

logger = logging.getLogger(__name__)


class CacheKeyBuilder:
    """Helper class for building consistent cache keys."""

    @staticmethod
    def barber_profile(barber_id: int) -> str:
        """Build cache key for a barber profile."""
        return f"barber:{barber_id}"

    @staticmethod
    def barber_availability(barber_id: int) -> str:
        """Build cache key for a barber's availability listing."""
        return f"barber:{barber_id}:availability"


class RedisCache:
    """Redis cache manager with connection handling and operations."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.client: Optional[Redis] = None
        self.pool: Optional[redis.ConnectionPool] = None

    async def initialize(self) -> None:
        """Initialize Redis connection pool and client."""
        try:
            self.pool = redis.ConnectionPool.from_url(
                self.settings.redis_url,
                max_connections=self.settings.redis_max_connections,
                retry_on_timeout=True,
                socket_keepalive=True,
                health_check_interval=30
            )
            self.client = Redis(connection_pool=self.pool)

            await self.client.ping()
            logger.info("Redis cache initialized successfully")

        except RedisConnectionError as e:
            logger.error("Failed to connect to Redis: %s", e)
            raise

    async def close(self) -> None:
        """Close Redis connections."""
        if self.client:
            await self.client.aclose()
        if self.pool:
            await self.pool.disconnect()
        logger.info("Redis cache connections closed")

    async def delete(self, *keys: str) -> int:
        """
        Delete keys from cache.

        Returns:
            Number of keys removed

        Raises:
            CacheServiceError: When Redis is unreachable or not initialized
        """
        if not self.client:
            raise CacheServiceError("Redis client not initialized")

        try:
            return await self.client.delete(*keys)
        except RedisError as e:
            raise CacheServiceError(str(e)) from e

    async def ping(self) -> bool:
        if not self.client:
            return False
        try:
            return bool(await self.client.ping())
        except RedisError:
            return False


class CacheInvalidator(Protocol):
    """Sink notified after a barber's timeline changed."""

    async def invalidate_barber(self, barber_id: int) -> None:
        ...


class ProviderCacheInvalidator:
    """Drop cached barber data from Redis."""

    def __init__(self, cache: RedisCache):
        self.cache = cache

    async def invalidate_barber(self, barber_id: int) -> None:
        """
        Delete the barber's cached profile and availability.

        Raises:
            CacheServiceError: When the delete could not be performed
        """
        removed = await self.cache.delete(
            CacheKeyBuilder.barber_profile(barber_id),
            CacheKeyBuilder.barber_availability(barber_id),
        )
        logger.debug(f"Invalidated {removed} cache keys for barber {barber_id}")


class NullCacheInvalidator:
    """Invalidator used when caching is disabled."""

    async def invalidate_barber(self, barber_id: int) -> None:
        return None
