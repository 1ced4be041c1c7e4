"""
Redis Connection Factory

Connection management for the Redis cache backend.
Provides connection pooling and instance-name key namespacing.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from redis.asyncio import ConnectionPool, Redis

from ...core.config import Settings
from ..cache.exceptions import CacheConfigurationError

logger = logging.getLogger(__name__)


class RedisConnectionFactory:
    """
    Factory for the pooled Redis client used by the cache backend.

    The pool is created lazily and never connects eagerly, so building the
    factory succeeds even when Redis is down.
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._pool: Optional[ConnectionPool] = None
        self._lock = asyncio.Lock()

    def _connection_kwargs(self) -> Dict[str, Any]:
        return {
            "encoding": "utf-8",
            "decode_responses": True,
            "socket_connect_timeout": self._settings.REDIS_CONNECTION_TIMEOUT,
            "socket_timeout": self._settings.REDIS_OPERATION_TIMEOUT,
            "health_check_interval": self._settings.REDIS_HEALTH_CHECK_INTERVAL,
            "max_connections": self._settings.REDIS_MAX_CONNECTIONS,
        }

    def get_client(self) -> Redis:
        """Return a client bound to the shared connection pool."""
        if self._pool is None:
            try:
                self._pool = ConnectionPool.from_url(
                    self._settings.REDIS_URL, **self._connection_kwargs()
                )
            except ValueError as e:
                raise CacheConfigurationError(
                    message=f"Invalid Redis URL: {e}",
                    config_key="REDIS_URL",
                    config_value=self._settings.REDIS_URL,
                )

            logger.info(
                "Redis connection pool created",
                extra={"max_connections": self._settings.REDIS_MAX_CONNECTIONS},
            )

        return Redis(connection_pool=self._pool)

    def get_metrics(self) -> Dict[str, Any]:
        """Get connection pool metrics."""
        if self._pool is None:
            return {"initialized": False}
        return {
            "initialized": True,
            "max_connections": self._pool.max_connections,
            "created_connections": getattr(self._pool, "_created_connections", 0),
        }

    async def close(self) -> None:
        """Close the connection pool."""
        async with self._lock:
            if self._pool is None:
                return
            try:
                await self._pool.disconnect()
            except Exception as e:
                logger.warning(f"Error closing Redis pool: {e}")
            self._pool = None
            logger.info("Redis connection factory closed")


class NamespacedRedisClient:
    """
    Redis client wrapper that confines every key to one instance namespace.

    Automatically prefixes keys with the configured instance name so several
    deployments can share one Redis without colliding. Only the commands the
    cache backend needs are exposed.
    """

    def __init__(self, redis_client: Redis, instance_name: str):
        self._redis = redis_client
        self._key_prefix = instance_name

    @property
    def key_prefix(self) -> str:
        return self._key_prefix

    def _make_key(self, key: str) -> str:
        """Create namespaced key."""
        return f"{self._key_prefix}{key}"

    async def get(self, key: str) -> Optional[str]:
        return await self._redis.get(self._make_key(key))

    async def set(self, key: str, value: str, ex: int) -> bool:
        return await self._redis.set(self._make_key(key), value, ex=ex)

    async def delete(self, key: str) -> int:
        return await self._redis.delete(self._make_key(key))

    async def exists(self, key: str) -> int:
        return await self._redis.exists(self._make_key(key))

    async def expire(self, key: str, seconds: int) -> bool:
        return await self._redis.expire(self._make_key(key), seconds)

    async def ttl(self, key: str) -> int:
        return await self._redis.ttl(self._make_key(key))

    async def ping(self) -> bool:
        return await self._redis.ping()

    async def aclose(self) -> None:
        await self._redis.aclose()

    # Block unknown methods so no command can bypass the namespace
    def __getattr__(self, name):
        raise CacheConfigurationError(
            message=f"Method '{name}' is not allowed via NamespacedRedisClient. "
            f"Add an explicit wrapper that enforces key prefixing.",
            config_key="REDIS_INSTANCE_NAME",
            config_value=self._key_prefix,
        )
