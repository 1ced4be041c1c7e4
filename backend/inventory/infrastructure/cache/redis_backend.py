"""
Redis Cache Backend

Distributed cache backend with circuit breaker protection and
instance-name key namespacing.

Redis has no native sliding expiration, so every entry is stored as a small
JSON envelope carrying its sliding window and absolute deadline; reads push
the key TTL out again with EXPIRE, capped by the absolute deadline.
"""

import json
import logging
import math
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from redis.asyncio import Redis
from redis.exceptions import RedisError

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from opentelemetry.instrumentation.redis import RedisInstrumentor

from ...core.clock import Clock, system_clock
from ...domain.cache.repository_interfaces import CacheBackend
from ...domain.cache.value_objects import CacheKey, CachePolicy
from ..redis.circuit_breaker import RedisCircuitBreaker, CircuitBreakerConfig
from ..redis.connection_factory import NamespacedRedisClient, RedisConnectionFactory
from .exceptions import CacheException, CacheUnavailableError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")

_DRIVER_ERRORS = (RedisError, OSError, TimeoutError)


class RedisCacheBackend(CacheBackend):
    """
    CacheBackend implementation on redis.asyncio.

    Every driver error is translated into CacheUnavailableError, and calls
    are short-circuited with CacheCircuitOpenError while the breaker is open.
    """

    name = "redis"

    def __init__(
        self,
        redis_client: Redis,
        instance_name: str = "",
        clock: Clock = system_clock,
        circuit_breaker: Optional[RedisCircuitBreaker] = None,
        connection_factory: Optional[RedisConnectionFactory] = None,
    ):
        self._client = NamespacedRedisClient(redis_client, instance_name)
        self._clock = clock
        self._circuit_breaker = circuit_breaker or RedisCircuitBreaker(
            CircuitBreakerConfig(), clock=clock
        )
        self._connection_factory = connection_factory
        self._instrumented = False

    @property
    def circuit_breaker(self) -> RedisCircuitBreaker:
        return self._circuit_breaker

    async def _execute(
        self,
        operation: str,
        key: Optional[CacheKey],
        func: Callable[[], Awaitable[T]],
    ) -> T:
        try:
            return await self._circuit_breaker.call(func, operation=operation)
        except CacheException:
            raise
        except _DRIVER_ERRORS as e:
            raise CacheUnavailableError(
                operation=operation,
                key=str(key) if key is not None else None,
                original_error=e,
            )

    def _encode(self, value: str, policy: CachePolicy) -> str:
        envelope: Dict[str, Any] = {"v": value}
        if policy.sliding_seconds is not None:
            envelope["sld"] = policy.sliding_seconds
            if policy.absolute_seconds is not None:
                envelope["abs"] = (
                    self._clock.now().timestamp() + policy.absolute_seconds
                )
        return json.dumps(envelope, separators=(",", ":"))

    async def get_string(self, key: CacheKey) -> Optional[str]:
        raw = await self._execute("get", key, lambda: self._client.get(key.value))
        if raw is None:
            return None

        try:
            envelope = json.loads(raw)
            value = envelope["v"]
        except (ValueError, KeyError, TypeError):
            logger.warning(
                f"Discarding malformed cache entry: {key}",
                extra={"key": str(key)},
            )
            await self._execute("delete", key, lambda: self._client.delete(key.value))
            return None

        sliding = envelope.get("sld")
        if sliding is not None:
            ttl = int(sliding)
            deadline = envelope.get("abs")
            if deadline is not None:
                remaining = deadline - self._clock.now().timestamp()
                if remaining <= 0:
                    await self._execute(
                        "delete", key, lambda: self._client.delete(key.value)
                    )
                    return None
                ttl = min(ttl, math.ceil(remaining))
            # A failed refresh still returns the value already read
            try:
                await self._execute(
                    "expire", key, lambda: self._client.expire(key.value, ttl)
                )
            except CacheException as e:
                logger.warning(
                    f"Failed to refresh sliding expiration: {key}",
                    extra={"key": str(key), "error_code": e.error_code},
                )

        return value

    async def set_string(self, key: CacheKey, value: str, policy: CachePolicy) -> None:
        payload = self._encode(value, policy)
        await self._execute(
            "set",
            key,
            lambda: self._client.set(key.value, payload, ex=policy.initial_ttl),
        )

    async def remove(self, key: CacheKey) -> None:
        await self._execute("delete", key, lambda: self._client.delete(key.value))

    async def exists(self, key: CacheKey) -> bool:
        count = await self._execute(
            "exists", key, lambda: self._client.exists(key.value)
        )
        return bool(count)

    async def initialize(self) -> None:
        """Enable instrumentation and probe Redis once.

        A failed probe is logged and swallowed: the service starts anyway and
        serves every read from the backing store until Redis comes back.
        """
        if not self._instrumented:
            try:
                RedisInstrumentor().instrument()
                logger.info("Redis OpenTelemetry instrumentation enabled")
            except Exception as e:
                logger.warning(f"Failed to enable Redis OpenTelemetry instrumentation: {e}")
            self._instrumented = True

        with tracer.start_as_current_span("redis.initialize") as span:
            span.set_attribute("cache.key_prefix", self._client.key_prefix)
            try:
                await self._execute("ping", None, self._client.ping)
                span.set_status(Status(StatusCode.OK))
                logger.info("Redis cache backend initialized successfully")
            except CacheException as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                logger.warning(
                    "Redis unreachable at startup, continuing without cache",
                    extra={"error": str(e), "error_code": e.error_code},
                )

    async def close(self) -> None:
        """Release the client and its connection pool."""
        try:
            await self._client.aclose()
        except _DRIVER_ERRORS as e:
            logger.warning(f"Error closing Redis client: {e}")
        if self._connection_factory is not None:
            await self._connection_factory.close()

    async def health_check(self) -> Dict[str, Any]:
        """Ping Redis and report circuit breaker state."""
        health_status: Dict[str, Any] = {
            "status": "unhealthy",
            "backend": self.name,
            "circuit_breaker": self._circuit_breaker.get_status(),
        }
        with tracer.start_as_current_span("redis.health_check") as span:
            try:
                start_time = time.perf_counter()
                await self._execute("ping", None, self._client.ping)
                health_status["response_time_ms"] = round(
                    (time.perf_counter() - start_time) * 1000, 2
                )
                health_status["status"] = "healthy"
                span.set_status(Status(StatusCode.OK))
            except CacheException as e:
                health_status["error"] = e.message
                span.set_status(Status(StatusCode.ERROR, e.message))

        if self._connection_factory is not None:
            health_status["pool"] = self._connection_factory.get_metrics()
        return health_status
