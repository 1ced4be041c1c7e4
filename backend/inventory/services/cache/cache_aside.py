"""
Cache-Aside Store

Generic read-through/invalidate layer over a CacheBackend.

The store is fail-open: every backend error is counted, logged and turned
into a cache miss (reads) or a no-op (writes and invalidations). Errors
raised by loaders are never touched and reach the caller unchanged.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Iterable, Optional, Type, TypeVar

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from prometheus_client import Counter

from ...domain.cache.repository_interfaces import CacheBackend
from ...domain.cache.value_objects import CacheKey, CachePolicy
from ...infrastructure.cache.exceptions import CacheException
from .serializer import CacheSerializationError, JsonSerializer

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")

CACHE_REQUESTS = Counter(
    "inventory_cache_requests_total",
    "Cache lookups by view and outcome",
    ["view", "result"],
)
CACHE_INVALIDATIONS = Counter(
    "inventory_cache_invalidations_total",
    "Cache key removals by view and outcome",
    ["view", "result"],
)


@dataclass(frozen=True)
class CacheLookup(Generic[T]):
    """Result of get_or_load. ``value`` is None when the loader found nothing."""

    value: Optional[T]
    cache_hit: bool


class CacheAsideStore(Generic[T]):
    """
    Cache-aside store for one value type.

    One store per cached view type; all stores share the same backend.
    ``None`` is never cached, so a missing entity is always looked up again.
    """

    def __init__(self, backend: CacheBackend, value_type: Type[T]):
        self.backend = backend
        self.serializer: JsonSerializer[T] = JsonSerializer(value_type)

    async def get_or_load(
        self,
        key: CacheKey,
        loader: Callable[[], Awaitable[Optional[T]]],
        policy: CachePolicy,
    ) -> CacheLookup[T]:
        """
        Return the cached value for ``key``, or load, store and return it.

        Args:
            key: Cache key of the view
            loader: Coroutine function reading the backing store
            policy: Expiration policy applied when the value is stored

        Returns:
            CacheLookup with the value and whether it came from the cache
        """
        with tracer.start_as_current_span("cache.get_or_load") as span:
            span.set_attribute("cache.key", key.value)

            cached = await self._read(key)
            if cached is not None:
                span.set_attribute("cache.hit", True)
                return CacheLookup(value=cached, cache_hit=True)

            span.set_attribute("cache.hit", False)
            value = await loader()
            if value is None:
                return CacheLookup(value=None, cache_hit=False)

            await self._write(key, value, policy)
            return CacheLookup(value=value, cache_hit=False)

    async def set(self, key: CacheKey, value: T, policy: CachePolicy) -> bool:
        """Write-through a value, replacing any previous entry. Best-effort."""
        with tracer.start_as_current_span("cache.set") as span:
            span.set_attribute("cache.key", key.value)
            return await self._write(key, value, policy)

    async def invalidate(self, key: CacheKey) -> bool:
        """Remove one key. Removing an absent key succeeds."""
        with tracer.start_as_current_span("cache.invalidate") as span:
            span.set_attribute("cache.key", key.value)
            removed = await self._remove(key)
            if not removed:
                span.set_status(Status(StatusCode.ERROR, "invalidation failed"))
            return removed

    async def invalidate_many(self, keys: Iterable[CacheKey]) -> int:
        """
        Remove several keys concurrently.

        Every removal is attempted even when others fail, and all of them
        have completed when this returns.

        Returns:
            Number of keys whose removal failed
        """
        unique_keys = list(dict.fromkeys(keys))
        with tracer.start_as_current_span("cache.invalidate_many") as span:
            span.set_attribute("cache.key_count", len(unique_keys))

            results = await asyncio.gather(
                *(self._remove(key) for key in unique_keys), return_exceptions=True
            )

            failures = 0
            for key, result in zip(unique_keys, results):
                if isinstance(result, BaseException):
                    failures += 1
                    logger.error(
                        f"Unexpected error invalidating {key}: {result}",
                        extra={"key": str(key)},
                    )
                elif not result:
                    failures += 1

            span.set_attribute("cache.failures", failures)
            if failures:
                span.set_status(Status(StatusCode.ERROR, "partial invalidation"))
                logger.warning(
                    f"Invalidated {len(unique_keys) - failures}/{len(unique_keys)} cache keys",
                    extra={"keys": [str(k) for k in unique_keys], "failures": failures},
                )
            else:
                logger.info(
                    f"Invalidated {len(unique_keys)} cache keys",
                    extra={"keys": [str(k) for k in unique_keys]},
                )
            return failures

    async def exists(self, key: CacheKey) -> bool:
        """Check for a live entry. False when the backend is unavailable."""
        try:
            return await self.backend.exists(key)
        except CacheException as e:
            logger.warning(
                f"Cache exists check failed for {key}: {e.message}",
                extra={"key": str(key), "error_code": e.error_code},
            )
            return False

    async def increment(
        self, key: CacheKey, delta: int, policy: CachePolicy
    ) -> Optional[int]:
        """
        Add ``delta`` to a cached counter, starting from 0 when absent.

        Only meaningful on stores of ``int``. Not atomic across processes.

        Returns:
            The new value, or None when the backend is unavailable
        """
        return await self._apply_delta(key, lambda current: current + delta, policy)

    async def decrement(
        self, key: CacheKey, delta: int, policy: CachePolicy
    ) -> Optional[int]:
        """Subtract ``delta`` from a cached counter, never going below zero."""
        return await self._apply_delta(
            key, lambda current: max(0, current - delta), policy
        )

    async def _apply_delta(
        self,
        key: CacheKey,
        update: Callable[[int], int],
        policy: CachePolicy,
    ) -> Optional[int]:
        with tracer.start_as_current_span("cache.counter") as span:
            span.set_attribute("cache.key", key.value)
            try:
                raw = await self.backend.get_string(key)
                current = int(self.serializer.loads(raw)) if raw is not None else 0
                new_value = update(current)
                await self.backend.set_string(
                    key, self.serializer.dumps(new_value), policy
                )
            except (CacheException, CacheSerializationError) as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                logger.warning(
                    f"Cache counter update failed for {key}: {e}",
                    extra={"key": str(key)},
                )
                return None
            return new_value

    async def _read(self, key: CacheKey) -> Optional[T]:
        try:
            raw = await self.backend.get_string(key)
        except CacheException as e:
            CACHE_REQUESTS.labels(view=key.view, result="error").inc()
            logger.warning(
                f"Cache read failed for {key}, falling back to store: {e.message}",
                extra={"key": str(key), "error_code": e.error_code},
            )
            return None

        if raw is None:
            CACHE_REQUESTS.labels(view=key.view, result="miss").inc()
            logger.debug(f"Cache miss: {key}")
            return None

        try:
            value = self.serializer.loads(raw)
        except CacheSerializationError as e:
            CACHE_REQUESTS.labels(view=key.view, result="miss").inc()
            logger.warning(
                f"Dropping undecodable cache entry {key}: {e.message}",
                extra={"key": str(key)},
            )
            await self._remove(key)
            return None

        CACHE_REQUESTS.labels(view=key.view, result="hit").inc()
        logger.debug(f"Cache hit: {key}")
        return value

    async def _write(self, key: CacheKey, value: T, policy: CachePolicy) -> bool:
        try:
            await self.backend.set_string(key, self.serializer.dumps(value), policy)
        except CacheException as e:
            logger.warning(
                f"Cache write failed for {key}: {e.message}",
                extra={"key": str(key), "error_code": e.error_code},
            )
            return False
        logger.debug(f"Cached {key} ({policy})")
        return True

    async def _remove(self, key: CacheKey) -> bool:
        try:
            await self.backend.remove(key)
        except CacheException as e:
            CACHE_INVALIDATIONS.labels(view=key.view, result="error").inc()
            logger.warning(
                f"Cache invalidation failed for {key}: {e.message}",
                extra={"key": str(key), "error_code": e.error_code},
            )
            return False
        CACHE_INVALIDATIONS.labels(view=key.view, result="ok").inc()
        return True
