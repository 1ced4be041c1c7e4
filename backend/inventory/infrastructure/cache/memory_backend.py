"""
In-process cache backend.

Fallback used when no Redis is configured (single-process deployments and
local development). Expiry follows the same absolute/sliding rules as the
Redis backend, measured with the injected clock.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ...core.clock import Clock, system_clock
from ...domain.cache.repository_interfaces import CacheBackend
from ...domain.cache.value_objects import CacheKey, CachePolicy

logger = logging.getLogger(__name__)


@dataclass
class _MemoryEntry:
    value: str
    expires_at: float
    absolute_deadline: Optional[float]
    sliding_seconds: Optional[int]


class InMemoryCacheBackend(CacheBackend):
    """Dictionary-backed cache with lazy expiry."""

    name = "memory"

    def __init__(self, clock: Clock = system_clock, max_entries: int = 10_000):
        self._clock = clock
        self._max_entries = max_entries
        self._entries: Dict[str, _MemoryEntry] = {}
        self._lock = asyncio.Lock()

    def _is_expired(self, entry: _MemoryEntry, now: float) -> bool:
        return now >= entry.expires_at

    async def get_string(self, key: CacheKey) -> Optional[str]:
        async with self._lock:
            entry = self._entries.get(key.value)
            if entry is None:
                return None

            now = self._clock.monotonic()
            if self._is_expired(entry, now):
                del self._entries[key.value]
                return None

            if entry.sliding_seconds is not None:
                expires_at = now + entry.sliding_seconds
                if entry.absolute_deadline is not None:
                    expires_at = min(expires_at, entry.absolute_deadline)
                entry.expires_at = expires_at

            return entry.value

    async def set_string(self, key: CacheKey, value: str, policy: CachePolicy) -> None:
        async with self._lock:
            now = self._clock.monotonic()
            absolute_deadline = (
                now + policy.absolute_seconds
                if policy.absolute_seconds is not None
                else None
            )
            self._entries[key.value] = _MemoryEntry(
                value=value,
                expires_at=now + policy.initial_ttl,
                absolute_deadline=absolute_deadline,
                sliding_seconds=policy.sliding_seconds,
            )

            if len(self._entries) > self._max_entries:
                self._evict(now)

    async def remove(self, key: CacheKey) -> None:
        async with self._lock:
            self._entries.pop(key.value, None)

    async def exists(self, key: CacheKey) -> bool:
        async with self._lock:
            entry = self._entries.get(key.value)
            if entry is None:
                return False
            if self._is_expired(entry, self._clock.monotonic()):
                del self._entries[key.value]
                return False
            return True

    def _evict(self, now: float) -> None:
        """Drop expired entries, then the soonest-to-expire ones."""
        expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
        for k in expired:
            del self._entries[k]

        overflow = len(self._entries) - self._max_entries
        if overflow > 0:
            victims = sorted(self._entries, key=lambda k: self._entries[k].expires_at)
            for k in victims[:overflow]:
                del self._entries[k]
            logger.warning(
                f"In-memory cache full, evicted {overflow} entries",
                extra={"max_entries": self._max_entries},
            )

    async def health_check(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "backend": self.name,
            "entries": len(self._entries),
            "max_entries": self._max_entries,
        }
