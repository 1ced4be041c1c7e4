"""
Cache Value Objects

Immutable value objects for the cache domain.
Provides type safety for cache keys and expiration policies.
"""

import hashlib
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import quote

MAX_PARAMETER_LENGTH = 160


class CacheView(str, Enum):
    """View discriminators. Each view owns a disjoint key prefix."""

    ID = "id"
    ALL = "all"
    ACTIVE = "active"
    CATEGORY = "category"
    STOCK = "stock"
    STATS = "stats"


@dataclass(frozen=True)
class CacheKey:
    """
    Immutable cache key value object.

    Enforces key naming conventions and provides validation.
    """

    value: str

    MAX_LENGTH = 250

    def __post_init__(self) -> None:
        """Validate cache key format."""
        if not self.value:
            raise ValueError("Cache key cannot be empty")

        if len(self.value) > self.MAX_LENGTH:
            raise ValueError(f"Cache key too long (max {self.MAX_LENGTH} characters)")

        # Validate no whitespace in key
        if any(char.isspace() for char in self.value):
            raise ValueError("Cache key cannot contain whitespace")

    @property
    def view(self) -> str:
        """``<type>:<view>`` portion of the key, used as a metrics label."""
        return ":".join(self.value.split(":")[:2])

    def __str__(self) -> str:
        return self.value


def normalize_parameter(value: str) -> str:
    """
    Canonical form of a free-text key parameter.

    Lower-cased so lookups are case-insensitive, then percent-encoded so the
    result never contains whitespace or the ``:`` separator. Encoding is
    injective, which keeps distinct parameters on distinct keys.

    Encodings longer than MAX_PARAMETER_LENGTH are replaced by ``#`` plus a
    SHA-256 digest; ``quote`` always escapes ``#``, so the two forms never
    collide.
    """
    normalized = value.strip().lower()
    if not normalized:
        raise ValueError("Cache key parameter cannot be blank")
    encoded = quote(normalized, safe="")
    if len(encoded) > MAX_PARAMETER_LENGTH:
        return "#" + hashlib.sha256(normalized.encode("utf-8")).hexdigest()
    return encoded


class EntityCacheKeys:
    """
    Key builder for every view of one entity type.

    Keys follow ``<type>:<view>[:<param>]`` and are pure functions of their
    inputs. The by-id key and the stock key are independent entries.
    """

    _TYPE_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")

    def __init__(self, entity_type: str):
        if not self._TYPE_PATTERN.match(entity_type):
            raise ValueError(
                f"Invalid entity type namespace: {entity_type!r} "
                "(lower-case letters, digits and underscores only)"
            )
        self.entity_type = entity_type

    def _key(self, view: CacheView, param: Optional[str] = None) -> CacheKey:
        if param is None:
            return CacheKey(f"{self.entity_type}:{view.value}")
        return CacheKey(f"{self.entity_type}:{view.value}:{param}")

    @staticmethod
    def _require_id(entity_id: int) -> str:
        if isinstance(entity_id, bool) or not isinstance(entity_id, int):
            raise ValueError("Entity id must be an integer")
        if entity_id <= 0:
            raise ValueError("Entity id must be positive")
        return str(entity_id)

    def by_id(self, entity_id: int) -> CacheKey:
        return self._key(CacheView.ID, self._require_id(entity_id))

    def all(self) -> CacheKey:
        return self._key(CacheView.ALL)

    def active(self) -> CacheKey:
        return self._key(CacheView.ACTIVE)

    def category(self, category: str) -> CacheKey:
        return self._key(CacheView.CATEGORY, normalize_parameter(category))

    def stock(self, entity_id: int) -> CacheKey:
        return self._key(CacheView.STOCK, self._require_id(entity_id))

    def stats(self) -> CacheKey:
        return self._key(CacheView.STATS)


@dataclass(frozen=True)
class CachePolicy:
    """
    Expiration policy for a cache entry.

    ``absolute_seconds`` caps the lifetime from the moment of the write.
    ``sliding_seconds`` expires the entry after that much idle time; each
    read pushes the deadline out again, but never past the absolute cap.
    """

    absolute_seconds: Optional[int] = None
    sliding_seconds: Optional[int] = None

    MAX_SECONDS = 86400 * 365  # Max 1 year

    def __post_init__(self) -> None:
        """Validate TTL values."""
        if self.absolute_seconds is None and self.sliding_seconds is None:
            raise ValueError("Cache policy needs an absolute or a sliding TTL")
        for name, value in (
            ("absolute", self.absolute_seconds),
            ("sliding", self.sliding_seconds),
        ):
            if value is None:
                continue
            if value <= 0:
                raise ValueError(f"{name.capitalize()} TTL must be positive")
            if value > self.MAX_SECONDS:
                raise ValueError(f"{name.capitalize()} TTL too large (max 1 year)")

    @classmethod
    def absolute(cls, seconds: int) -> "CachePolicy":
        """Fixed lifetime, no sliding."""
        return cls(absolute_seconds=seconds)

    @classmethod
    def sliding(cls, seconds: int, absolute_seconds: Optional[int] = None) -> "CachePolicy":
        """Idle-time expiry, optionally capped by an absolute lifetime."""
        return cls(absolute_seconds=absolute_seconds, sliding_seconds=seconds)

    @property
    def initial_ttl(self) -> int:
        """Seconds until expiry right after a write."""
        candidates = [
            v for v in (self.absolute_seconds, self.sliding_seconds) if v is not None
        ]
        return min(candidates)

    def __str__(self) -> str:
        parts = []
        if self.absolute_seconds is not None:
            parts.append(f"absolute={self.absolute_seconds}s")
        if self.sliding_seconds is not None:
            parts.append(f"sliding={self.sliding_seconds}s")
        return ",".join(parts)
