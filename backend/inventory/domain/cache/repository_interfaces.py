"""
Cache Repository Interfaces

Abstract contracts between the cache domain and its infrastructure.
Defines the cache backend capability and the typed contract every
cacheable entity must satisfy.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from .value_objects import CacheKey, CachePolicy


@runtime_checkable
class CacheableEntity(Protocol):
    """
    Contract for entities that flow through the cache-aside layer.

    Identity and the soft-delete flag are read through these typed
    attributes; nothing discovers them by name at runtime.
    """

    id: int
    is_deleted: bool


class CacheBackend(ABC):
    """
    Key/value store with per-key expiration.

    Implementations may raise CacheException subclasses from any operation;
    they must never raise for an absent key. Selected once at startup.
    """

    name: str = "abstract"

    @abstractmethod
    async def get_string(self, key: CacheKey) -> Optional[str]:
        """Return the stored value, or None when absent or expired."""
        pass

    @abstractmethod
    async def set_string(self, key: CacheKey, value: str, policy: CachePolicy) -> None:
        """Store a value, replacing any previous entry wholesale."""
        pass

    @abstractmethod
    async def remove(self, key: CacheKey) -> None:
        """Remove a key. Removing an absent key is not an error."""
        pass

    @abstractmethod
    async def exists(self, key: CacheKey) -> bool:
        """Check whether a live entry exists for the key."""
        pass

    async def initialize(self) -> None:
        """Prepare connections. Must not raise when the backend is down."""
        return None

    async def close(self) -> None:
        """Release connections."""
        return None

    async def health_check(self) -> Dict[str, Any]:
        """Report backend status without raising."""
        return {"status": "healthy", "backend": self.name}
