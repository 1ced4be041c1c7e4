"""
Cache services.

Generic cache-aside store and its value serializer.
"""

from .cache_aside import CacheAsideStore, CacheLookup
from .serializer import JsonSerializer, CacheSerializationError

__all__ = [
    "CacheAsideStore",
    "CacheLookup",
    "JsonSerializer",
    "CacheSerializationError",
]
