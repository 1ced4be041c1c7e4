"""
Cache Infrastructure Module

Concrete cache backends and the startup-time selection between them.

This module provides:
- RedisCacheBackend: distributed cache with circuit breaker protection
- InMemoryCacheBackend: single-process fallback
- build_cache_backend (factory module): picks one from settings
"""
