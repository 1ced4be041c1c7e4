"""
Redis Infrastructure Module

Connection pooling, key namespacing and circuit breaker protection
for the Redis cache backend.
"""

from .connection_factory import RedisConnectionFactory, NamespacedRedisClient
from .circuit_breaker import (
    RedisCircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    CircuitBreakerMetrics,
)

__all__ = [
    "RedisConnectionFactory",
    "NamespacedRedisClient",
    "RedisCircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "CircuitBreakerMetrics",
]
