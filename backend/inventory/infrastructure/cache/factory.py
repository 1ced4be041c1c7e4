"""
Cache backend selection.

The backend is chosen once at startup from settings and shared by every
store for the lifetime of the process.
"""

import logging

from ...core.clock import Clock, system_clock
from ...core.config import Settings
from ...domain.cache.repository_interfaces import CacheBackend
from ..redis.circuit_breaker import CircuitBreakerConfig, RedisCircuitBreaker
from ..redis.connection_factory import RedisConnectionFactory
from .exceptions import CacheConfigurationError
from .memory_backend import InMemoryCacheBackend
from .redis_backend import RedisCacheBackend

logger = logging.getLogger(__name__)


def build_cache_backend(settings: Settings, clock: Clock = system_clock) -> CacheBackend:
    """
    Construct the configured cache backend.

    Never touches the network: a Redis backend whose server is down is
    still returned, and simply fails open on every call.
    """
    if settings.CACHE_BACKEND == "memory":
        logger.info("Using in-memory cache backend")
        return InMemoryCacheBackend(clock=clock)

    if settings.CACHE_BACKEND != "redis":
        raise CacheConfigurationError(
            message=f"Unknown cache backend: {settings.CACHE_BACKEND}",
            config_key="CACHE_BACKEND",
            config_value=settings.CACHE_BACKEND,
        )

    factory = RedisConnectionFactory(settings)
    breaker = RedisCircuitBreaker(
        CircuitBreakerConfig(
            failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
            recovery_timeout=float(settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT),
            operation_timeout=settings.REDIS_OPERATION_TIMEOUT,
        ),
        clock=clock,
    )
    logger.info(
        "Using Redis cache backend",
        extra={"instance_name": settings.REDIS_INSTANCE_NAME},
    )
    return RedisCacheBackend(
        factory.get_client(),
        instance_name=settings.REDIS_INSTANCE_NAME,
        clock=clock,
        circuit_breaker=breaker,
        connection_factory=factory,
    )


