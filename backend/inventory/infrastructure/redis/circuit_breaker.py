"""
Redis Circuit Breaker Implementation

Implements circuit breaker pattern for Redis operations
to stop hammering an unreachable cache and fail fast instead.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar
from dataclasses import dataclass

from redis.exceptions import RedisError

from ...core.clock import Clock, system_clock
from ..cache.exceptions import CacheCircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject calls
    HALF_OPEN = "half_open"  # Testing if service recovered


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    # Failure threshold - number of failures before opening
    failure_threshold: int = 5

    # Recovery timeout - seconds to wait before trying again
    recovery_timeout: float = 30.0

    # Success threshold - number of successes needed to close circuit
    success_threshold: int = 1

    # Timeout for individual operations
    operation_timeout: float = 2.0

    # Monitor these exception types as failures
    failure_exceptions: tuple = (
        RedisError,
        OSError,
        asyncio.TimeoutError,
    )


@dataclass
class CircuitBreakerMetrics:
    """Metrics for circuit breaker monitoring."""

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    timeout_calls: int = 0
    rejected_calls: int = 0
    circuit_opens: int = 0

    @property
    def success_rate(self) -> float:
        """Calculate success rate."""
        if self.total_calls == 0:
            return 0.0
        return self.successful_calls / self.total_calls


class RedisCircuitBreaker:
    """
    Circuit breaker for Redis operations.

    After ``failure_threshold`` consecutive failures every call is rejected
    with CacheCircuitOpenError until ``recovery_timeout`` has elapsed on the
    injected clock; then a single trial call decides whether to close again.
    """

    def __init__(self, config: CircuitBreakerConfig, clock: Clock = system_clock):
        self.config = config
        self.clock = clock
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.metrics = CircuitBreakerMetrics()
        self._lock = asyncio.Lock()

    async def call(self, func: Callable[[], Awaitable[T]], operation: str = "call") -> T:
        """
        Execute a coroutine function with circuit breaker protection.

        Raises:
            CacheCircuitOpenError: If circuit is open
            Exception: Original exception from function call
        """
        async with self._lock:
            if self.state == CircuitState.OPEN:
                if self._should_attempt_reset():
                    self.state = CircuitState.HALF_OPEN
                    self.success_count = 0
                    logger.info(
                        "Circuit breaker transitioning to HALF_OPEN",
                        extra={"failure_count": self.failure_count},
                    )
                else:
                    self.metrics.rejected_calls += 1
                    raise CacheCircuitOpenError(operation=operation)

        self.metrics.total_calls += 1
        try:
            result = await asyncio.wait_for(
                func(), timeout=self.config.operation_timeout
            )
        except asyncio.TimeoutError:
            self.metrics.timeout_calls += 1
            await self._record_failure("timeout")
            logger.warning(
                "Circuit breaker: operation timed out",
                extra={
                    "operation": operation,
                    "timeout": self.config.operation_timeout,
                    "state": self.state.value,
                },
            )
            raise
        except self.config.failure_exceptions as e:
            await self._record_failure(type(e).__name__)
            logger.warning(
                "Circuit breaker: operation failed",
                extra={
                    "operation": operation,
                    "exception_type": type(e).__name__,
                    "failure_count": self.failure_count,
                    "state": self.state.value,
                },
            )
            raise

        await self._record_success()
        return result

    async def _record_success(self) -> None:
        """Record successful operation."""
        async with self._lock:
            self.metrics.successful_calls += 1

            if self.state == CircuitState.HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.config.success_threshold:
                    self.state = CircuitState.CLOSED
                    self.failure_count = 0
                    self.success_count = 0
                    logger.info("Circuit breaker: circuit closed after successful recovery")
            elif self.state == CircuitState.CLOSED:
                self.failure_count = 0

    async def _record_failure(self, failure_type: str) -> None:
        """Record failed operation."""
        async with self._lock:
            self.metrics.failed_calls += 1
            self.last_failure_time = self.clock.monotonic()

            if self.state == CircuitState.HALF_OPEN:
                # Immediate opening on failure in half-open state
                self.state = CircuitState.OPEN
                self.success_count = 0
                self.metrics.circuit_opens += 1
                logger.warning(
                    "Circuit breaker: circuit opened again after failure in half-open state",
                    extra={"failure_type": failure_type},
                )

            elif self.state == CircuitState.CLOSED:
                self.failure_count += 1

                if self.failure_count >= self.config.failure_threshold:
                    self.state = CircuitState.OPEN
                    self.metrics.circuit_opens += 1
                    logger.warning(
                        "Circuit breaker: circuit opened due to failure threshold",
                        extra={
                            "failure_count": self.failure_count,
                            "threshold": self.config.failure_threshold,
                            "failure_type": failure_type,
                        },
                    )

    def _should_attempt_reset(self) -> bool:
        """Check if enough time has passed to attempt circuit reset."""
        if self.last_failure_time is None:
            return True

        time_since_failure = self.clock.monotonic() - self.last_failure_time
        return time_since_failure >= self.config.recovery_timeout

    def get_status(self) -> dict:
        """Get current circuit breaker status for monitoring."""
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "metrics": {
                "total_calls": self.metrics.total_calls,
                "successful_calls": self.metrics.successful_calls,
                "failed_calls": self.metrics.failed_calls,
                "timeout_calls": self.metrics.timeout_calls,
                "rejected_calls": self.metrics.rejected_calls,
                "success_rate": self.metrics.success_rate,
                "circuit_opens": self.metrics.circuit_opens,
            },
            "config": {
                "failure_threshold": self.config.failure_threshold,
                "recovery_timeout": self.config.recovery_timeout,
                "operation_timeout": self.config.operation_timeout,
            },
        }

    async def reset(self) -> None:
        """Manually reset circuit breaker to closed state."""
        async with self._lock:
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.success_count = 0
            self.last_failure_time = None

            logger.info("Circuit breaker manually reset to CLOSED state")
