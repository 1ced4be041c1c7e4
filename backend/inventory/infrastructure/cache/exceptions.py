"""
Cache Infrastructure Exceptions

Exceptions raised by cache backends. Backends translate every driver error
into one of these so callers only need to handle a single hierarchy; the
cache-aside store absorbs them and falls back to the backing store.
"""

from typing import Optional, Any, Dict


class CacheException(Exception):
    """Base exception for cache backend errors.

    Preserves the original driver error as ``__cause__`` so the fail-open
    log lines still carry the real reason.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        if original_error:
            self.details["original_error"] = str(original_error)
            self.details["original_error_type"] = type(original_error).__name__
        super().__init__(self.message)
        if original_error:
            self.__cause__ = original_error


class CacheUnavailableError(CacheException):
    """Raised when the cache backend cannot serve an operation."""

    def __init__(
        self,
        operation: str,
        key: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {"operation": operation}
        if key:
            details["key"] = key

        super().__init__(
            message=f"Cache operation '{operation}' failed",
            error_code="CACHE_UNAVAILABLE",
            details=details,
            original_error=original_error,
        )


class CacheCircuitOpenError(CacheUnavailableError):
    """Raised without touching the backend while the circuit breaker is open."""

    def __init__(self, operation: str = "call", key: Optional[str] = None):
        super().__init__(operation=operation, key=key)
        self.message = "Cache circuit breaker is open - backend skipped"
        self.error_code = "CACHE_CIRCUIT_OPEN"
        self.args = (self.message,)


class CacheConfigurationError(CacheException):
    """Raised when cache configuration is invalid."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key
        if config_value is not None:
            details["config_value"] = str(config_value)

        super().__init__(
            message=message, error_code="CACHE_CONFIGURATION_ERROR", details=details
        )
