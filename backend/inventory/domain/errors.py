"""
Inventory Domain Errors

Error taxonomy surfaced by the entity services and repositories.
Cache failures are deliberately absent here: they never leave the
cache-aside layer (see infrastructure.cache.exceptions).
"""

from typing import Optional, Any, Dict


class InventoryError(Exception):
    """Base exception for inventory domain errors.

    Carries a stable error code and structured details so the HTTP layer
    can render them without string parsing.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(InventoryError):
    """Raised when an entity is absent or already soft-deleted."""

    def __init__(self, entity_type: str, entity_id: Any):
        super().__init__(
            message=f"{entity_type.capitalize()} with ID {entity_id} not found",
            error_code="NOT_FOUND",
            details={"entity_type": entity_type, "entity_id": entity_id},
        )


class ConflictError(InventoryError):
    """Raised when a natural-key uniqueness rule would be violated."""

    def __init__(self, entity_type: str, field: str, value: Any):
        super().__init__(
            message=f"{entity_type.capitalize()} with {field} '{value}' already exists",
            error_code="CONFLICT",
            details={"entity_type": entity_type, "field": field, "value": value},
        )


class ValidationError(InventoryError):
    """Raised for malformed input, before any store or cache access."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {}
        if field:
            details["field"] = field

        super().__init__(
            message=message, error_code="VALIDATION_ERROR", details=details
        )


class StoreUnavailableError(InventoryError):
    """Raised when the backing store cannot be reached."""

    def __init__(
        self,
        message: str = "Backing store unavailable",
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(
            message=message, error_code="STORE_UNAVAILABLE", details=details
        )
        # Preserve exception context for debugging (exception chaining)
        if original_error:
            self.__cause__ = original_error
