"""
Cache value serialization.

Values cross the cache boundary as JSON text produced and validated by a
pydantic TypeAdapter, so any pydantic model, list of models or scalar the
store is parameterized with round-trips with its types intact.
"""

from typing import Any, Generic, Type, TypeVar

from pydantic import TypeAdapter, ValidationError

T = TypeVar("T")


class CacheSerializationError(Exception):
    """Raised when a cached payload cannot be decoded into the expected type."""

    def __init__(self, message: str, original_error: Exception = None):
        self.message = message
        super().__init__(message)
        if original_error:
            self.__cause__ = original_error


class JsonSerializer(Generic[T]):
    """JSON serializer bound to one value type."""

    def __init__(self, value_type: Type[T]):
        self.value_type = value_type
        self._adapter: TypeAdapter[Any] = TypeAdapter(value_type)

    def dumps(self, value: T) -> str:
        return self._adapter.dump_json(value).decode("utf-8")

    def loads(self, raw: str) -> T:
        try:
            return self._adapter.validate_json(raw)
        except ValidationError as e:
            raise CacheSerializationError(
                f"Cached payload is not a valid {self.type_name}", original_error=e
            )

    @property
    def type_name(self) -> str:
        return getattr(self.value_type, "__name__", str(self.value_type))
