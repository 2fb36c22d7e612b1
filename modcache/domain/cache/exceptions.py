"""
Cache Domain Exceptions

Raised synchronously during argument checking and key derivation,
before any Redis operation is attempted.
"""

from typing import Optional, Any, Dict


class CacheException(Exception):
    """Base exception for cache domain errors."""

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


class InvalidArgumentType(CacheException, TypeError):
    """Raised when params is neither a mapping, a list nor None."""

    def __init__(self, operation: str, value: Any):
        super().__init__(
            message=f"Cache {operation} | invalid type for object params: "
            f"{type(value).__name__}",
            error_code="CACHE_INVALID_ARGUMENT_TYPE",
            details={"operation": operation, "type": type(value).__name__},
        )


class InvalidParameterShape(CacheException, ValueError):
    """Raised when a nested mapping appears where a primitive is expected."""

    def __init__(self, key: Optional[str] = None):
        details = {}
        if key is not None:
            details["key"] = key

        super().__init__(
            message="Cache Format | cannot format object"
            + (f" (parameter '{key}')" if key is not None else ""),
            error_code="CACHE_INVALID_PARAMETER_SHAPE",
            details=details,
        )
