"""
Redis Infrastructure Exceptions

Exceptions for Redis operations. Store errors are never swallowed:
they are wrapped with context and re-raised.
"""

from typing import Optional, Any, Dict


class RedisException(Exception):
    """Base exception for Redis-related errors.

    All Redis operations should raise this or its subclasses.
    Never swallow Redis exceptions - always preserve context.
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
            self.details.setdefault("original_error", str(original_error))
            self.details.setdefault(
                "original_error_type", type(original_error).__name__
            )
        super().__init__(self.message)
        if original_error:
            self.__cause__ = original_error


class RedisConnectionException(RedisException):
    """Raised when Redis connection fails or is lost."""

    def __init__(
        self,
        message: str = "Redis connection failed",
        host: Optional[str] = None,
        port: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if host:
            details["host"] = host
        if port:
            details["port"] = port

        super().__init__(
            message=message,
            error_code="REDIS_CONNECTION_ERROR",
            details=details,
            original_error=original_error,
        )


class RedisConfigurationException(RedisException):
    """Raised when Redis configuration is invalid."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key
        if config_value is not None:
            details["config_value"] = str(config_value)

        super().__init__(
            message=message,
            error_code="REDIS_CONFIGURATION_ERROR",
            details=details,
            original_error=original_error,
        )


class CacheStorageException(RedisException):
    """Raised when a cache bucket operation fails in the store."""

    def __init__(
        self,
        operation: str,
        bucket: str,
        field: Optional[str] = None,
        message: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {"operation": operation, "bucket": bucket}
        if field is not None:
            details["field"] = field

        self.operation = operation
        self.bucket = bucket
        super().__init__(
            message=message
            or f"Cache storage operation '{operation}' failed for bucket '{bucket}'",
            error_code="CACHE_STORAGE_ERROR",
            details=details,
            original_error=original_error,
        )
