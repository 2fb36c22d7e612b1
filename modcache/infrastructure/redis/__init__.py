"""
Redis Infrastructure Module

Connection management for the module caches.

This module provides:
- RedisService: process-wide connection lifecycle with health checks
- RedisConnectionFactory: pool and client construction from settings
- Exception hierarchy for Redis failures
"""

from .redis_service import RedisService
from .connection_factory import RedisConnectionFactory
from .exceptions import (
    RedisException,
    RedisConnectionException,
    RedisConfigurationException,
    CacheStorageException,
)

__all__ = [
    # Main service
    "RedisService",
    # Connection management
    "RedisConnectionFactory",
    # Exceptions
    "RedisException",
    "RedisConnectionException",
    "RedisConfigurationException",
    "CacheStorageException",
]
