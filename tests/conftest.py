"""
Main pytest configuration for modcache tests.

Environment, an in-memory hash-bucket repository and shared fixtures.
"""

import os
from typing import Dict, Optional, Set
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment variables before importing modcache modules
os.environ["ENVIRONMENT"] = "test"
os.environ["CACHE_DISABLED"] = "false"
os.environ["CACHE_DEFAULT_EXPIRE"] = "3600"
os.environ["LOG_LEVEL"] = "DEBUG"

from modcache.domain.cache.repository_interfaces import HashBucketRepository
from modcache.infrastructure.redis.exceptions import CacheStorageException


class InMemoryHashBucketRepository(HashBucketRepository):
    """Dict-backed repository recording every call.

    Operations listed in fail_on raise CacheStorageException.
    """

    def __init__(self):
        self.buckets: Dict[str, Dict[str, str]] = {}
        self.expires: Dict[str, int] = {}
        self.calls = []
        self.fail_on: Set[str] = set()

    def _record(self, operation: str, bucket: str, field: Optional[str] = None):
        self.calls.append((operation, bucket, field))
        if operation in self.fail_on:
            raise CacheStorageException(
                operation=operation,
                bucket=bucket,
                field=field,
                original_error=ConnectionError("connection reset"),
            )

    async def hash_field_set(self, bucket, field, value):
        self._record("hset", bucket, field)
        fields = self.buckets.setdefault(bucket, {})
        created = 0 if field in fields else 1
        fields[field] = value
        return created

    async def hash_field_get(self, bucket, field):
        self._record("hget", bucket, field)
        return self.buckets.get(bucket, {}).get(field)

    async def bucket_expire(self, bucket, seconds):
        self._record("expire", bucket)
        if bucket not in self.buckets:
            return False
        self.expires[bucket] = seconds
        return True

    async def hash_get_all(self, bucket):
        self._record("hgetall", bucket)
        return dict(self.buckets.get(bucket, {}))

    async def hash_field_delete(self, bucket, field):
        self._record("hdel", bucket, field)
        fields = self.buckets.get(bucket, {})
        if field not in fields:
            return 0
        del fields[field]
        if not fields:
            self.buckets.pop(bucket, None)
            self.expires.pop(bucket, None)
        return 1

    async def bucket_delete(self, bucket):
        self._record("del", bucket)
        self.expires.pop(bucket, None)
        return 1 if self.buckets.pop(bucket, None) is not None else 0

    def operations(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def memory_repository():
    """In-memory hash-bucket repository."""
    return InMemoryHashBucketRepository()


@pytest.fixture
def redis_client():
    """Mock redis.asyncio client."""
    return AsyncMock()


@pytest.fixture
def redis_service(redis_client):
    """Mock RedisService exposing the mock client."""
    service = MagicMock()
    service.client = redis_client
    service.initialize = AsyncMock()
    service.close = AsyncMock()
    service.health_check = AsyncMock(
        return_value={"status": "healthy", "service": "redis"}
    )
    return service


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "redis: marks tests as Redis-related")
