"""
Redis Hash Bucket Repository

Redis implementation of HashBucketRepository. Each module cache is one
Redis hash; fields are formatted keys, values are JSON strings.
"""

import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from redis.asyncio import Redis
from redis.exceptions import NoScriptError, RedisError

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ...domain.cache.repository_interfaces import HashBucketRepository
from ..redis.exceptions import CacheStorageException
from ..redis.redis_service import RedisService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Deletes matching fields in one server-side step, so concurrent HSETs
# land either entirely before or entirely after the clear.
DELETE_FIELDS_WITH_PREFIX_SCRIPT = """
local bucket = KEYS[1]
local prefix = ARGV[1]
local deleted = {}

for _, field in ipairs(redis.call('HKEYS', bucket)) do
    if string.sub(field, 1, string.len(prefix)) == prefix then
        table.insert(deleted, redis.call('HDEL', bucket, field))
    end
end

return deleted
"""


class RedisHashBucketRepository(HashBucketRepository):
    """Redis implementation of the hash-bucket repository."""

    def __init__(self, redis_service: RedisService):
        self._redis_service = redis_service
        self._lua_scripts: Dict[str, str] = {}

    @property
    def _redis(self) -> Redis:
        return self._redis_service.client

    async def initialize(self) -> None:
        """Load Lua scripts for atomic prefix deletion."""
        async with self._storage_errors("script_load", "*"):
            self._lua_scripts["delete_fields_with_prefix"] = (
                await self._redis.script_load(DELETE_FIELDS_WITH_PREFIX_SCRIPT)
            )
        logger.info("Hash bucket repository initialized successfully")

    @asynccontextmanager
    async def _storage_errors(
        self, operation: str, bucket: str, field: Optional[str] = None
    ):
        """Convert Redis failures into CacheStorageException."""
        with tracer.start_as_current_span(f"cache.redis.{operation}") as span:
            span.set_attribute("cache.bucket", bucket)
            if field is not None:
                span.set_attribute("cache.field", field)
            try:
                yield
            except (RedisError, OSError) as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                logger.error(
                    f"Redis {operation} failed for bucket {bucket}: {e}",
                    extra={"operation": operation, "bucket": bucket, "field": field},
                )
                raise CacheStorageException(
                    operation=operation,
                    bucket=bucket,
                    field=field,
                    original_error=e,
                ) from e

    async def hash_field_set(self, bucket: str, field: str, value: str) -> int:
        async with self._storage_errors("hset", bucket, field):
            return await self._redis.hset(bucket, field, value)

    async def hash_field_get(self, bucket: str, field: str) -> Optional[str]:
        async with self._storage_errors("hget", bucket, field):
            return await self._redis.hget(bucket, field)

    async def bucket_expire(self, bucket: str, seconds: int) -> bool:
        async with self._storage_errors("expire", bucket):
            return bool(await self._redis.expire(bucket, seconds))

    async def hash_get_all(self, bucket: str) -> Dict[str, str]:
        async with self._storage_errors("hgetall", bucket):
            return await self._redis.hgetall(bucket)

    async def hash_field_delete(self, bucket: str, field: str) -> int:
        async with self._storage_errors("hdel", bucket, field):
            return await self._redis.hdel(bucket, field)

    async def bucket_delete(self, bucket: str) -> int:
        async with self._storage_errors("del", bucket):
            return await self._redis.delete(bucket)

    async def delete_fields_with_prefix(self, bucket: str, prefix: str) -> List[int]:
        """Delete matching fields atomically with a Lua script."""
        async with self._storage_errors("delete_fields_with_prefix", bucket, prefix):
            sha = self._lua_scripts.get("delete_fields_with_prefix")
            if sha is not None:
                try:
                    result = await self._redis.evalsha(sha, 1, bucket, prefix)
                    return [int(deleted) for deleted in result]
                except NoScriptError:
                    # Script cache was flushed; EVAL reloads it server-side
                    logger.debug("Prefix delete script missing, falling back to EVAL")
                    self._lua_scripts.pop("delete_fields_with_prefix", None)

            result = await self._redis.eval(
                DELETE_FIELDS_WITH_PREFIX_SCRIPT, 1, bucket, prefix
            )
            return [int(deleted) for deleted in result]
