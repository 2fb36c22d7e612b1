"""
Module Cache Service

Namespaced cache bound to one Redis hash. Results are stored under a
field derived from the operation name and its parameters, and the whole
hash expires together: every write resets the TTL of every field.

Typical use in a data-access module:

    cache = ModuleCache("model.test", 10, repository=repository)

    async def get_values(filter):
        cached = await cache.get("getvalues", filter)
        if cached is not None:
            return cached
        values = await load_from_db(filter)
        await cache.set("getvalues", filter, values)
        return values

    # after a write that invalidates get_values results
    await cache.clear("getvalues")
"""

import json
import logging
from typing import Any, Awaitable, Callable, List, Optional, Union

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ...core.config import settings
from ...domain.cache.key_formatter import CacheParams
from ...domain.cache.repository_interfaces import HashBucketRepository
from ...domain.cache.value_objects import CacheExpire, ModuleCacheKey
from ...infrastructure.redis.exceptions import (
    CacheStorageException,
    RedisException,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class ModuleCache:
    """
    Cache for one module, backed by a single hash bucket.

    Disabled caches never touch the repository and return None from
    every operation, whatever the arguments.
    """

    def __init__(
        self,
        module_cache_key: str,
        cache_expire: Optional[Union[int, CacheExpire]] = None,
        *,
        repository: HashBucketRepository,
        disabled: Optional[bool] = None,
    ):
        """
        Args:
            module_cache_key: Name of the module's hash bucket
            cache_expire: Bucket expiry in seconds (CACHE_DEFAULT_EXPIRE if omitted)
            repository: Hash-bucket store shared by all module caches
            disabled: Overrides CACHE_DISABLED
        """
        self._module_cache_key = ModuleCacheKey(module_cache_key)
        self._cache_expire = CacheExpire.of(
            settings.CACHE_DEFAULT_EXPIRE if cache_expire is None else cache_expire
        )
        self._disabled = bool(settings.CACHE_DISABLED if disabled is None else disabled)
        self._repository = repository

    @property
    def module_cache_key(self) -> str:
        return self._module_cache_key.value

    @property
    def cache_expire(self) -> int:
        return self._cache_expire.seconds

    @property
    def disabled(self) -> bool:
        return self._disabled

    def format_key(
        self, cache_key: str, params: Any = None, operation: str = "Format"
    ) -> str:
        """Field name a (cache_key, params) pair is stored under."""
        return CacheParams.from_raw(params, operation).format(cache_key)

    async def set(self, cache_key: str, params: Any, value: Any) -> Optional[int]:
        """
        Store value under the field derived from cache_key and params.

        Refreshes the expiry of the whole bucket.

        Returns:
            HSET result (1 for a new field, 0 for an overwrite), None if disabled

        Raises:
            InvalidArgumentType: params is not a mapping, list or None
            InvalidParameterShape: params holds a nested mapping
            RedisException: the store failed
        """
        if self._disabled:
            return None

        formatted_key = self.format_key(cache_key, params, "Set")
        bucket = self.module_cache_key

        with tracer.start_as_current_span("module_cache.set") as span:
            span.set_attribute("cache.module", bucket)
            span.set_attribute("cache.field", formatted_key)

            try:
                result = await self._repository.hash_field_set(
                    bucket, formatted_key, json.dumps(value, default=str)
                )
                await self._repository.bucket_expire(bucket, self.cache_expire)

                logger.debug(
                    f"Cached {bucket}/{formatted_key}",
                    extra={
                        "module": bucket,
                        "field": formatted_key,
                        "expire": self.cache_expire,
                    },
                )
                return result

            except RedisException as e:
                logger.error(f"Cache {bucket} SET error: {e}")
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

    async def get(self, cache_key: str, params: Any = None) -> Any:
        """
        Read the value stored for cache_key and params.

        Lookups without params always miss, even though set() writes them
        under the "default" field.

        Returns:
            Deserialized value, or None on a miss or when disabled

        Raises:
            InvalidArgumentType: params is not a mapping, list or None
            InvalidParameterShape: params holds a nested mapping
            RedisException: the store failed; the bucket has been dropped
        """
        if self._disabled:
            return None

        cache_params = CacheParams.from_raw(params, "Get")
        if cache_params.is_empty:
            return None

        formatted_key = cache_params.format(cache_key)
        bucket = self.module_cache_key

        with tracer.start_as_current_span("module_cache.get") as span:
            span.set_attribute("cache.module", bucket)
            span.set_attribute("cache.field", formatted_key)

            try:
                cached = await self._repository.hash_field_get(bucket, formatted_key)
                if not cached:
                    span.set_attribute("cache.hit", False)
                    logger.debug(f"Cache miss {bucket}/{formatted_key}")
                    return None

                try:
                    value = json.loads(cached)
                except ValueError as e:
                    raise CacheStorageException(
                        operation="decode",
                        bucket=bucket,
                        field=formatted_key,
                        message=f"Corrupted cache payload in {bucket}/{formatted_key}",
                        original_error=e,
                    ) from e

                span.set_attribute("cache.hit", True)
                logger.debug(f"Cache hit {bucket}/{formatted_key}")
                return value

            except RedisException as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                await self._drop_bucket_after_failure()
                logger.error(f"Cache {bucket} GET error: {e}")
                raise

    async def _drop_bucket_after_failure(self) -> None:
        """Delete the whole bucket so a corrupted hash cannot keep failing reads."""
        try:
            await self._repository.bucket_delete(self.module_cache_key)
        except RedisException as e:
            logger.warning(
                f"Cache {self.module_cache_key} recovery delete failed: {e}"
            )

    async def clear(
        self, cache_key: Optional[str] = None
    ) -> Union[None, int, List[int]]:
        """
        Invalidate cached values.

        Args:
            cache_key: Field name prefix to delete; the whole bucket when omitted

        Returns:
            DEL result for a whole-bucket clear, one HDEL result per deleted
            field for a prefix clear, None if disabled

        Raises:
            RedisException: the store failed
        """
        if self._disabled:
            return None

        bucket = self.module_cache_key

        with tracer.start_as_current_span("module_cache.clear") as span:
            span.set_attribute("cache.module", bucket)
            if cache_key:
                span.set_attribute("cache.prefix", cache_key)

            try:
                if cache_key:
                    result = await self._repository.delete_fields_with_prefix(
                        bucket, cache_key
                    )
                    logger.debug(
                        f"Cleared {len(result)} fields with prefix {cache_key} from {bucket}"
                    )
                    return result

                result = await self._repository.bucket_delete(bucket)
                logger.debug(f"Cleared cache bucket {bucket}")
                return result

            except RedisException as e:
                logger.error(f"Cache {bucket}/{cache_key} DEL error: {e}")
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

    async def remember(
        self,
        cache_key: str,
        params: Any,
        loader: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Return the cached value, or await loader() and cache its result.

        A None result from loader() is returned but not cached.
        """
        cached = await self.get(cache_key, params)
        if cached is not None:
            return cached

        value = await loader()
        if value is not None:
            await self.set(cache_key, params, value)
        return value

    def __repr__(self) -> str:
        return (
            f"ModuleCache({self.module_cache_key!r}, {self.cache_expire}, "
            f"disabled={self._disabled})"
        )
