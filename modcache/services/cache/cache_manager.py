"""
Cache Manager Service

Wires the process-wide Redis service into module caches. One manager per
process; every ModuleCache it hands out shares the same repository.
"""

import logging
import time
from typing import Any, Dict, Optional, Union

from opentelemetry import trace

from ...core.config import Settings, configure_logging, settings as default_settings
from ...domain.cache.value_objects import CacheExpire
from ...infrastructure.redis.redis_service import RedisService
from ...infrastructure.repositories.hash_bucket_repository import (
    RedisHashBucketRepository,
)
from .module_cache import ModuleCache

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class CacheManager:
    """
    Entry point for module caches.

    Usage:
        manager = CacheManager(RedisService())
        await manager.initialize()
        cache = manager.module_cache("model.test", 10)
        ...
        await manager.close()
    """

    def __init__(
        self,
        redis_service: Optional[RedisService] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or default_settings
        self.redis_service = redis_service or RedisService(self.settings)
        self.repository = RedisHashBucketRepository(self.redis_service)
        self._caches: Dict[str, ModuleCache] = {}

    @property
    def disabled(self) -> bool:
        return self.settings.CACHE_DISABLED

    async def initialize(self) -> None:
        """Connect to Redis and load repository scripts.

        Disabled caching never connects.
        """
        configure_logging(self.settings.LOG_LEVEL)

        if self.disabled:
            logger.info("Caching disabled - skipping Redis initialization")
            return

        try:
            await self.redis_service.initialize()
            await self.repository.initialize()
            logger.info("Cache manager initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize cache manager: {e}")
            raise

    async def close(self) -> None:
        """Release the Redis connection pool."""
        await self.redis_service.close()
        logger.info("Cache manager closed")

    def module_cache(
        self,
        module_cache_key: str,
        cache_expire: Optional[Union[int, CacheExpire]] = None,
    ) -> ModuleCache:
        """
        Get the cache for a module, creating it on first use.

        Raises:
            ValueError: the module already has a cache with a different expiry
        """
        cache = self._caches.get(module_cache_key)
        if cache is not None:
            if (
                cache_expire is not None
                and CacheExpire.of(cache_expire).seconds != cache.cache_expire
            ):
                raise ValueError(
                    f"Module cache {module_cache_key} already exists with "
                    f"expiry {cache.cache_expire}s"
                )
            return cache

        if cache_expire is None:
            cache_expire = self.settings.CACHE_DEFAULT_EXPIRE

        cache = ModuleCache(
            module_cache_key,
            cache_expire,
            repository=self.repository,
            disabled=self.disabled,
        )
        self._caches[module_cache_key] = cache
        logger.debug(
            f"Created module cache {module_cache_key}",
            extra={"module": module_cache_key, "expire": cache.cache_expire},
        )
        return cache

    async def health_check(self) -> Dict[str, Any]:
        """Report Redis health plus the module caches in use."""
        with tracer.start_as_current_span("cache_manager.health_check"):
            if self.disabled:
                redis_health: Dict[str, Any] = {
                    "status": "disabled",
                    "timestamp": time.time(),
                    "service": "redis",
                }
            else:
                redis_health = await self.redis_service.health_check()

            redis_health["cache_manager"] = {
                "disabled": self.disabled,
                "modules": {
                    name: cache.cache_expire for name, cache in self._caches.items()
                },
            }
            return redis_health

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
