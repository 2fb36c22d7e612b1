"""
modcache

Per-module Redis hash caches with parameter-sensitive keys,
bucket-wide TTL and prefix invalidation.
"""

from .services.cache.module_cache import ModuleCache
from .services.cache.cache_manager import CacheManager
from .infrastructure.redis.redis_service import RedisService

__all__ = ["ModuleCache", "CacheManager", "RedisService"]
