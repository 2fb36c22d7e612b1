"""
Cache Services

ModuleCache: one namespaced Redis hash per module
CacheManager: shares one Redis connection across module caches
"""

from .module_cache import ModuleCache
from .cache_manager import CacheManager

__all__ = ["ModuleCache", "CacheManager"]
