"""
Redis-backed caching for the signal store
"""

from .access_list_cache import CachedSignalStore
from .redis_client import close_redis, init_redis

__all__ = ["CachedSignalStore", "close_redis", "init_redis"]
