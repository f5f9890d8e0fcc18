"""Cache layer for the tzurot services.

Provides:
- An in-process TTL cache with lazy and periodic expiry
- Composite cache keys with structural (positional) matching
- The shared Redis client used for cross-process invalidation
"""

from tzurot_cache.cache.keys import CacheKeys, CascadeKeyParts
from tzurot_cache.cache.redis import close_redis, get_redis
from tzurot_cache.cache.ttl import CacheEntry, TtlCache

__all__ = [
    "CacheEntry",
    "CacheKeys",
    "CascadeKeyParts",
    "TtlCache",
    "close_redis",
    "get_redis",
]
