"""In-process caching layer shared by generation and retrieval.

The cache is designed with fail-safe patterns: it is a performance
optimization, never a correctness dependency, so no cache operation
raises to its caller.

Key Features:
    - Per-entry TTL with lazy eviction on read
    - Periodic background sweep of expired entries
    - Wildcard invalidation ("templates:*")
    - Capacity bound with least-recently-used eviction
    - Performance statistics tracking

Usage:
    >>> from lexi.cache import CacheService, CacheConfig
    >>>
    >>> cache = CacheService(CacheConfig(max_entries=5000))
    >>> cache.start()  # owned by the process entry point
    >>> await cache.set("templates:popular", templates, ttl=3600)
    >>> templates = await cache.get("templates:popular")
    >>> await cache.invalidate("templates:*")
    >>> await cache.stop()
"""

from lexi.cache.models import CacheConfig, CacheStats
from lexi.cache.service import CacheService

__all__ = [
    "CacheService",
    "CacheConfig",
    "CacheStats",
]
