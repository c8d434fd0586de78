"""Cache configuration and statistics models."""

from typing import Any

from pydantic import BaseModel, Field


class CacheConfig(BaseModel):
    """Configuration for the in-process cache.

    Attributes:
        enabled: Whether caching is enabled
        default_ttl: TTL used when set() is called without one (seconds)
        sweep_interval: Seconds between background sweeps of expired entries
        max_entries: Capacity bound; least-recently-used entries are evicted
    """

    enabled: bool = Field(default=True, description="Enable/disable caching")
    default_ttl: int = Field(default=3600, description="Default TTL in seconds", ge=1)
    sweep_interval: float = Field(
        default=300.0, description="Expired entry sweep interval (seconds)", gt=0.0
    )
    max_entries: int = Field(
        default=10_000, description="Maximum entries before LRU eviction", ge=1
    )

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> "CacheConfig":
        """Build from a load_cache_config() dict, ignoring unknown keys."""
        return cls(**{k: v for k, v in values.items() if k in cls.model_fields})


class CacheStats(BaseModel):
    """Cache performance statistics.

    Attributes:
        hits: Number of successful cache hits
        misses: Number of cache misses (absent or expired)
        sets: Number of values stored
        expirations: Entries removed because their TTL passed
        evictions: Entries removed to respect max_entries
        errors: Number of internal errors swallowed
        hit_rate: Cache hit rate percentage
        size: Entry count at the time stats were taken
    """

    hits: int = Field(default=0, description="Cache hits")
    misses: int = Field(default=0, description="Cache misses")
    sets: int = Field(default=0, description="Values stored")
    expirations: int = Field(default=0, description="Expired entries removed")
    evictions: int = Field(default=0, description="Capacity evictions")
    errors: int = Field(default=0, description="Cache errors")
    hit_rate: float = Field(default=0.0, description="Hit rate percentage")
    size: int = Field(default=0, description="Current entry count")

    def update_hit_rate(self) -> None:
        """Recalculate hit rate based on current stats."""
        total = self.hits + self.misses
        self.hit_rate = (self.hits / total * 100) if total > 0 else 0.0
