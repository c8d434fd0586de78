"""In-process expiring cache with LRU capacity bound and periodic sweep."""

import asyncio
import hashlib
import logging
import re
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from lexi.cache.models import CacheConfig, CacheStats

logger = logging.getLogger(__name__)

AI_RESPONSE_NAMESPACE = "ai_response"
AI_PROVIDER_NAMESPACE = "ai_provider"


@dataclass
class CacheEntry:
    """A stored value and the clock reading after which it is expired."""

    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """Check whether the entry is logically absent at time now."""
        return now > self.expires_at


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a glob where '*' matches any run of characters.

    The pattern is anchored at both ends and every other character is
    literal, so "ai_response:*" never matches "x_ai_response:1".
    """
    parts = (re.escape(part) for part in pattern.split("*"))
    return re.compile(f"^{'.*'.join(parts)}$", re.DOTALL)


class CacheService:
    """Process-wide key/value cache with per-entry expiry.

    Features:
        - Lazy eviction of expired entries on read
        - Periodic background sweep (start()/stop() owned by the entry point)
        - Wildcard invalidation ("prefix:*", "*")
        - Capacity bound with least-recently-used eviction
        - Performance statistics tracking

    Design Philosophy:
        Cache is an OPTIONAL optimization. Every public method swallows and
        logs internal errors; callers see a miss, never an exception.

    Concurrency:
        A threading.Lock guards the entry map for each short synchronous
        critical section. It is never held across an await, so readers and
        writers never wait on I/O. Concurrent writes to one key are
        last-write-wins.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize cache service.

        Args:
            config: Cache configuration (defaults to CacheConfig())
            clock: Monotonic time source in seconds; injectable for tests
        """
        self.config = config or CacheConfig()
        self.stats = CacheStats()
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._sweep_task: asyncio.Task[None] | None = None

        if self.config.enabled:
            logger.info(
                f"In-memory cache initialized (max_entries={self.config.max_entries}, "
                f"sweep_interval={self.config.sweep_interval}s)"
            )
        else:
            logger.info("Cache service disabled by configuration")

    async def get(self, key: str) -> Any | None:
        """Return the cached value for key.

        Args:
            key: Cache key

        Returns:
            The value if present and unexpired, None otherwise. An expired
            entry found here is deleted.
        """
        if not self.config.enabled:
            return None

        try:
            with self._lock:
                entry = self._entries.get(key)
                if entry is None:
                    self._record_miss()
                    return None

                if entry.is_expired(self._clock()):
                    del self._entries[key]
                    self.stats.expirations += 1
                    self._record_miss()
                    return None

                self._entries.move_to_end(key)
                self.stats.hits += 1
                self.stats.update_hit_rate()
                return entry.value

        except Exception as e:
            logger.error(f"Cache lookup failed (unexpected): {e}")
            self.stats.errors += 1
            return None

    async def set(self, key: str, value: Any, ttl: int | float | None = None) -> None:
        """Store value under key, replacing any previous value and TTL.

        Args:
            key: Cache key
            value: Any value; stored by reference
            ttl: Seconds until expiry (defaults to config.default_ttl)

        Note:
            Failures are logged but don't raise exceptions. Cache writes
            are best-effort.
        """
        if not self.config.enabled:
            return

        try:
            ttl = self.config.default_ttl if ttl is None else ttl
            if ttl <= 0:
                logger.warning(f"Ignoring cache write for {key!r} with non-positive TTL {ttl}")
                return

            with self._lock:
                now = self._clock()
                if key in self._entries:
                    self._entries.move_to_end(key)
                else:
                    self._make_room(now)
                self._entries[key] = CacheEntry(value=value, expires_at=now + ttl)
                self.stats.sets += 1
            logger.debug(f"Cached {str(key)[:60]} (ttl={ttl}s)")

        except Exception as e:
            logger.error(f"Cache write failed (unexpected): {e}")
            self.stats.errors += 1

    async def delete(self, key: str) -> bool:
        """Delete one key.

        Returns:
            True if the key existed, False otherwise (or on error)
        """
        try:
            with self._lock:
                return self._entries.pop(key, None) is not None
        except Exception as e:
            logger.error(f"Cache delete failed: {e}")
            self.stats.errors += 1
            return False

    async def invalidate(self, pattern: str) -> int:
        """Delete every key matching a '*' wildcard pattern.

        Args:
            pattern: Glob such as "templates:*"; "*" clears everything

        Returns:
            Number of entries removed
        """
        try:
            with self._lock:
                if pattern == "*":
                    count = len(self._entries)
                    self._entries.clear()
                else:
                    regex = compile_pattern(pattern)
                    doomed = [key for key in self._entries if regex.match(key)]
                    for key in doomed:
                        del self._entries[key]
                    count = len(doomed)

            if count:
                logger.debug(f"Invalidated {count} cache entries with pattern: {pattern}")
            return count

        except Exception as e:
            logger.error(f"Error invalidating cache: {e}")
            self.stats.errors += 1
            return 0

    async def clear(self, pattern: str = "*") -> int:
        """Clear all cache entries, or those matching pattern.

        Note:
            Maintenance/testing operation. Normal operation relies on TTL
            expiry and the periodic sweep.
        """
        count = await self.invalidate(pattern)
        if pattern == "*":
            logger.info(f"Cleared {count} cache entries")
        return count

    async def size(self) -> int:
        """Current entry count, including expired entries not yet swept (0 on error)."""
        try:
            with self._lock:
                return len(self._entries)
        except Exception as e:
            logger.error(f"Cache size failed: {e}")
            self.stats.errors += 1
            return 0

    async def sweep_expired(self) -> int:
        """Remove every expired entry.

        Returns:
            Number of entries removed
        """
        try:
            with self._lock:
                now = self._clock()
                expired = [k for k, e in self._entries.items() if e.is_expired(now)]
                for key in expired:
                    del self._entries[key]
                self.stats.expirations += len(expired)

            if expired:
                logger.debug(f"Cleaned up {len(expired)} expired cache entries")
            return len(expired)

        except Exception as e:
            logger.error(f"Cache sweep failed: {e}")
            self.stats.errors += 1
            return 0

    def start(self) -> None:
        """Start the periodic sweep task.

        Must be called from within a running event loop. Safe to call
        multiple times (idempotent).
        """
        if self._sweep_task is not None and not self._sweep_task.done():
            logger.debug("Cache sweep already running, skipping start")
            return

        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info(f"Started cache sweep (interval={self.config.sweep_interval}s)")

    async def stop(self) -> None:
        """Stop the periodic sweep task and wait for it to finish."""
        task = self._sweep_task
        self._sweep_task = None
        if task is None or task.done():
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Stopped cache sweep")

    @property
    def is_running(self) -> bool:
        """True while the sweep task is active."""
        return self._sweep_task is not None and not self._sweep_task.done()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.sweep_interval)
            await self.sweep_expired()

    async def health_check(self) -> bool:
        """In-memory cache is always available."""
        return True

    def get_stats(self) -> CacheStats:
        """Get current cache statistics.

        Returns:
            CacheStats with hit/miss/eviction counts and current size
        """
        self.stats.size = len(self._entries)
        return self.stats

    # Domain helpers

    def generate_key(self, prompt: str, namespace: str = AI_RESPONSE_NAMESPACE) -> str:
        """Generate a cache key from prompt text.

        Args:
            prompt: Prompt text
            namespace: Key prefix for namespace isolation

        Returns:
            Cache key string "{namespace}:{sha256}"

        Key Generation:
            1. Normalize: strip + collapse whitespace runs (case is kept)
            2. Hash: SHA256 for consistent key length
            3. Prefix: namespace for pattern invalidation
        """
        normalized = re.sub(r"\s+", " ", prompt.strip())
        digest = hashlib.sha256(normalized.encode()).hexdigest()
        return f"{namespace}:{digest}"

    async def get_provider_for_conversation(self, conversation_id: str) -> str | None:
        """Return the provider that last served this conversation, if remembered."""
        value = await self.get(f"{AI_PROVIDER_NAMESPACE}:{conversation_id}")
        return value if isinstance(value, str) else None

    async def set_provider_for_conversation(
        self, conversation_id: str, provider: str, ttl: int = 86400
    ) -> None:
        """Remember (and refresh the TTL of) a conversation's provider."""
        await self.set(f"{AI_PROVIDER_NAMESPACE}:{conversation_id}", provider, ttl)
        logger.debug(f"Set AI provider for conversation {conversation_id}: {provider}")

    # Internals (caller holds the lock)

    def _record_miss(self) -> None:
        self.stats.misses += 1
        self.stats.update_hit_rate()

    def _make_room(self, now: float) -> None:
        """Ensure one free slot: drop expired entries first, then LRU."""
        if len(self._entries) < self.config.max_entries:
            return

        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]
        self.stats.expirations += len(expired)

        while len(self._entries) >= self.config.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self.stats.evictions += 1
            logger.debug(f"Evicted least-recently-used cache entry {evicted[:60]}")
