"""
In-process response cache.

Keys follow a namespace convention so that related entries can be dropped
together with a glob pattern:

    shop:{shop_id}:upsell:rules:{search}:{type}:{status}
    shop:{shop_id}:upsell:rule:{rule_id}
    shop:{shop_id}:upsell:stats:{rule_id}
    public:shop:{shop_id}:upsell:rules
    public:upsell:rule:{rule_id}
"""
import copy
import fnmatch
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A cached value with its expiry (monotonic clock)."""
    value: Any
    expires_at: Optional[float] = None
    created_at: float = field(default_factory=time.monotonic)

    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return time.monotonic() >= self.expires_at


class CacheService:
    """
    Get-or-compute memoization with TTL and pattern invalidation.

    The store holds at most `capacity` entries. Every write drops expired
    entries, then the least recently used ones if the store is still full.
    """

    def __init__(self, capacity: int = settings.CACHE_MAX_ENTRIES):
        if capacity <= 0:
            raise ValueError("Cache capacity must be positive")
        self._capacity = capacity
        self._store: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._store)

    def get(self, key: str) -> Any:
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired():
            del self._store[key]
            return None
        self._store.move_to_end(key)
        return copy.deepcopy(entry.value)

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl if ttl else None
        self._store.pop(key, None)
        self._evict()
        self._store[key] = CacheEntry(value=copy.deepcopy(value), expires_at=expires_at)

    def _evict(self) -> None:
        """Drop expired entries and make room for one more."""
        expired_keys = [key for key, entry in self._store.items() if entry.is_expired()]
        for key in expired_keys:
            del self._store[key]

        evicted = 0
        while len(self._store) >= self._capacity:
            self._store.popitem(last=False)
            evicted += 1

        if expired_keys or evicted:
            logger.debug(f"Cache evicted {len(expired_keys)} expired and {evicted} least recently used key(s)")

    async def remember(
        self,
        key: str,
        ttl: int,
        compute: Callable[[], Awaitable[Any]]
    ) -> Any:
        """
        Return the cached value for `key`, or await `compute()` and cache it.

        Values are deep-copied in and out so callers can mutate what they get.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        value = await compute()
        try:
            self.set(key, value, ttl)
        except Exception as e:
            # Uncacheable values are still returned to the caller
            logger.warning(f"Failed to cache key {key}: {str(e)}")
        return value

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern. Returns the count deleted."""
        keys = [key for key in self._store if fnmatch.fnmatchcase(key, pattern)]
        for key in keys:
            del self._store[key]
        if keys:
            logger.debug(f"Cache invalidated {len(keys)} key(s) for pattern {pattern}")
        return len(keys)

    def clear(self) -> None:
        self._store.clear()


class TTL:
    """Standard cache lifetimes."""
    SHORT = settings.CACHE_TTL_SHORT
    LONG = settings.CACHE_TTL_LONG


# Global cache instance
cache_service = CacheService()


async def invalidate_upsell_cache(shop_id: str, rule_id: Optional[str] = None) -> int:
    """
    Drop every cached upsell listing/snapshot for a shop.

    Called after each rule mutation. Failures are logged, never raised.
    """
    patterns = [
        f"shop:{shop_id}:upsell:*",
        f"public:shop:{shop_id}:upsell:*",
    ]
    if rule_id:
        patterns.append(f"public:upsell:rule:{rule_id}")

    total_deleted = 0
    try:
        for pattern in patterns:
            total_deleted += await cache_service.delete_pattern(pattern)
    except Exception as e:
        logger.error(f"Failed to invalidate upsell cache for shop {shop_id}: {str(e)}")
        return total_deleted

    logger.info(f"Invalidated upsell cache for shop {shop_id} ({total_deleted} keys)")
    return total_deleted
