"""
TTL Cache - Bounded in-memory cache with lazy expiry
"""

import functools
import time
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

import structlog
from pydantic import BaseModel

logger = structlog.get_logger(__name__)

T = TypeVar('T')


class CacheEntry(BaseModel, Generic[T]):
    value: T
    created_at: float
    ttl_seconds: float


class TTLCache(Generic[T]):
    """In-memory key/value store; entries expire after their TTL"""

    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        max_size: int,
        clock: Callable[[], float] = time.monotonic
    ):
        self.name = name
        self.default_ttl = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: Dict[str, CacheEntry[Any]] = {}
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def _is_expired(self, entry: CacheEntry[Any], now: float) -> bool:
        return now - entry.created_at >= entry.ttl_seconds

    def get(self, key: str) -> Optional[T]:
        """Return the cached value, or None when absent or expired"""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        if self._is_expired(entry, self._clock()):
            del self._entries[key]
            self.misses += 1
            logger.debug("Cache entry expired", cache=self.name, key=key)
            return None

        self.hits += 1
        return entry.value

    def set(self, key: str, value: T, ttl: Optional[float] = None) -> None:
        """
        Store a value

        Args:
            key: Cache key
            value: Value to store
            ttl: Time to live in seconds; defaults to the cache's TTL
        """
        if key not in self._entries and len(self._entries) >= self.max_size:
            oldest_key = min(self._entries, key=lambda k: self._entries[k].created_at)
            del self._entries[oldest_key]
            self.evictions += 1
            logger.debug("Cache evicted oldest entry", cache=self.name, key=oldest_key)

        self._entries[key] = CacheEntry[Any](
            value=value,
            created_at=self._clock(),
            ttl_seconds=self.default_ttl if ttl is None else ttl,
        )

    def has(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._is_expired(entry, self._clock()):
            del self._entries[key]
            return False
        return True

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def size(self) -> int:
        """Number of live entries; expired entries are purged first"""
        now = self._clock()
        for key in [k for k, entry in self._entries.items() if self._is_expired(entry, now)]:
            del self._entries[key]
        return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        lookups = self.hits + self.misses
        return {
            "name": self.name,
            "size": self.size(),
            "max_size": self.max_size,
            "ttl_seconds": self.default_ttl,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": self.hits / lookups if lookups else 0.0,
        }


def cached(cache: TTLCache[Any], key_builder: Optional[Callable[..., str]] = None, ttl: Optional[float] = None):
    """
    Decorator to cache coroutine results

    Args:
        cache: Cache instance to store results in
        key_builder: Builds the cache key from the call arguments; defaults to
            the function name joined with its arguments
        ttl: Time to live in seconds (defaults to the cache's TTL)
    """
    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            if key_builder is not None:
                cache_key = key_builder(*args, **kwargs)
            else:
                key_parts = [func.__name__]
                key_parts.extend(str(arg) for arg in args)
                key_parts.extend(f"{k}:{v}" for k, v in sorted(kwargs.items()))
                cache_key = ":".join(key_parts)

            cached_value = cache.get(cache_key)
            if cached_value is not None:
                logger.debug("Cache hit", cache=cache.name, key=cache_key)
                return cached_value

            result = await func(*args, **kwargs)
            if result is not None:
                cache.set(cache_key, result, ttl=ttl)
            return result

        return wrapper
    return decorator
