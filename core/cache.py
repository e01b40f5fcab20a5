"""
Request Cache for the Gallery Live API.

This module provides the request cache that sits in front of the remote image
source. Gallery pages and single images are fetched far more often than they
change, so results are kept in memory for a short TTL, and identical requests
that are in flight at the same time share one upstream call.

Key Components:
- `CacheBackend` (ABC): Interface for cache storage implementations.
- `MemoryCacheBackend`: In-memory store with TTL expiry and LRU eviction.
- `CacheManager`: Facade used by the services. Backend errors are logged and
  treated as misses; `get_or_fetch` coalesces concurrent identical fetches and
  never caches a failed fetch.
- `init_cache` / `get_cache`: Access to the process-wide cache manager.
"""

import asyncio
import fnmatch
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    """Cache entry with metadata"""

    value: Any
    expires_at: Optional[float] = None
    created_at: float = field(default_factory=time.monotonic)
    access_count: int = 0

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and time.monotonic() >= self.expires_at


class CacheBackend(ABC):
    """Abstract base class for cache backends"""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Get cache entry value by key"""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """Set cache entry with optional TTL in seconds"""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete cache entry"""
        pass

    @abstractmethod
    async def clear(self) -> bool:
        """Clear all cache entries"""
        pass

    @abstractmethod
    async def keys(self, pattern: str = "*") -> List[str]:
        """Get cache keys matching a glob pattern"""
        pass

    @abstractmethod
    async def stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        pass


class MemoryCacheBackend(CacheBackend):
    """In-memory cache backend with TTL and LRU eviction"""

    def __init__(self, max_size: int = 1000, default_ttl: Optional[float] = 300):
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None

            if entry.is_expired:
                del self._entries[key]
                self.misses += 1
                logger.debug(f"Cache expired for key: {key}")
                return None

            entry.access_count += 1
            self._entries.move_to_end(key)
            self.hits += 1
            return entry.value

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        async with self._lock:
            ttl = self.default_ttl if ttl is None else ttl
            expires_at = time.monotonic() + ttl if ttl else None

            self._entries.pop(key, None)
            while len(self._entries) >= self.max_size:
                evicted_key, _ = self._entries.popitem(last=False)
                self.evictions += 1
                logger.debug(f"Evicted LRU key: {evicted_key}")

            self._entries[key] = CacheEntry(value=value, expires_at=expires_at)
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def clear(self) -> bool:
        async with self._lock:
            self._entries.clear()
            logger.info("Cache cleared")
            return True

    async def keys(self, pattern: str = "*") -> List[str]:
        async with self._lock:
            return [key for key in self._entries if fnmatch.fnmatch(key, pattern)]

    async def stats(self) -> Dict[str, Any]:
        async with self._lock:
            total_requests = self.hits + self.misses
            return {
                "backend": "memory",
                "entries": len(self._entries),
                "max_size": self.max_size,
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": self.hits / total_requests if total_requests else 0.0,
                "evictions": self.evictions,
            }


class CacheManager:
    """High-level cache manager used by the services"""

    def __init__(self, backend: CacheBackend):
        self.backend = backend
        self._inflight: Dict[str, asyncio.Future] = {}

    async def get(self, key: str) -> Optional[Any]:
        try:
            return await self.backend.get(key)
        except Exception as e:
            logger.error(f"Cache get error for key {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        try:
            return await self.backend.set(key, value, ttl)
        except Exception as e:
            logger.error(f"Cache set error for key {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        try:
            return await self.backend.delete(key)
        except Exception as e:
            logger.error(f"Cache delete error for key {key}: {e}")
            return False

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> Any:
        """
        Return the cached value for key, or run fetch once and cache its result.

        Concurrent callers asking for the same missing key wait on the same
        fetch. Exceptions raised by fetch propagate to every waiter and
        nothing is cached.
        """
        value = await self.get(key)
        if value is not None:
            return value

        pending = self._inflight.get(key)
        if pending is not None:
            logger.debug(f"Joining in-flight fetch for key: {key}")
            return await asyncio.shield(pending)

        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            value = await fetch()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Retrieved here so an unobserved failure is not reported by asyncio
            future.exception()
            raise
        else:
            future.set_result(value)
            await self.set(key, value, ttl)
            return value
        finally:
            self._inflight.pop(key, None)

    async def invalidate_pattern(self, pattern: str) -> int:
        """Invalidate all keys matching pattern"""
        try:
            count = 0
            for key in await self.backend.keys(pattern):
                if await self.backend.delete(key):
                    count += 1
            logger.info(f"Invalidated {count} keys matching pattern: {pattern}")
            return count
        except Exception as e:
            logger.error(f"Cache invalidation error for pattern {pattern}: {e}")
            return 0

    async def health_check(self) -> Dict[str, Any]:
        """Perform cache health check"""
        try:
            test_key = "__health_check__"
            await self.set(test_key, "ok", ttl=1)
            retrieved = await self.get(test_key)
            await self.delete(test_key)
            stats = await self.backend.stats()

            return {
                "status": "healthy" if retrieved == "ok" else "unhealthy",
                "backend_type": stats.get("backend", "unknown"),
                "stats": stats,
            }
        except Exception as e:
            logger.error(f"Cache health check failed: {e}")
            return {"status": "unhealthy", "backend_type": "unknown", "error": str(e)}


def cache_key(*key_parts) -> str:
    """Generate a cache key from parts"""
    return ":".join(str(part) for part in key_parts if part is not None)


# Global cache manager instance
cache_manager: Optional[CacheManager] = None


def init_cache(backend: Optional[CacheBackend] = None) -> CacheManager:
    """Initialize the global cache manager with a specific backend."""
    global cache_manager
    cache_manager = CacheManager(backend or MemoryCacheBackend())
    return cache_manager


def get_cache() -> CacheManager:
    """Get the global cache manager instance, creating a memory one if needed."""
    global cache_manager
    if cache_manager is None:
        cache_manager = CacheManager(MemoryCacheBackend())
    return cache_manager
