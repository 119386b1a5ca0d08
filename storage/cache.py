"""
Cache
In-memory TTL/LRU cache used to memoize cheap validation checks
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional
import logging
import time


logger = logging.getLogger(__name__)


class BaseCache(ABC):
    """
    Cache interface
    """

    def __init__(self, ttl: Optional[float] = None):
        """
        Args:
            ttl: Default time-to-live in seconds, None = never expire
        """
        self.ttl = ttl

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        pass

    def get_or_set(
        self,
        key: str,
        factory: Callable[[], Any],
        ttl: Optional[float] = None,
    ) -> Any:
        """
        Return the cached value, computing and storing it on a miss

        Args:
            key: Cache key
            factory: Value factory
            ttl: Optional per-entry TTL

        Returns:
            Cached or freshly computed value
        """
        value = self.get(key)
        if value is not None:
            return value

        value = factory()
        self.set(key, value, ttl)
        return value


class MemoryCache(BaseCache):
    """
    Dictionary cache with expiry and least-recently-used eviction
    """

    def __init__(
        self,
        ttl: Optional[float] = 300.0,
        max_size: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            ttl: Default time-to-live in seconds
            max_size: Maximum number of entries
            clock: Monotonic time source
        """
        super().__init__(ttl)
        self.max_size = max_size
        self._clock = clock
        self._cache: Dict[str, Dict[str, Any]] = {}
        self._hits = 0
        self._misses = 0

    def _is_expired(self, entry: Dict[str, Any]) -> bool:
        expires_at = entry.get("expires_at")
        if expires_at is None:
            return False
        return self._clock() > expires_at

    def _evict_lru(self) -> None:
        oldest_key = min(self._cache, key=lambda k: self._cache[k]["last_access"])
        del self._cache[oldest_key]

    def get(self, key: str) -> Optional[Any]:
        entry = self._cache.get(key)
        if entry is None:
            self._misses += 1
            return None

        if self._is_expired(entry):
            del self._cache[key]
            self._misses += 1
            return None

        entry["last_access"] = self._clock()
        entry["hits"] += 1
        self._hits += 1
        return entry["value"]

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        if key not in self._cache and len(self._cache) >= self.max_size:
            self._evict_lru()

        ttl = ttl or self.ttl
        now = self._clock()
        self._cache[key] = {
            "value": value,
            "expires_at": now + ttl if ttl else None,
            "last_access": now,
            "hits": 0,
        }

    def delete(self, key: str) -> None:
        self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()
        self._hits = 0
        self._misses = 0

    def exists(self, key: str) -> bool:
        entry = self._cache.get(key)
        if entry is None:
            return False
        if self._is_expired(entry):
            del self._cache[key]
            return False
        entry["last_access"] = self._clock()
        return True

    def stats(self) -> Dict[str, float]:
        total = self._hits + self._misses
        return {
            "size": len(self._cache),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / total if total else 0.0,
        }
