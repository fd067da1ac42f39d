"""
Claims Intel - Response Cache
Caches collaborator responses (claims sheet rows, generated SQL) with a TTL
"""

import hashlib
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Cache entry with metadata"""
    key: str
    value: Any
    created_at: float
    ttl_seconds: int
    entry_type: str  # "claims_rows", "generated_sql"
    access_count: int = 0

    def is_expired(self, now: Optional[float] = None) -> bool:
        now = time.monotonic() if now is None else now
        return (now - self.created_at) >= self.ttl_seconds


class ResponseCache:
    """LRU cache with TTL for collaborator responses"""

    def __init__(self, max_size: int = 200, default_ttl: int = 300):
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._stats = {"hits": 0, "misses": 0, "evictions": 0, "expirations": 0}

    @staticmethod
    def make_key(*args, **kwargs) -> str:
        """Stable key from arbitrary JSON-able arguments"""
        content = json.dumps({"args": args, "kwargs": kwargs}, sort_keys=True, default=str)
        return hashlib.sha256(content.encode()).hexdigest()

    def get(self, key: str) -> Optional[Any]:
        entry = self._cache.get(key)
        if entry is None:
            self._stats["misses"] += 1
            return None

        if entry.is_expired():
            logger.debug(f"Cache entry expired: {key[:16]}...")
            del self._cache[key]
            self._stats["misses"] += 1
            self._stats["expirations"] += 1
            return None

        entry.access_count += 1
        self._cache.move_to_end(key)
        self._stats["hits"] += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[int] = None, entry_type: str = "general") -> None:
        if key not in self._cache and len(self._cache) >= self.max_size:
            evicted_key, _ = self._cache.popitem(last=False)
            self._stats["evictions"] += 1
            logger.debug(f"Evicted cache entry: {evicted_key[:16]}...")

        self._cache[key] = CacheEntry(
            key=key,
            value=value,
            created_at=time.monotonic(),
            ttl_seconds=ttl if ttl is not None else self.default_ttl,
            entry_type=entry_type,
        )
        self._cache.move_to_end(key)

    def invalidate(self, key: str) -> None:
        self._cache.pop(key, None)

    def clear(self) -> None:
        count = len(self._cache)
        self._cache.clear()
        logger.info(f"Cleared {count} cache entries")

    def get_stats(self) -> Dict[str, Any]:
        total = self._stats["hits"] + self._stats["misses"]
        type_counts: Dict[str, int] = {}
        for entry in self._cache.values():
            type_counts[entry.entry_type] = type_counts.get(entry.entry_type, 0) + 1
        return {
            "total_entries": len(self._cache),
            "max_size": self.max_size,
            "hit_rate": self._stats["hits"] / total if total else 0,
            "entries_by_type": type_counts,
            **self._stats,
        }


# Singleton instance
_response_cache: Optional[ResponseCache] = None


def get_response_cache(max_size: int = 200, default_ttl: int = 300) -> ResponseCache:
    """Get singleton response cache instance"""
    global _response_cache
    if _response_cache is None:
        _response_cache = ResponseCache(max_size=max_size, default_ttl=default_ttl)
    return _response_cache
