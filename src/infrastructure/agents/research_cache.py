"""In-memory TTL + LRU cache for research results."""

import threading
import time
from collections import OrderedDict

from src.domain.entities.research import ResearchResult

DEFAULT_TTL = 7 * 24 * 3600


class ResearchCache:
    """Thread-safe LRU cache keyed by input classification.

    Features:
    - TTL-based expiration (default 7 days)
    - LRU eviction when max_entries exceeded
    """

    def __init__(self, ttl: int = DEFAULT_TTL, max_entries: int = 100):
        self._cache: OrderedDict[str, tuple[ResearchResult, float]] = OrderedDict()
        self._ttl = ttl
        self._max_entries = max_entries
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> ResearchResult | None:
        """Get a cached result (updates LRU order)."""
        with self._lock:
            if key in self._cache:
                result, stored_at = self._cache[key]
                if time.time() - stored_at < self._ttl:
                    self._cache.move_to_end(key)
                    self._hits += 1
                    return result
                del self._cache[key]
            self._misses += 1
            return None

    def set(self, key: str, result: ResearchResult) -> None:
        with self._lock:
            if key in self._cache:
                del self._cache[key]
            while len(self._cache) >= self._max_entries:
                self._cache.popitem(last=False)
            self._cache[key] = (result, time.time())

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> dict:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._cache),
                "max_entries": self._max_entries,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total else 0.0,
            }
