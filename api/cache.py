# -*- coding: utf-8 -*-
"""
Ranking cache
- LRU cache for the station priority ranking endpoints (TTL 5 min, max 100)
- Cleared by a recalculation subscriber whenever a profile is saved or activated
- Thread-safe: RLock around every access
"""
import threading
import time
from collections import OrderedDict
from typing import Any, Dict, Hashable, Optional, Tuple


class RankingCache:
    """
    LRU cache (thread-safe)
    - key: any hashable tuple, e.g. ("priorities", analysis_date, limit)
    - TTL: 300 s
    - at most ``max_size`` entries
    """

    def __init__(self, max_size: int = 100, ttl_seconds: int = 300):
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.cache: OrderedDict[Tuple, Dict[str, Any]] = OrderedDict()  # {key: {value, timestamp}}
        self._lock = threading.RLock()

    def _cleanup_expired(self):
        """Drop expired entries (caller must hold lock)"""
        now = time.time()
        expired_keys = [
            key for key, data in self.cache.items()
            if now - data["timestamp"] > self.ttl_seconds
        ]
        for key in expired_keys:
            del self.cache[key]

    def get(self, *key: Hashable) -> Optional[Any]:
        with self._lock:
            self._cleanup_expired()
            if key in self.cache:
                self.cache.move_to_end(key)
                return self.cache[key]["value"]
            return None

    def set(self, *key: Hashable, value: Any):
        with self._lock:
            self._cleanup_expired()
            if key in self.cache:
                self.cache.move_to_end(key)

            if len(self.cache) >= self.max_size and key not in self.cache:
                self.cache.popitem(last=False)

            self.cache[key] = {
                "value": value,
                "timestamp": time.time(),
            }

    def invalidate(self):
        with self._lock:
            self.cache.clear()

    def __len__(self):
        with self._lock:
            return len(self.cache)


ranking_cache = RankingCache(max_size=100, ttl_seconds=300)


def invalidate_ranking_cache(event=None):
    """Recalculation subscriber: scores changed, cached rankings are stale."""
    ranking_cache.invalidate()
