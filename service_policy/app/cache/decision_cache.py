"""
In-process decision cache for the Access Policy Service.
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from shared.logging import get_logger

from ..policy.models import AccessResult


@dataclass(frozen=True)
class CacheEntry:
    """Cached decision and its absolute expiry (epoch seconds)."""
    user_id: str
    result: AccessResult
    expires_at: float


class DecisionCache:
    """Time-bounded map from request fingerprint to decision.

    All reads, writes and invalidations take the same lock, so a reader
    never observes a partially invalidated cache.
    """

    def __init__(self, ttl_seconds: int = 300, max_entries: int = 10000,
                 clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.logger = get_logger("policy.decision_cache")
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def get(self, key: str) -> Optional[AccessResult]:
        """Return the live decision for key, dropping it if expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expires_at <= self._clock():
                del self._entries[key]
                entry = None

            if entry is None:
                self._misses += 1
                return None

            self._hits += 1
            return entry.result

    def set(self, key: str, user_id: str, result: AccessResult) -> AccessResult:
        """Store a decision and return it stamped with its expiry."""
        if not self.enabled:
            return result

        expires_at = self._clock() + self.ttl_seconds
        stamped = replace(result, expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc))

        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(user_id=user_id, result=stamped, expires_at=expires_at)
            if len(self._entries) > self.max_entries:
                self._evict()

        return stamped

    def invalidate_user(self, user_id: str) -> int:
        """Drop every cached decision for one user."""
        with self._lock:
            keys = [key for key, entry in self._entries.items() if entry.user_id == user_id]
            for key in keys:
                del self._entries[key]

        if keys:
            self.logger.info("Invalidated user decisions", user_id=user_id, count=len(keys))
        return len(keys)

    def clear(self) -> int:
        """Drop every cached decision."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()

        self.logger.info("Decision cache cleared", count=count)
        return count

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def _evict(self):
        # Expired entries go first, then the oldest insertions
        self.purge_expired()
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "max_entries": self.max_entries,
                "ttl_seconds": self.ttl_seconds,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total else 0.0,
            }
