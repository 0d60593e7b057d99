"""
In-process permission cache.
Maps user id -> (effective permission set, stored-at) with a fixed TTL, explicit
invalidation hooks and a sweep used by the background eviction job.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Optional, Tuple

logger = logging.getLogger(__name__)

PermissionSet = FrozenSet[str]


@dataclass
class CacheStats:
    """Cache statistics for monitoring."""
    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0
    invalidations: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        return (self.hits / total) if total > 0 else 0.0


class PermissionCache:
    """
    Thread-safe TTL cache keyed by user id.

    All map mutations happen under a single lock, so the periodic sweep and
    request-path reads/writes can interleave freely.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[int, Tuple[PermissionSet, float]] = {}
        self._lock = threading.Lock()
        self.stats = CacheStats()

    def get(self, user_id: int) -> Optional[PermissionSet]:
        """Return the cached set if it is younger than the TTL."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                self.stats.misses += 1
                return None
            permissions, stored_at = entry
            if now - stored_at >= self.ttl_seconds:
                del self._entries[user_id]
                self.stats.misses += 1
                self.stats.evictions += 1
                return None
            self.stats.hits += 1
            return permissions

    def set(self, user_id: int, permissions: PermissionSet) -> None:
        with self._lock:
            self._entries[user_id] = (frozenset(permissions), self._clock())
            self.stats.sets += 1

    def invalidate(self, user_id: int) -> None:
        with self._lock:
            if self._entries.pop(user_id, None) is not None:
                self.stats.invalidations += 1

    def invalidate_all(self) -> None:
        with self._lock:
            self.stats.invalidations += len(self._entries)
            self._entries.clear()

    def sweep_expired(self) -> int:
        """Evict every entry older than the TTL. Returns the number evicted."""
        now = self._clock()
        with self._lock:
            expired = [
                user_id for user_id, (_, stored_at) in self._entries.items()
                if now - stored_at > self.ttl_seconds
            ]
            for user_id in expired:
                del self._entries[user_id]
            self.stats.evictions += len(expired)
        if expired:
            logger.debug("Permission cache sweep evicted %d entries", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, user_id: object) -> bool:
        with self._lock:
            return user_id in self._entries
