"""Slot listing cache keyed by (tenant, specialist, date).

Entries expire after a TTL and are dropped explicitly whenever a write touches
the specialist's schedule or one of their appointment dates.
"""

import logging
import time
from datetime import date
from threading import Lock
from typing import Callable, Dict, Optional, Tuple

from medcenter.core import config
from medcenter.scheduling.slots import SlotListing

logger = logging.getLogger(__name__)

CacheKey = Tuple[int, int, date]


class SlotCache:
    def __init__(
        self,
        ttl_seconds: int = config.SLOT_CACHE_TTL_SECONDS,
        max_size: int = config.SLOT_CACHE_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: Dict[CacheKey, Tuple[SlotListing, float]] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def _is_expired(self, timestamp: float) -> bool:
        return self._clock() - timestamp > self.ttl_seconds

    def get(self, key: CacheKey) -> Optional[SlotListing]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            listing, timestamp = entry
            if self._is_expired(timestamp):
                del self._entries[key]
                return None
            return listing

    def set(self, key: CacheKey, listing: SlotListing) -> None:
        if listing.failed:
            return
        with self._lock:
            self._entries[key] = (listing, self._clock())
            self._evict_if_needed()

    def _evict_if_needed(self) -> None:
        if len(self._entries) <= self.max_size:
            return
        expired = [key for key, (_, ts) in self._entries.items() if self._is_expired(ts)]
        for key in expired:
            del self._entries[key]
        if len(self._entries) > self.max_size:
            oldest = sorted(self._entries.items(), key=lambda item: item[1][1])
            for key, _ in oldest[:len(self._entries) - self.max_size]:
                del self._entries[key]

    def invalidate(self, tenant_id: int, specialist_id: int, target: Optional[date] = None) -> int:
        """Drop one date, or every date when ``target`` is None. Returns how many entries went."""
        with self._lock:
            if target is not None:
                removed = 1 if self._entries.pop((tenant_id, specialist_id, target), None) else 0
            else:
                keys = [key for key in self._entries if key[0] == tenant_id and key[1] == specialist_id]
                for key in keys:
                    del self._entries[key]
                removed = len(keys)
        if removed:
            logger.debug('Invalidated %d slot cache entries for specialist %s', removed, specialist_id)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
