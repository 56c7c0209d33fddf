"""Thread-safe LRU cache with time-to-live expiry.

Used for segment exploration results keyed by a quantized map viewport and for
memoising upstream routing responses. Entries expire ``ttl_seconds`` after they
were written; when the cache is full the least recently used entry is evicted.
A background sweep removing expired entries can be started and stopped
explicitly so that the owning application controls its lifetime.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Optional

from ...models.domain import Bounds

logger = logging.getLogger(__name__)

KEY_DECIMALS = 4


@dataclass(slots=True)
class CacheEntry:
    value: Any
    timestamp: float
    access_count: int = 1


def bounds_to_key(bounds: Bounds) -> str:
    """Build a cache key from a viewport rounded to four decimal places.

    Viewports that differ only below the fourth decimal map to the same key.
    """
    parts = (bounds.sw_lat, bounds.sw_lng, bounds.ne_lat, bounds.ne_lng)
    # ``+ 0.0`` folds negative zero so that -0.00001 and 0.00001 share a key.
    return ",".join(f"{round(value, KEY_DECIMALS) + 0.0:.{KEY_DECIMALS}f}" for value in parts)


class ExpiringLRUCache:
    def __init__(
        self,
        max_size: int = 200,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ) -> None:
        if max_size < 1:
            raise ValueError("Cache max_size must be at least 1.")
        if ttl_seconds <= 0:
            raise ValueError("Cache ttl_seconds must be positive.")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.name = name
        self._clock = clock
        self._entries: OrderedDict[Hashable, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._sweeper: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._reset_counters()

    def _reset_counters(self) -> None:
        self.total_gets = 0
        self.total_hits = 0
        self.total_misses = 0
        self.total_sets = 0
        self.total_evictions = 0
        self.total_expired = 0

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.timestamp > self.ttl_seconds

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: Hashable) -> Any:
        """Return the cached value or ``None`` when missing or expired."""
        with self._lock:
            self.total_gets += 1
            entry = self._entries.get(key)
            if entry is None:
                self.total_misses += 1
                return None
            now = self._clock()
            if self._is_expired(entry, now):
                del self._entries[key]
                self.total_misses += 1
                self.total_expired += 1
                logger.debug(f"[{self.name}] expired key {key!r} after {now - entry.timestamp:.0f}s")
                return None
            entry.access_count += 1
            self.total_hits += 1
            self._entries.move_to_end(key)
            return entry.value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            now = self._clock()
            self.total_sets += 1
            existing = self._entries.get(key)
            if existing is not None:
                self._entries[key] = CacheEntry(value=value, timestamp=now, access_count=existing.access_count + 1)
                self._entries.move_to_end(key)
                return
            if len(self._entries) >= self.max_size:
                evicted_key, _ = self._entries.popitem(last=False)
                self.total_evictions += 1
                logger.debug(f"[{self.name}] evicted least recently used key {evicted_key!r}")
            self._entries[key] = CacheEntry(value=value, timestamp=now)

    def has(self, key: Hashable) -> bool:
        """Return True when ``key`` is present and not expired. Does not touch recency."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if self._is_expired(entry, self._clock()):
                del self._entries[key]
                self.total_expired += 1
                return False
            return True

    def clear(self) -> None:
        with self._lock:
            cleared = len(self._entries)
            self._entries.clear()
            self._reset_counters()
        logger.info(f"[{self.name}] cleared {cleared} entries")

    def cleanup(self) -> int:
        """Remove every expired entry and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
            for key in expired:
                del self._entries[key]
            self.total_expired += len(expired)
            size = len(self._entries)
        if expired:
            logger.info(f"[{self.name}] sweep removed {len(expired)} expired entries ({size} remaining)")
        return len(expired)

    def stats(self) -> dict:
        with self._lock:
            size = len(self._entries)
            hit_rate = self.total_hits / self.total_gets if self.total_gets else 0.0
            return {
                "name": self.name,
                "size": size,
                "max_size": self.max_size,
                "ttl_seconds": self.ttl_seconds,
                "total_gets": self.total_gets,
                "hits": self.total_hits,
                "misses": self.total_misses,
                "sets": self.total_sets,
                "evictions": self.total_evictions,
                "expirations": self.total_expired,
                "hit_rate": round(hit_rate, 4),
                "utilization": round(size / self.max_size, 4),
            }

    @property
    def running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def start(self, interval_seconds: float = 120.0) -> None:
        """Start the periodic sweep on a daemon thread. Calling it twice is a no-op."""
        if interval_seconds <= 0:
            raise ValueError("Sweep interval must be positive.")
        if self.running:
            return
        self._stop_event.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop,
            args=(interval_seconds,),
            name=f"{self.name}-sweeper",
            daemon=True,
        )
        self._sweeper.start()
        logger.info(f"[{self.name}] sweep started every {interval_seconds:.0f}s")

    def stop(self, timeout: float | None = 5.0) -> None:
        sweeper = self._sweeper
        if sweeper is None:
            return
        self._stop_event.set()
        sweeper.join(timeout)
        self._sweeper = None
        logger.info(f"[{self.name}] sweep stopped")

    def _sweep_loop(self, interval_seconds: float) -> None:
        while not self._stop_event.wait(interval_seconds):
            self.cleanup()
            stats = self.stats()
            logger.debug(
                f"[{self.name}] size={stats['size']}/{stats['max_size']} hit_rate={stats['hit_rate']:.2%}"
            )
