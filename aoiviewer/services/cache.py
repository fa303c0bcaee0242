"""Bounded, time-expiring cache for upstream feature-info responses."""

from __future__ import annotations

import asyncio
import copy
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from aoiviewer.services.metrics import metrics

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300
DEFAULT_MAX_SIZE = 1000


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    stored_at: float


class BoundedTTLCache:
    """Thread-safe key/value store with a TTL and a hard size ceiling.

    Expired entries are invisible to ``get`` even before a sweep removes
    them.  ``cleanup`` first drops expired entries, then evicts the oldest
    survivors until at most ``max_size`` remain.  Every read and mutation
    goes through the same lock, whether it comes from a request handler or
    the periodic sweep.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._max_size = max_size
        self._ttl = ttl
        self._clock = clock
        self._data: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, key: str, default: Any = None) -> Any:
        """Return a copy of the value stored under *key*, or *default*.

        Pass a sentinel as *default* to tell a miss from a stored ``None``.
        """
        with self._lock:
            entry = self._data.get(key)
            if entry is None or self._clock() - entry.stored_at >= self._ttl:
                metrics.inc_cache_miss()
                return default
            metrics.inc_cache_hit()
            return copy.deepcopy(entry.value)

    def put(self, key: str, value: Any) -> None:
        """Store *value* under *key* (replacing any previous entry), then sweep."""
        with self._lock:
            self._data[key] = CacheEntry(
                key=key, value=copy.deepcopy(value), stored_at=self._clock()
            )
            self._cleanup_unlocked()

    def cleanup(self) -> int:
        """Run the two-phase sweep. Returns the number of entries removed."""
        with self._lock:
            return self._cleanup_unlocked()

    def _cleanup_unlocked(self) -> int:
        now = self._clock()
        expired = [
            k for k, e in self._data.items() if now - e.stored_at >= self._ttl
        ]
        for k in expired:
            del self._data[k]

        evicted = 0
        overflow = len(self._data) - self._max_size
        if overflow > 0:
            oldest = sorted(self._data.values(), key=lambda e: e.stored_at)
            for entry in oldest[:overflow]:
                del self._data[entry.key]
            evicted = overflow

        removed = len(expired) + evicted
        if removed:
            metrics.inc_cache_evictions(removed)
            logger.debug(
                "Cache sweep removed %d expired, %d overflow (size=%d)",
                len(expired),
                evicted,
                len(self._data),
            )
        return removed

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._data)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)


def make_cache_key(
    layers: str, x: int, y: int, bbox: str, width: int, height: int
) -> str:
    """Build the fingerprint of a GetFeatureInfo request.

    Field order is fixed; any differing field yields a different key.
    """
    return "|".join((layers, str(x), str(y), bbox, str(width), str(height)))


async def run_periodic_cleanup(cache: BoundedTTLCache, interval: float) -> None:
    """Sweep *cache* every *interval* seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        removed = cache.cleanup()
        if removed:
            logger.info("Periodic cache cleanup removed %d entries", removed)
