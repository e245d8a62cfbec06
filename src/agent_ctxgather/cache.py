"""
Bounded in-memory cache for gather results.

- TTL expiry, checked lazily on read (plus an optional sweep())
- Memory ceiling enforced by FIFO eviction before each insert
- Hit/miss statistics since creation
"""

import json
import sys
import time
from collections import OrderedDict
from typing import Callable, List, Optional

from .types import CacheEntry, CacheStats, GatherResult


BYTES_PER_MB = 1024 * 1024

# Invalidation reasons passed to on_invalidate() callbacks
REASON_MANUAL = "manual"
REASON_EXPIRED = "ttl-expired"
REASON_EVICTED = "evicted"
REASON_CLEARED = "cleared"


class BoundedCache:
    """
    Stores complete gather results keyed by cache key.

    Eviction is strict FIFO by insertion time, not LRU: reads never
    reorder entries. If a single entry is larger than the ceiling it is
    still stored once everything else has been evicted.
    """

    def __init__(
        self,
        ttl_ms: int = 30000,
        max_size_mb: float = 10.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize cache.

        Args:
            ttl_ms: Default time-to-live for entries
            max_size_mb: Memory ceiling across all entries
            clock: Time source in epoch seconds (default: time.time)
        """
        if ttl_ms < 0:
            raise ValueError(f"ttl_ms must be >= 0, got {ttl_ms}")
        if max_size_mb <= 0:
            raise ValueError(f"max_size_mb must be > 0, got {max_size_mb}")

        self.ttl_ms = ttl_ms
        self.max_size_bytes = int(max_size_mb * BYTES_PER_MB)
        self._clock = clock or time.time

        # Insertion order == inserted_at order
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._total_bytes = 0
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._callbacks: List[Callable[[str, Optional[str]], None]] = []
        self._destroyed = False

    def _check_alive(self):
        if self._destroyed:
            raise RuntimeError("Cache has been destroyed")

    @staticmethod
    def estimate_size(result: GatherResult) -> int:
        """UTF-8 size of the serialized fragments in a result."""
        data = [
            {**sf.fragment.to_dict(), "score": sf.score}
            for sf in result.contexts
        ]
        return len(json.dumps(data, sort_keys=True, default=str).encode("utf-8"))

    def get(self, key: str) -> Optional[CacheEntry]:
        """
        Look up a live entry.

        Expired entries are removed and counted as misses.
        """
        self._check_alive()

        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        if entry.is_expired(self._clock()):
            self._remove(key)
            self._notify(REASON_EXPIRED, key)
            self._misses += 1
            return None

        entry.hits += 1
        self._hits += 1
        return entry

    def has(self, key: str) -> bool:
        """Whether a live entry exists. Does not touch hit/miss counters."""
        self._check_alive()

        entry = self._entries.get(key)
        if entry is None:
            return False
        if entry.is_expired(self._clock()):
            self._remove(key)
            self._notify(REASON_EXPIRED, key)
            return False
        return True

    def set(self, key: str, result: GatherResult, ttl_ms: Optional[int] = None) -> CacheEntry:
        """
        Insert a result, evicting oldest entries first if the ceiling
        would be exceeded.

        Args:
            key: Cache key
            result: Gather result to store
            ttl_ms: Override default TTL for this entry

        Returns:
            The stored CacheEntry
        """
        self._check_alive()

        ttl = self.ttl_ms if ttl_ms is None else ttl_ms
        if ttl < 0:
            raise ValueError(f"ttl_ms must be >= 0, got {ttl}")

        # Replacing a key resets its insertion time
        if key in self._entries:
            self._remove(key)

        size = self.estimate_size(result)
        while self._entries and self._total_bytes + size > self.max_size_bytes:
            old_key, _ = next(iter(self._entries.items()))
            self._remove(old_key)
            self._evictions += 1
            self._notify(REASON_EVICTED, old_key)

        entry = CacheEntry(
            key=key,
            result=result,
            inserted_at=self._clock(),
            ttl_ms=ttl,
            size_bytes=size,
        )
        self._entries[key] = entry
        self._total_bytes += size
        return entry

    def invalidate(self, key: str) -> bool:
        """Remove one entry. Returns True if it existed."""
        self._check_alive()

        if key not in self._entries:
            return False
        self._remove(key)
        self._notify(REASON_MANUAL, key)
        return True

    def invalidate_matching(self, fragment: str) -> int:
        """
        Remove every entry whose key contains `fragment`.

        Lets callers drop e.g. all "form" keys after an input event.

        Returns:
            Number of entries removed
        """
        self._check_alive()

        keys = [k for k in self._entries if fragment in k]
        for key in keys:
            self._remove(key)
            self._notify(REASON_MANUAL, key)
        return len(keys)

    def clear(self):
        """Remove all entries. Statistics are kept."""
        self._check_alive()

        self._entries.clear()
        self._total_bytes = 0
        self._notify(REASON_CLEARED, None)

    def sweep(self) -> int:
        """
        Remove all expired entries.

        Returns:
            Number of entries removed
        """
        self._check_alive()

        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            self._remove(key)
            self._notify(REASON_EXPIRED, key)
        return len(expired)

    def stats(self) -> CacheStats:
        """Current cache statistics."""
        lookups = self._hits + self._misses
        return CacheStats(
            size=len(self._entries),
            memory_usage_mb=self._total_bytes / BYTES_PER_MB,
            hit_rate=self._hits / lookups if lookups else 0.0,
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
        )

    def on_invalidate(self, callback: Callable[[str, Optional[str]], None]) -> Callable[[], None]:
        """
        Subscribe to invalidations.

        Callback receives (reason, key); key is None for clear().

        Returns:
            Unsubscribe function
        """
        self._callbacks.append(callback)

        def unsubscribe():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def destroy(self):
        """Drop all entries and callbacks. Further use raises."""
        if self._destroyed:
            return
        self._destroyed = True
        self._entries.clear()
        self._total_bytes = 0
        self._callbacks.clear()

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def _remove(self, key: str):
        entry = self._entries.pop(key)
        self._total_bytes -= entry.size_bytes

    def _notify(self, reason: str, key: Optional[str]):
        for callback in list(self._callbacks):
            try:
                callback(reason, key)
            except Exception as e:
                print(f"Warning: invalidation callback failed: {e}", file=sys.stderr)
