# Overview: Explicit read-through cache for fast-path stock and balance reads.

"""
Read cache owned by the read layer.

The orchestrator and reconciliation call invalidate() for every entity they
write, after the commit. A value served from here is the denormalized
fast-path figure, never the journal-derived one.

- every key carries a generation; invalidate() bumps it, and a load that
  started under an older generation is returned to its caller but not stored
- another process (a CLI drain or reconcile) cannot invalidate this cache;
  its writes stay hidden until the entry is invalidated here or, when
  ttl_seconds is set, until the entry expires
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Hashable


class ReadCache:
    def __init__(self, ttl_seconds: float | None = None, clock: Callable[[], float] = time.monotonic):
        self._entries: dict[tuple[str, Hashable], tuple[Any, float | None]] = {}
        self._generations: dict[tuple[str, Hashable], int] = {}
        self._epoch = 0
        self._lock = threading.Lock()
        self._clock = clock
        self.ttl_seconds = ttl_seconds
        self.hits = 0
        self.misses = 0

    def configure(self, *, ttl_seconds: float | None) -> None:
        with self._lock:
            self.ttl_seconds = ttl_seconds if ttl_seconds and ttl_seconds > 0 else None
            self._entries.clear()

    def get(self, kind: str, key: Hashable, loader: Callable[[], Any]) -> Any:
        """Return the cached value, loading and storing it on a miss."""
        slot = (kind, key)
        with self._lock:
            entry = self._entries.get(slot)
            if entry is not None:
                value, expires_at = entry
                if expires_at is None or self._clock() < expires_at:
                    self.hits += 1
                    return value
                del self._entries[slot]
            self.misses += 1
            stamp = (self._epoch, self._generations.get(slot, 0))

        value = loader()
        if value is None:
            return value

        with self._lock:
            # invalidated while loading: the value may predate that write
            if stamp == (self._epoch, self._generations.get(slot, 0)):
                expires_at = None if self.ttl_seconds is None else self._clock() + self.ttl_seconds
                self._entries[slot] = (value, expires_at)
        return value

    def _drop(self, slot: tuple[str, Hashable]) -> None:
        self._entries.pop(slot, None)
        self._generations[slot] = self._generations.get(slot, 0) + 1

    def invalidate(self, kind: str, *keys: Hashable) -> None:
        with self._lock:
            for key in keys:
                self._drop((kind, key))

    def invalidate_many(self, touched: dict[str, set]) -> None:
        """Drop every (kind, key) pair in a {kind: {keys}} map."""
        with self._lock:
            for kind, keys in touched.items():
                for key in keys:
                    self._drop((kind, key))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generations.clear()
            self._epoch += 1
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)
