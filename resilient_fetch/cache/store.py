"""In-memory response cache with least-recently-used eviction.

Entries are kept after their TTL elapses so the orchestration layer can
serve them as a degraded fallback.  ``get()`` therefore performs no
freshness filtering; callers decide with ``CacheEntry.is_fresh()``.
The store is bounded by ``max_entries``; overflow evicts the
least-recently-used key.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


def make_cache_key(method: str, url: str, body: Any = None) -> str:
    """Derive a deterministic request signature.

    The body is folded in as a SHA-256 digest of its canonical JSON form so
    logically equal payloads map to the same key regardless of key order.
    """
    key = f"{method.upper()} {url}"
    if body is not None:
        canonical = json.dumps(body, sort_keys=True, default=str)
        key += f" {hashlib.sha256(canonical.encode()).hexdigest()}"
    return key


@dataclass
class CacheEntry:
    """A cached response payload.

    Attributes:
        key:       Request signature from ``make_cache_key``.
        data:      Parsed response payload.
        stored_at: Clock reading at write time (seconds).
        ttl:       Freshness window in seconds.
    """

    key: str
    data: Any
    stored_at: float
    ttl: float

    def age(self, now: float) -> float:
        return now - self.stored_at

    def is_fresh(self, now: float) -> bool:
        return self.age(now) < self.ttl

    def is_stale(self, now: float) -> bool:
        return not self.is_fresh(now)


class ResponseCache:
    """Bounded keyed store of ``CacheEntry`` objects.

    Args:
        max_entries: Capacity before least-recently-used eviction kicks in.
        clock:       Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> CacheEntry | None:
        """Return the entry for *key*, fresh or stale, or ``None``."""
        entry = self._entries.get(key)
        if entry is not None:
            self._entries.move_to_end(key)
        return entry

    def set(self, key: str, data: Any, ttl: float) -> CacheEntry:
        """Write (or overwrite) *key* and evict beyond capacity."""
        entry = CacheEntry(key=key, data=data, stored_at=self._clock(), ttl=ttl)
        self._entries[key] = entry
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self.evictions += 1
            logger.debug("Evicted least-recently-used cache entry %s", evicted)
        return entry

    def is_fresh(self, entry: CacheEntry) -> bool:
        return entry.is_fresh(self._clock())

    def sweep_stale(self) -> int:
        """Drop every stale entry; return how many were removed."""
        now = self._clock()
        stale = [key for key, entry in self._entries.items() if entry.is_stale(now)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> list[str]:
        """Keys in eviction order, least-recently-used first."""
        return list(self._entries)
