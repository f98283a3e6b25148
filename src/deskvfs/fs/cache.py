"""TTLCache — process-local memo for reads, stats and listings."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .types import CacheStats
from .utils import ancestors, normalize_path

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

KIND_CONTENT = "content"
KIND_STAT = "stat"
KIND_LIST = "list"

_SEP = "|"


def cache_key(path: str, kind: str) -> str:
    """Qualify a normalized virtual path with the kind of result cached."""
    return f"{normalize_path(path)}{_SEP}{kind}"


@dataclass
class CacheEntry:
    value: Any
    timestamp: float
    ttl: float


class TTLCache:
    """Time-bounded key/value store with lazy expiry.

    Entries are valid while ``now - timestamp < ttl``; stale entries are
    evicted when looked up.  The cache is informational only — backends
    mutated outside the manager are not tracked.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is not None and self._clock() - entry.timestamp < entry.ttl:
            self._hits += 1
            return entry.value
        if entry is not None:
            del self._entries[key]
            logger.debug("Cache entry expired: %s", key)
        self._misses += 1
        return None

    def set(self, key: str, value: Any, ttl: float) -> None:
        self._entries[key] = CacheEntry(value=value, timestamp=self._clock(), ttl=ttl)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self, prefix: str | None = None) -> int:
        """Evict every key starting with *prefix*, or everything.  Returns the count."""
        if prefix is None:
            count = len(self._entries)
            self._entries.clear()
            return count
        doomed = [k for k in self._entries if k.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def invalidate_path(self, path: str) -> int:
        """Drop everything a mutation at *path* can make stale.

        That is the path's own entries, every descendant, and the listings
        of all ancestors.
        """
        path = normalize_path(path)
        evicted = self.clear(path + _SEP)
        evicted += self.clear(path.rstrip("/") + "/")
        for parent in ancestors(path):
            evicted += int(self.delete(cache_key(parent, KIND_LIST)))
        if evicted:
            logger.debug("Invalidated %d cache entries for %s", evicted, path)
        return evicted

    def stats(self) -> CacheStats:
        return CacheStats(hits=self._hits, misses=self._misses, size=len(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
