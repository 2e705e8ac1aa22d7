"""
Shared read-through cache for learned mappings.

Every LearningStore working on the same database file shares one
MappingCache, so a write made through one component (the review queue)
invalidates what another component (the classifier) would read. Entries,
including remembered misses, are bounded by an LRU limit.

A fill never overwrites a newer invalidation: loads record the cache
generation before reading the store and are dropped if any invalidation
happened in between.
"""

import threading
from collections import OrderedDict
from collections.abc import Callable
from pathlib import Path
from typing import Any

DEFAULT_MAX_ENTRIES = 4096

_MISSING = object()

_shared: dict[str, "MappingCache"] = {}
_shared_lock = threading.Lock()


class MappingCache:
    """Bounded LRU cache keyed by ``kind:owner:key`` strings."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.max_entries = max_entries
        self._entries: OrderedDict[str, Any] = OrderedDict()
        self._generation = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_or_load(self, cache_key: str, loader: Callable[[], Any]) -> Any:
        """Return the cached value for cache_key, loading it on a miss."""
        with self._lock:
            value = self._entries.get(cache_key, _MISSING)
            if value is not _MISSING:
                self._entries.move_to_end(cache_key)
                return value
            generation = self._generation

        value = loader()

        with self._lock:
            if generation == self._generation:
                self._entries[cache_key] = value
                self._entries.move_to_end(cache_key)
                while len(self._entries) > self.max_entries:
                    self._entries.popitem(last=False)
        return value

    def invalidate(self, cache_key: str) -> None:
        with self._lock:
            self._generation += 1
            self._entries.pop(cache_key, None)

    def invalidate_where(self, predicate: Callable[[str], bool]) -> None:
        """Drop every entry whose key satisfies predicate."""
        with self._lock:
            self._generation += 1
            for cache_key in [k for k in self._entries if predicate(k)]:
                del self._entries[cache_key]

    def clear(self) -> None:
        with self._lock:
            self._generation += 1
            self._entries.clear()


def shared_cache(db_path: Path | str, max_entries: int = DEFAULT_MAX_ENTRIES) -> MappingCache:
    """
    The process-wide cache for one database file.

    The first caller for a path decides the size limit.
    """
    path = str(Path(db_path).resolve())
    with _shared_lock:
        cache = _shared.get(path)
        if cache is None:
            cache = _shared[path] = MappingCache(max_entries)
        return cache
