from __future__ import annotations

from collections import OrderedDict
from collections.abc import Hashable
from dataclasses import dataclass
from threading import Lock
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(frozen=True)
class RecencyCacheStats:
    capacity: int
    size: int
    hits: int
    misses: int
    evictions: int


class RecencyCache(Generic[K, V]):
    """
    Fixed-capacity mapping that evicts the least-recently-used key on overflow.

    Entries are ordered oldest-touched first. Values are never replaced once a
    key is present: a repeated `put` only refreshes the key's recency. Every
    operation holds the cache lock, so one instance can be shared by several
    polling drivers.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"Recency cache capacity must be positive, got {capacity}.")
        self._capacity = capacity
        self._entries: OrderedDict[K, V] = OrderedDict()
        self._lock = Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, key: K) -> V | None:
        with self._lock:
            if key not in self._entries:
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return self._entries[key]

    def put(self, key: K, value: V) -> K | None:
        """Insert `key`, returning the evicted key when the cache overflowed."""
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
                return None

            evicted: K | None = None
            if len(self._entries) >= self._capacity:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
            self._entries[key] = value
            return evicted

    def keys(self) -> list[K]:
        with self._lock:
            return list(self._entries)

    def stats(self) -> RecencyCacheStats:
        with self._lock:
            return RecencyCacheStats(
                capacity=self._capacity,
                size=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
            )

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
