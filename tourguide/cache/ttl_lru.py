"""Bounded keyed cache with separate TTLs for positive and negative results.

Negative entries (failed or invalid lookups) expire sooner than positive
ones since failures are more likely to be transient. When the cache is full
the least recently accessed entry is evicted, regardless of insertion order.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

MISSING: Any = object()


@dataclass
class CacheEntry(Generic[T]):
    value: T
    is_positive: bool
    written_at: float
    last_accessed_at: float
    hit_count: int = 0


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class TTLCache(Generic[T]):
    def __init__(
        self,
        capacity: int = 500,
        positive_ttl: float = 1800.0,
        negative_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._positive_ttl = positive_ttl
        self._negative_ttl = negative_ttl
        self._clock = clock
        self._name = name
        self._entries: dict[Hashable, CacheEntry[T]] = {}
        self.stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not self._is_expired(entry, self._clock())

    @property
    def capacity(self) -> int:
        return self._capacity

    def _ttl(self, entry: CacheEntry[T]) -> float:
        return self._positive_ttl if entry.is_positive else self._negative_ttl

    def _is_expired(self, entry: CacheEntry[T], now: float) -> bool:
        return now - entry.written_at >= self._ttl(entry)

    def get(self, key: Hashable, default: Any = MISSING) -> T | Any:
        """Return the cached value, or ``default`` on a miss or expired entry."""
        entry = self._entries.get(key)
        now = self._clock()
        if entry is None:
            self.stats.misses += 1
            return default
        if self._is_expired(entry, now):
            del self._entries[key]
            self.stats.misses += 1
            self.stats.expirations += 1
            logger.debug("%s: expired %r", self._name, key)
            return default

        entry.hit_count += 1
        entry.last_accessed_at = now
        self.stats.hits += 1
        return entry.value

    def set(self, key: Hashable, value: T, is_positive: bool = True) -> None:
        now = self._clock()
        if key not in self._entries and len(self._entries) >= self._capacity:
            self._evict_lru()
        self._entries[key] = CacheEntry(
            value=value,
            is_positive=is_positive,
            written_at=now,
            last_accessed_at=now,
        )
        self.stats.sets += 1

    def _evict_lru(self) -> None:
        oldest_key = min(self._entries, key=lambda k: self._entries[k].last_accessed_at)
        del self._entries[oldest_key]
        self.stats.evictions += 1
        logger.debug("%s: evicted LRU entry %r", self._name, oldest_key)

    def cleanup_expired(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
        for key in expired:
            del self._entries[key]
        if expired:
            self.stats.expirations += len(expired)
            logger.debug("%s: cleaned up %d expired entries", self._name, len(expired))
        return len(expired)

    def clear(self) -> None:
        size = len(self._entries)
        self._entries.clear()
        self.stats = CacheStats()
        logger.debug("%s: cleared %d entries", self._name, size)
