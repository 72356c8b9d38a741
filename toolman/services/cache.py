"""
TTL cache — memoizes derived reads (status summaries, statistics).

Usage:
    cache = TTLCache(max_entries=500)
    cache.set('assets:summary', summary, ttl_seconds=60)
    cache.get('assets:summary')  # None once 60s have passed

Expiry is checked on read. Writes occasionally (sweep_probability) trigger a
sweep that drops expired entries and evicts the oldest-written ones while the
cache is over max_entries.

Persisted blob (one JSON document):
    {"<key>": {"value": ..., "writtenAt": <epoch seconds>, "ttlSeconds": <n>}}
"""

from __future__ import annotations

import logging
import random
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from toolman.storage import read_json, write_json

logger = logging.getLogger('toolman')


@dataclass
class CacheEntry:
    value: Any
    written_at: float
    ttl_seconds: float

    def is_expired(self, now: float) -> bool:
        return now - self.written_at >= self.ttl_seconds

    def to_record(self) -> dict[str, Any]:
        return {'value': self.value, 'writtenAt': self.written_at, 'ttlSeconds': self.ttl_seconds}

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> CacheEntry:
        return cls(
            value=record['value'],
            written_at=float(record['writtenAt']),
            ttl_seconds=float(record['ttlSeconds']),
        )


class TTLCache:
    """Thread-safe in-memory cache with per-entry time-to-live."""

    def __init__(self, max_entries: int = 500, sweep_probability: float = 0.1,
                 default_ttl: float = 300,
                 clock: Callable[[], float] = time.time,
                 rng: Callable[[], float] = random.random):
        self.max_entries = max_entries
        self.sweep_probability = sweep_probability
        self.default_ttl = default_ttl
        self._clock = clock
        self._rng = rng
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._metrics = {'hits': 0, 'misses': 0, 'writes': 0, 'evictions': 0}

    # ══════════════════════════════════════════════════════════════
    # READ / WRITE
    # ══════════════════════════════════════════════════════════════

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or default on miss or expiry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._metrics['misses'] += 1
                return default
            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._metrics['misses'] += 1
                return default
            self._metrics['hits'] += 1
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        with self._lock:
            # Re-insert so dict order follows write order
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(value, self._clock(), ttl)
            self._metrics['writes'] += 1
            if self._rng() < self.sweep_probability:
                self.sweep()

    def get_or_set(self, key: str, compute: Callable[[], Any], ttl_seconds: float | None = None) -> Any:
        """Return the cached value, computing and storing it on miss."""
        missing = object()
        value = self.get(key, missing)
        if value is missing:
            value = compute()
            self.set(key, value, ttl_seconds)
        return value

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_pattern(self, pattern: str) -> int:
        """Drop every key matching the regular expression; returns the count."""
        regex = re.compile(pattern)
        with self._lock:
            keys = [key for key in self._entries if regex.search(key)]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.debug("toolman.cache.invalidated", extra={"pattern": pattern, "count": len(keys)})
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._metrics = dict.fromkeys(self._metrics, 0)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    # ══════════════════════════════════════════════════════════════
    # MAINTENANCE
    # ══════════════════════════════════════════════════════════════

    def sweep(self) -> int:
        """
        Drop expired entries, then evict oldest-written until within max_entries.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]

            overflow = len(self._entries) - self.max_entries
            evicted = []
            if overflow > 0:
                oldest = sorted(self._entries.items(), key=lambda item: item[1].written_at)
                evicted = [key for key, _ in oldest[:overflow]]
                for key in evicted:
                    del self._entries[key]
                self._metrics['evictions'] += len(evicted)

        if expired or evicted:
            logger.debug(
                "toolman.cache.swept",
                extra={"expired": len(expired), "evicted": len(evicted)},
            )
        return len(expired) + len(evicted)

    def metrics(self) -> dict[str, Any]:
        with self._lock:
            lookups = self._metrics['hits'] + self._metrics['misses']
            hit_rate = (self._metrics['hits'] / lookups * 100) if lookups else 0.0
            return {
                **self._metrics,
                'hit_rate': round(hit_rate, 2),
                'size': len(self._entries),
                'max_size': self.max_entries,
            }

    # ══════════════════════════════════════════════════════════════
    # PERSISTENCE
    # ══════════════════════════════════════════════════════════════

    def dumps(self) -> dict[str, dict[str, Any]]:
        """Snapshot as the persisted blob shape."""
        with self._lock:
            return {key: entry.to_record() for key, entry in self._entries.items()}

    def loads(self, blob: Any) -> int:
        """
        Replace contents with a persisted blob; entries already expired are skipped.

        Returns:
            Number of entries loaded
        """
        if not isinstance(blob, dict):
            raise ValueError("Cache blob must be a JSON object")
        entries = {key: CacheEntry.from_record(record) for key, record in blob.items()}
        now = self._clock()
        with self._lock:
            self._entries = {
                key: entry
                for key, entry in sorted(entries.items(), key=lambda item: item[1].written_at)
                if not entry.is_expired(now)
            }
            return len(self._entries)

    def save(self, path) -> None:
        write_json(path, self.dumps())

    def load(self, path) -> int:
        """
        Reload from disk. A missing or corrupt blob leaves the cache empty.

        Returns:
            Number of entries loaded
        """
        try:
            return self.loads(read_json(path))
        except FileNotFoundError:
            logger.info("toolman.cache.cold_start", extra={"path": str(path)})
        except (ValueError, KeyError, TypeError):
            logger.warning("toolman.cache.corrupt", extra={"path": str(path)}, exc_info=True)
        with self._lock:
            self._entries = {}
        return 0
