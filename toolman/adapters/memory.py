"""
In-memory adapters — Stub backends for development and testing.

- MemoryStore: PersistenceStore over dicts, with an ``online`` switch to
  simulate connectivity loss
- MemoryNotificationSink: keeps every notification in a list

Usage in settings.py:
    TOOLMAN = {
        "STORE": "toolman.adapters.memory.MemoryStore",
        "NOTIFICATION_SINK": "toolman.adapters.memory.MemoryNotificationSink",
    }

WARNING: Do NOT use in production. Nothing survives a restart.
"""

from __future__ import annotations

import copy
import itertools
import threading
from typing import Any

from toolman.exceptions import PersistenceError
from toolman.protocols.store import Record

DEFAULT_TABLES = ('assets', 'movements', 'reservations')


class MemoryStore:
    """
    Dict-backed implementation of the PersistenceStore protocol.

    Records are deep-copied in and out, so callers never share state with
    the store. Records inserted without an id get an increasing integer,
    which doubles as insertion order.
    """

    def __init__(self, tables=DEFAULT_TABLES):
        self._tables: dict[str, dict[Any, Record]] = {name: {} for name in tables}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()
        self.online = True

    def _table(self, table: str) -> dict[Any, Record]:
        if not self.online:
            raise PersistenceError("Store unreachable", retryable=True, table=table)
        try:
            return self._tables[table]
        except KeyError:
            raise PersistenceError(f"Unknown table '{table}'", table=table) from None

    def get(self, table: str, id: Any) -> Record | None:
        with self._lock:
            record = self._table(table).get(id)
            return copy.deepcopy(record)

    def query(self, table: str, **filters: Any) -> list[Record]:
        with self._lock:
            return [
                copy.deepcopy(record)
                for record in self._table(table).values()
                if all(record.get(k) == v for k, v in filters.items())
            ]

    def insert(self, table: str, record: Record) -> Record:
        with self._lock:
            rows = self._table(table)
            record = copy.deepcopy(record)
            if record.get('id') is None:
                record['id'] = next(self._ids)
            if record['id'] in rows:
                raise PersistenceError(f"Duplicate id {record['id']!r} in '{table}'", table=table)
            rows[record['id']] = record
            return copy.deepcopy(record)

    def update(self, table: str, id: Any, patch: Record,
               expected: Record | None = None) -> Record | None:
        with self._lock:
            record = self._table(table).get(id)
            if record is None:
                return None
            if any(record.get(k) != v for k, v in (expected or {}).items()):
                return None
            record.update(copy.deepcopy(patch))
            return copy.deepcopy(record)

    def delete(self, table: str, id: Any) -> bool:
        with self._lock:
            return self._table(table).pop(id, None) is not None


class MemoryNotificationSink:
    """Collects notifications as (kind, payload) tuples."""

    def __init__(self):
        self.sent: list[tuple[str, dict]] = []

    def notify(self, kind: str, payload: dict[str, Any]) -> None:
        self.sent.append((kind, payload))

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.sent]
