"""
Per-key mutual exclusion.

Operations on the same asset id run one at a time; operations on different
assets never wait for each other.
"""

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator


class KeyedLock:
    """
    Map of re-entrant locks created on demand and dropped when unused.

    Usage:
        locks = KeyedLock()
        with locks.hold('tool-001'):
            ...
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: dict[Hashable, list] = {}  # key -> [lock, users]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._entries.setdefault(key, [threading.RLock(), 0])
            entry[1] += 1
        lock = entry[0]
        try:
            with lock:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
