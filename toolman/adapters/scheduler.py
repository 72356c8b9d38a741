"""
Schedulers — implementations of the Scheduler protocol.

ThreadingScheduler runs callbacks on daemon ``threading.Timer`` threads.
VirtualScheduler keeps its own clock and only fires callbacks when
``advance()`` moves time forward; pass ``scheduler.now`` as the clock of the
services under test so both agree on the current time.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import uuid
from datetime import datetime, timedelta
from typing import Callable, Hashable

from django.utils import timezone

logger = logging.getLogger('toolman')


class ThreadingScheduler:
    """Wall-clock scheduler backed by threading.Timer."""

    def __init__(self):
        self._timers: dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    def schedule(self, delay: timedelta, callback: Callable[[], None]) -> Hashable:
        token = uuid.uuid4().hex

        def run():
            with self._lock:
                if self._timers.pop(token, None) is None:
                    return
            callback()

        timer = threading.Timer(max(delay.total_seconds(), 0), run)
        timer.daemon = True
        with self._lock:
            self._timers[token] = timer
        timer.start()
        return token

    def cancel(self, token: Hashable) -> bool:
        with self._lock:
            timer = self._timers.pop(token, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def shutdown(self) -> None:
        """Cancel every pending timer."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def pending(self) -> int:
        with self._lock:
            return len(self._timers)


class VirtualScheduler:
    """
    Deterministic scheduler with a manual clock.

    Usage:
        scheduler = VirtualScheduler(start=datetime(2026, 3, 2, 8, tzinfo=UTC))
        scheduler.schedule(timedelta(minutes=5), callback)
        scheduler.advance(timedelta(minutes=5))  # callback runs here
    """

    def __init__(self, start: datetime | None = None):
        self._now = start or timezone.now()
        self._queue: list[tuple[datetime, int]] = []
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._seq = itertools.count()

    def now(self) -> datetime:
        return self._now

    def schedule(self, delay: timedelta, callback: Callable[[], None]) -> Hashable:
        token = next(self._seq)
        heapq.heappush(self._queue, (self._now + max(delay, timedelta(0)), token))
        self._callbacks[token] = callback
        return token

    def cancel(self, token: Hashable) -> bool:
        return self._callbacks.pop(token, None) is not None

    def advance(self, delta: timedelta) -> int:
        """
        Move the clock forward, firing due callbacks in due order.

        Callbacks scheduled while advancing fire too if they fall due
        before the target time. The clock reads each callback's due time
        while it runs.

        Returns:
            Number of callbacks fired
        """
        target = self._now + delta
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, token = heapq.heappop(self._queue)
            callback = self._callbacks.pop(token, None)
            if callback is None:
                continue
            self._now = due
            callback()
            fired += 1
        self._now = target
        return fired

    def pending(self) -> int:
        return len(self._callbacks)
