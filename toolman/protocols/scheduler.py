"""
Scheduler Protocol — cancellable delayed callbacks.

Reservation reminders and expiry checks go through this interface so they
can be rescheduled, cancelled and driven by a virtual clock in tests.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Callable, Hashable, Protocol, runtime_checkable


@runtime_checkable
class Scheduler(Protocol):
    """Run callbacks after a delay."""

    def schedule(self, delay: timedelta, callback: Callable[[], None]) -> Hashable:
        """
        Schedule callback to run once after delay.

        Returns:
            Token accepted by cancel()
        """
        ...

    def cancel(self, token: Hashable) -> bool:
        """
        Cancel a scheduled callback.

        Returns:
            True if the callback was still pending
        """
        ...
