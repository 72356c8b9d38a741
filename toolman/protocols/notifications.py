"""
Notification Protocol — Interface for reminders and alerts.

Delivery mechanics (push, e-mail, websockets) live outside Toolman.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class NotificationSink(Protocol):
    """
    Fire-and-forget notification target.

    Kinds emitted by Toolman:
        asset.maintenance, reservation.created, reservation.approved,
        reservation.reminder, reservation.extended, reservation.cancelled,
        reservation.expired, sync.retry_exhausted

    Toolman logs delivery failures and never retries them.
    """

    def notify(self, kind: str, payload: dict[str, Any]) -> None:
        ...
