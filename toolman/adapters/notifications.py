"""
Notification sinks.

- LoggingNotificationSink: writes notifications to the ``toolman`` logger
- SignalNotificationSink: dispatches the ``notification_sent`` Django signal
  so push/e-mail integrations can subscribe without Toolman knowing them
"""

from __future__ import annotations

import logging
from typing import Any

from toolman.signals import notification_sent

logger = logging.getLogger('toolman')


def notify_safely(sink, kind: str, payload: dict[str, Any]) -> bool:
    """
    Deliver a notification without letting delivery errors reach the caller.

    Returns:
        False if the sink raised (the error is logged, never retried)
    """
    try:
        sink.notify(kind, payload)
    except Exception:
        logger.exception("toolman.notification.failed", extra={"kind": kind})
        return False
    return True


class LoggingNotificationSink:
    """Log every notification at INFO level."""

    def notify(self, kind: str, payload: dict[str, Any]) -> None:
        logger.info(
            "toolman.notification",
            extra={"kind": kind, "payload": payload},
        )


class SignalNotificationSink:
    """
    Send notifications through Django's signal dispatcher.

    Receivers run synchronously; a failing receiver is logged and never
    retried, and does not prevent the other receivers from running.
    """

    def notify(self, kind: str, payload: dict[str, Any]) -> None:
        responses = notification_sent.send_robust(sender=type(self), kind=kind, payload=payload)
        for receiver, response in responses:
            if isinstance(response, Exception):
                logger.error(
                    "toolman.notification.failed",
                    extra={"kind": kind, "receiver": repr(receiver)},
                    exc_info=response,
                )
