"""
Toolman configuration.

Usage in settings.py:
    TOOLMAN = {
        "STORE": "toolman.adapters.django_store.DjangoStore",
        "NOTIFICATION_SINK": "toolman.adapters.notifications.SignalNotificationSink",
        "QUEUE_STORAGE_PATH": BASE_DIR / "var" / "offline-queue.json",
        "CACHE_STORAGE_PATH": BASE_DIR / "var" / "cache.json",
    }
"""

from dataclasses import dataclass
from typing import Any

from django.conf import settings


@dataclass
class ToolmanSettings:
    """Toolman configuration settings."""

    # Persistence store backend (dotted path)
    STORE: str = "toolman.adapters.django_store.DjangoStore"

    # Notification sink backend (dotted path)
    NOTIFICATION_SINK: str = "toolman.adapters.notifications.SignalNotificationSink"

    # Offline queue
    QUEUE_MAX_RETRIES: int = 3
    QUEUE_STORAGE_PATH: str | None = None  # None = memory only

    # TTL cache
    CACHE_STORAGE_PATH: str | None = None  # None = memory only
    CACHE_MAX_ENTRIES: int = 500
    CACHE_SWEEP_PROBABILITY: float = 0.1
    SUMMARY_TTL_SECONDS: int = 60

    # Performance monitor / SLA
    PERFORMANCE_MAX_SAMPLES: int = 1000
    PERFORMANCE_RETENTION_DAYS: int = 7
    SLA_MAX_AVG_LATENCY_MS: float = 500.0
    SLA_MIN_SUCCESS_RATE: float = 95.0

    # Reservations
    RESERVATION_REMINDER_MINUTES: int = 30
    AUTO_EXTEND_MINUTES: int = 60
    QUICK_RESERVATION_HOURS: int = 2


def get_toolman_settings() -> ToolmanSettings:
    """Load settings from Django settings."""
    user_settings: dict[str, Any] = getattr(settings, "TOOLMAN", {})
    return ToolmanSettings(**{
        k: v for k, v in user_settings.items()
        if k in ToolmanSettings.__dataclass_fields__
    })


class _LazySettings:
    """Lazy proxy that re-reads settings on every attribute access."""

    def __getattr__(self, name):
        return getattr(get_toolman_settings(), name)


toolman_settings = _LazySettings()
