"""
Toolman Adapters.

Implementations of protocols for external systems.
"""

from toolman.adapters.django_store import DjangoStore
from toolman.adapters.loading import load_notification_sink, load_store
from toolman.adapters.memory import MemoryNotificationSink, MemoryStore
from toolman.adapters.notifications import LoggingNotificationSink, SignalNotificationSink
from toolman.adapters.scheduler import ThreadingScheduler, VirtualScheduler

__all__ = [
    "DjangoStore",
    "MemoryStore",
    "MemoryNotificationSink",
    "LoggingNotificationSink",
    "SignalNotificationSink",
    "ThreadingScheduler",
    "VirtualScheduler",
    "load_store",
    "load_notification_sink",
]
