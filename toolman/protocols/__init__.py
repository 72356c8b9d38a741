"""
Toolman Protocols.

Defines interfaces for external system integration.
"""

from toolman.protocols.notifications import NotificationSink
from toolman.protocols.scheduler import Scheduler
from toolman.protocols.store import PersistenceStore, Record

__all__ = [
    "NotificationSink",
    "PersistenceStore",
    "Record",
    "Scheduler",
]
