"""
Backend loading — builds the configured store and notification sink.

Settings:
    TOOLMAN = {
        "STORE": "toolman.adapters.django_store.DjangoStore",
        "NOTIFICATION_SINK": "toolman.adapters.notifications.SignalNotificationSink",
    }

Each call returns a fresh instance; the Toolman container builds them once
at startup and hands them to the services.
"""

from __future__ import annotations

import logging

from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from toolman.conf import toolman_settings
from toolman.protocols.notifications import NotificationSink
from toolman.protocols.store import PersistenceStore

logger = logging.getLogger(__name__)


def _instantiate(setting: str, path: str):
    if not path:
        raise ImproperlyConfigured(f"TOOLMAN['{setting}'] must be configured.")
    try:
        backend_class = import_string(path)
    except ImportError as e:
        raise ImproperlyConfigured(
            f"Failed to import TOOLMAN['{setting}'] backend '{path}': {e}"
        ) from e
    logger.debug("Loaded %s backend: %s", setting, path)
    return backend_class()


def load_store() -> PersistenceStore:
    """
    Return a new instance of the configured persistence store.

    Raises:
        ImproperlyConfigured: If STORE is empty, cannot be imported or does
            not implement PersistenceStore
    """
    store = _instantiate('STORE', toolman_settings.STORE)
    if not isinstance(store, PersistenceStore):
        raise ImproperlyConfigured(
            f"TOOLMAN['STORE'] backend {type(store).__name__} does not implement PersistenceStore"
        )
    return store


def load_notification_sink() -> NotificationSink:
    """Return a new instance of the configured notification sink."""
    sink = _instantiate('NOTIFICATION_SINK', toolman_settings.NOTIFICATION_SINK)
    if not isinstance(sink, NotificationSink):
        raise ImproperlyConfigured(
            f"TOOLMAN['NOTIFICATION_SINK'] backend {type(sink).__name__} does not implement NotificationSink"
        )
    return sink
