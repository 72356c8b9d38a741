"""
Django Store — PersistenceStore backed by the Django ORM.

Maps Toolman's logical tables to models and returns plain dicts
(``QuerySet.values()``), so services stay unaware of the ORM.

Usage in settings.py:
    TOOLMAN = {
        "STORE": "toolman.adapters.django_store.DjangoStore",
    }

Conditional updates run as a single ``UPDATE ... WHERE pk = %s AND status = %s``,
which is what makes checkout a compare-and-swap at the database level.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from django.apps import apps
from django.core.exceptions import FieldDoesNotExist, FieldError, ValidationError
from django.db import DatabaseError, OperationalError, transaction

from toolman.exceptions import PersistenceError
from toolman.protocols.store import Record

logger = logging.getLogger('toolman')

DEFAULT_TABLES = {
    'assets': 'toolman.Asset',
    'movements': 'toolman.Movement',
    'reservations': 'toolman.Reservation',
}


class DjangoStore:
    """
    ORM implementation of the PersistenceStore protocol.

    Database errors are translated into PersistenceError; OperationalError
    (connection refused, database locked, ...) is flagged retryable. A payload
    that does not fit the model (unknown field, bad value) raises a
    non-retryable PersistenceError.
    """

    def __init__(self, using: str = 'default', tables: dict[str, str] | None = None):
        self.using = using
        self.tables = dict(tables or DEFAULT_TABLES)

    def _manager(self, table: str):
        try:
            label = self.tables[table]
        except KeyError:
            raise PersistenceError(f"Unknown table '{table}'", table=table) from None
        return apps.get_model(label).objects.using(self.using)

    @contextmanager
    def _errors(self, table: str, operation: str):
        try:
            yield
        except OperationalError as e:
            logger.warning(
                "toolman.store.unreachable",
                extra={"table": table, "operation": operation, "error": str(e)},
            )
            raise PersistenceError(str(e), retryable=True, table=table, operation=operation) from e
        except DatabaseError as e:
            raise PersistenceError(str(e), table=table, operation=operation) from e
        except (FieldError, FieldDoesNotExist, ValidationError, TypeError, ValueError) as e:
            # Payload does not fit the model.
            raise PersistenceError(str(e), table=table, operation=operation) from e

    def get(self, table: str, id: Any) -> Record | None:
        with self._errors(table, 'get'):
            return self._manager(table).filter(pk=id).values().first()

    def query(self, table: str, **filters: Any) -> list[Record]:
        with self._errors(table, 'query'):
            return list(self._manager(table).filter(**filters).values())

    def insert(self, table: str, record: Record) -> Record:
        with self._errors(table, 'insert'):
            manager = self._manager(table)
            with transaction.atomic(using=self.using):
                obj = manager.create(**record)
                return manager.filter(pk=obj.pk).values().get()

    def update(self, table: str, id: Any, patch: Record,
               expected: Record | None = None) -> Record | None:
        with self._errors(table, 'update'):
            manager = self._manager(table)
            with transaction.atomic(using=self.using):
                updated = manager.filter(pk=id, **(expected or {})).update(**patch)
                if not updated:
                    return None
                return manager.filter(pk=id).values().get()

    def delete(self, table: str, id: Any) -> bool:
        with self._errors(table, 'delete'):
            deleted, _ = self._manager(table).filter(pk=id).delete()
            return deleted > 0
