"""
Persistence Store Protocol — Interface for the hosted database.

Toolman defines this protocol; the ORM adapter (or a remote client) implements it.
Records are plain dicts keyed by field name (foreign keys as ``<name>_id``).
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

Record = dict[str, Any]


@runtime_checkable
class PersistenceStore(Protocol):
    """
    Protocol for record persistence.

    Every method may raise PersistenceError. ``retryable=True`` on the error
    signals that the store was unreachable. Implementations guarantee
    read-your-writes for the current connection and nothing stronger.

    Logical tables used by Toolman: ``assets``, ``movements``, ``reservations``.
    """

    def get(self, table: str, id: Any) -> Record | None:
        """
        Fetch one record.

        Returns:
            The record, or None if it does not exist
        """
        ...

    def query(self, table: str, **filters: Any) -> list[Record]:
        """
        Fetch records matching all equality filters.

        Args:
            table: Logical table name
            **filters: field=value pairs (no filters = whole table)
        """
        ...

    def insert(self, table: str, record: Record) -> Record:
        """
        Insert a record.

        Returns:
            The stored record (with generated id, if any)
        """
        ...

    def update(self, table: str, id: Any, patch: Record,
               expected: Record | None = None) -> Record | None:
        """
        Apply patch to one record.

        Args:
            expected: field=value pairs the stored record must still hold
                for the write to happen (compare-and-swap)

        Returns:
            The updated record, or None if the record does not exist or
            no longer matches expected
        """
        ...

    def delete(self, table: str, id: Any) -> bool:
        """
        Delete one record.

        Returns:
            True if a record was deleted, False if it did not exist
        """
        ...
