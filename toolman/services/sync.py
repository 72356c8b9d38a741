"""
Offline sync queue — durable FIFO of mutations pending against the store.

Usage:
    queue = OfflineSyncQueue(store, notifier, storage_path='var/queue.json')
    queue.load()
    queue.submit('update', 'assets', {'id': 'tool-001', 'status': 'available',
                                      'current_holder_id': None})
    report = queue.drain()

Payloads always carry the full target values (plus ``id``), never deltas, so
replaying an operation that was partially applied before a crash is harmless:
- create: inserts, or overwrites the row if it already exists
- update: sets the given fields on the row with ``payload['id']``
- delete: removes the row; a missing row counts as success

Persisted record (ordered JSON list):
    {"id", "kind", "target", "payload", "enqueuedAt", "attempts"}
"""

from __future__ import annotations

import logging
import os
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from toolman.adapters.notifications import notify_safely
from toolman.exceptions import PersistenceError, ToolmanError
from toolman.models.enums import OperationKind
from toolman.protocols.notifications import NotificationSink
from toolman.protocols.store import PersistenceStore
from toolman.signals import connectivity_restored
from toolman.storage import read_json, write_json

logger = logging.getLogger('toolman')


@dataclass
class QueuedOperation:
    """One pending mutation."""

    id: str
    kind: OperationKind
    target: str
    payload: dict[str, Any]
    enqueued_at: datetime
    attempts: int = 0

    def to_record(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'kind': str(self.kind),
            'target': self.target,
            'payload': self.payload,
            'enqueuedAt': self.enqueued_at.isoformat(),
            'attempts': self.attempts,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> QueuedOperation:
        enqueued_at = parse_datetime(record['enqueuedAt'])
        if enqueued_at is None:
            raise ValueError(f"Invalid enqueuedAt: {record['enqueuedAt']!r}")
        return cls(
            id=record['id'],
            kind=OperationKind(record['kind']),
            target=record['target'],
            payload=dict(record['payload']),
            enqueued_at=enqueued_at,
            attempts=int(record['attempts']),
        )


@dataclass
class DrainReport:
    """Outcome of one drain pass."""

    applied: list[QueuedOperation] = field(default_factory=list)
    failed: list[QueuedOperation] = field(default_factory=list)
    dropped: list[QueuedOperation] = field(default_factory=list)
    remaining: int = 0
    skipped: bool = False  # another drain was already running

    @property
    def success(self) -> bool:
        return not self.failed and not self.dropped and not self.skipped


class OfflineSyncQueue:
    """
    Ordered log of mutations waiting for the store.

    Operations apply strictly in submission order: a failing operation stops
    the drain pass (the ones behind it wait for the next pass) until it
    succeeds or exceeds max_retries. Dropped operations are reported through
    the notification sink as ``sync.retry_exhausted`` and in the DrainReport.
    """

    def __init__(self, store: PersistenceStore, notifier: NotificationSink,
                 storage_path=None, max_retries: int = 3,
                 clock: Callable[[], datetime] = timezone.now):
        self.store = store
        self.notifier = notifier
        self.storage_path = storage_path
        self.max_retries = max_retries
        self._clock = clock
        self._operations: deque[QueuedOperation] = deque()
        self._lock = threading.RLock()
        self._drain_lock = threading.Lock()
        self._dispatch_uid = f"toolman.sync.{uuid.uuid4().hex}"

    # ══════════════════════════════════════════════════════════════
    # SUBMISSION
    # ══════════════════════════════════════════════════════════════

    def enqueue(self, kind: str, target: str, payload: dict[str, Any]) -> QueuedOperation:
        """
        Append an operation and persist the queue.

        Raises:
            ToolmanError('INVALID_OPERATION'): Unknown kind, or update/delete
                without payload['id']
        """
        kind = self._validate(kind, target, payload)
        op = QueuedOperation(
            id=uuid.uuid4().hex,
            kind=kind,
            target=target,
            payload=dict(payload),
            enqueued_at=self._clock(),
        )
        with self._lock:
            self._operations.append(op)
            self._persist()
        logger.info(
            "toolman.sync.enqueued",
            extra={"op_id": op.id, "kind": str(kind), "target": target, "pending": len(self)},
        )
        return op

    def submit(self, kind: str, target: str, payload: dict[str, Any]) -> QueuedOperation | None:
        """
        Apply now if possible, otherwise enqueue.

        Operations are enqueued without trying the store while older ones
        are still pending, to keep submission order.

        Returns:
            The queued operation, or None if it was applied directly

        Raises:
            ToolmanError('INVALID_OPERATION'): Same checks as enqueue()
            PersistenceError: The store rejected the operation (not retryable)
        """
        kind = self._validate(kind, target, payload)
        with self._lock:
            if self._operations:
                return self.enqueue(kind, target, payload)
            op = QueuedOperation(
                id=uuid.uuid4().hex,
                kind=kind,
                target=target,
                payload=dict(payload),
                enqueued_at=self._clock(),
            )
            try:
                self._apply(op)
            except PersistenceError as e:
                if not e.retryable:
                    raise
                return self.enqueue(kind, target, payload)
            return None

    @staticmethod
    def _validate(kind: str, target: str, payload: dict[str, Any]) -> OperationKind:
        try:
            kind = OperationKind(kind)
        except ValueError:
            raise ToolmanError('INVALID_OPERATION', f"Unknown operation kind {kind!r}", kind=kind) from None
        if kind != OperationKind.CREATE and payload.get('id') is None:
            raise ToolmanError('INVALID_OPERATION', f"{kind} on {target} requires payload['id']", target=target)
        return kind

    # ══════════════════════════════════════════════════════════════
    # REPLAY
    # ══════════════════════════════════════════════════════════════

    def drain(self) -> DrainReport:
        """
        Replay pending operations in FIFO order.

        Returns:
            DrainReport (skipped=True if a drain is already running)
        """
        if not self._drain_lock.acquire(blocking=False):
            logger.info("toolman.sync.drain_skipped")
            return DrainReport(remaining=len(self), skipped=True)

        report = DrainReport()
        try:
            while True:
                with self._lock:
                    if not self._operations:
                        break
                    op = self._operations[0]
                try:
                    self._apply(op)
                except Exception as exc:
                    if isinstance(exc, ToolmanError):
                        e = exc
                    else:
                        logger.exception("toolman.sync.apply_error", extra={"op_id": op.id})
                        e = PersistenceError(str(exc), table=op.target, operation=str(op.kind))
                    with self._lock:
                        op.attempts += 1
                        if op.attempts > self.max_retries:
                            self._operations.popleft()
                            self._persist()
                            report.dropped.append(op)
                            self._report_dropped(op, e)
                            continue
                        self._persist()
                    report.failed.append(op)
                    logger.warning(
                        "toolman.sync.failed",
                        extra={"op_id": op.id, "attempts": op.attempts, "error": e.message},
                    )
                    break
                with self._lock:
                    self._operations.popleft()
                    self._persist()
                report.applied.append(op)
        finally:
            self._drain_lock.release()

        report.remaining = len(self)
        logger.info(
            "toolman.sync.drained",
            extra={
                "applied": len(report.applied),
                "failed": len(report.failed),
                "dropped": len(report.dropped),
                "remaining": report.remaining,
            },
        )
        return report

    def _apply(self, op: QueuedOperation) -> None:
        payload = dict(op.payload)
        if op.kind == OperationKind.CREATE:
            record_id = payload.get('id')
            if record_id is not None and self.store.get(op.target, record_id) is not None:
                payload.pop('id')
                self.store.update(op.target, record_id, payload)
            else:
                self.store.insert(op.target, payload)
        elif op.kind == OperationKind.UPDATE:
            record_id = payload.pop('id')
            if self.store.update(op.target, record_id, payload) is None:
                raise PersistenceError(
                    f"{op.target} {record_id!r} does not exist",
                    table=op.target,
                    id=record_id,
                )
        elif op.kind == OperationKind.DELETE:
            self.store.delete(op.target, payload['id'])
        else:
            raise ToolmanError('INVALID_OPERATION', f"Unknown operation kind {op.kind!r}")

    def _report_dropped(self, op: QueuedOperation, error: ToolmanError) -> None:
        logger.error(
            "toolman.sync.retry_exhausted",
            extra={"op_id": op.id, "kind": str(op.kind), "target": op.target, "attempts": op.attempts},
        )
        notify_safely(self.notifier, 'sync.retry_exhausted', {
            **op.to_record(),
            'code': 'RETRY_EXHAUSTED',
            'error': error.message,
        })

    # ══════════════════════════════════════════════════════════════
    # INSPECTION
    # ══════════════════════════════════════════════════════════════

    def pending(self) -> list[QueuedOperation]:
        with self._lock:
            return list(self._operations)

    def __len__(self) -> int:
        with self._lock:
            return len(self._operations)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            oldest = self._operations[0].enqueued_at if self._operations else None
            return {
                'pending': len(self._operations),
                'retrying': sum(1 for op in self._operations if op.attempts),
                'oldest': oldest,
                'max_retries': self.max_retries,
            }

    # ══════════════════════════════════════════════════════════════
    # PERSISTENCE
    # ══════════════════════════════════════════════════════════════

    def _persist(self) -> None:
        if self.storage_path:
            write_json(self.storage_path, [op.to_record() for op in self._operations])

    def load(self) -> int:
        """
        Restore pending operations from storage_path.

        A corrupt file is moved aside (``<path>.corrupt``) so it can be
        inspected, and the queue starts empty.

        Returns:
            Number of operations restored
        """
        if not self.storage_path:
            return 0
        try:
            records = read_json(self.storage_path)
            operations = [QueuedOperation.from_record(record) for record in records]
        except FileNotFoundError:
            return 0
        except (ValueError, KeyError, TypeError):
            logger.exception("toolman.sync.corrupt", extra={"path": str(self.storage_path)})
            os.replace(self.storage_path, f"{self.storage_path}.corrupt")
            operations = []
        with self._lock:
            self._operations = deque(operations)
        return len(operations)

    # ══════════════════════════════════════════════════════════════
    # CONNECTIVITY
    # ══════════════════════════════════════════════════════════════

    def connect(self) -> None:
        """Drain whenever connectivity_restored is sent."""
        connectivity_restored.connect(self._on_connectivity_restored, weak=False,
                                      dispatch_uid=self._dispatch_uid)

    def disconnect(self) -> None:
        connectivity_restored.disconnect(dispatch_uid=self._dispatch_uid)

    def _on_connectivity_restored(self, sender, **kwargs) -> None:
        logger.info("toolman.sync.connectivity_restored")
        self.drain()
