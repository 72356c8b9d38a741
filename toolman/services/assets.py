"""
Asset state machine — checkout/checkin protocol for physical tools.

Every transition:
1. runs under the asset's KeyedLock entry (one operation per asset at a time)
2. writes the new status conditional on the status it read (compare-and-swap)
3. records a Movement; if that fails the status write is undone

Operations return a Result; see toolman.results.
"""

import logging
from datetime import datetime
from typing import Any, Callable

from django.utils import timezone

from toolman.adapters.notifications import notify_safely
from toolman.exceptions import PersistenceError, ToolmanError
from toolman.models.enums import AssetStatus, MovementAction
from toolman.protocols.notifications import NotificationSink
from toolman.protocols.store import PersistenceStore, Record
from toolman.results import Result
from toolman.services.cache import TTLCache
from toolman.services.locks import KeyedLock
from toolman.services.performance import PerformanceMonitor, tracked
from toolman.services.saga import Saga
from toolman.services.sync import OfflineSyncQueue

logger = logging.getLogger('toolman')

SUMMARY_CACHE_KEY = 'assets:summary'


class AssetStateMachine:
    """
    Enforces available → in-use → {available, maintenance}.

    Only the current holder may check an asset back in. A checkin with a
    condition note sends the asset to maintenance.
    """

    def __init__(self, store: PersistenceStore, monitor: PerformanceMonitor,
                 notifier: NotificationSink, cache: TTLCache | None = None,
                 queue: OfflineSyncQueue | None = None,
                 clock: Callable[[], datetime] = timezone.now,
                 summary_ttl: float = 60):
        self.store = store
        self.monitor = monitor
        self.notifier = notifier
        self.cache = cache
        self.queue = queue
        self.clock = clock
        self.summary_ttl = summary_ttl
        self.locks = KeyedLock()

    # ══════════════════════════════════════════════════════════════
    # TRANSITIONS
    # ══════════════════════════════════════════════════════════════

    @tracked('checkout')
    def checkout(self, asset_id: str, holder_id: str) -> Result:
        """
        Hand an available asset to holder_id.

        Fails with:
            NOT_FOUND: unknown asset
            CONFLICT: asset is not available (data['current_status'])
            PERSISTENCE_ERROR: a write failed (status change rolled back)
        """
        with self.locks.hold(asset_id):
            asset = self.get(asset_id)
            if asset['status'] != AssetStatus.AVAILABLE:
                raise ToolmanError(
                    'CONFLICT',
                    f"Asset {asset_id} cannot be checked out: it is {asset['status']}",
                    asset_id=asset_id,
                    current_status=str(asset['status']),
                )
            now = self.clock()
            self._transition(asset, {
                'status': AssetStatus.IN_USE,
                'current_holder_id': holder_id,
                'updated_at': now,
            }, action=MovementAction.CHECKOUT, actor_id=holder_id, timestamp=now)

        logger.info(
            "toolman.asset.checkout",
            extra={"asset_id": asset_id, "holder_id": holder_id},
        )
        return Result.ok(
            f"Asset {asset_id} checked out to {holder_id}",
            asset_id=asset_id,
            holder_id=holder_id,
            status=str(AssetStatus.IN_USE),
        )

    @tracked('checkin')
    def checkin(self, asset_id: str, holder_id: str, condition_note: str | None = None) -> Result:
        """
        Return an asset. A non-empty condition_note sends it to maintenance.

        Fails with:
            NOT_FOUND: unknown asset
            CONFLICT: asset is not in use
            FORBIDDEN: holder_id is not the current holder
            PERSISTENCE_ERROR: a write failed (status change rolled back)
        """
        note = condition_note or None

        with self.locks.hold(asset_id):
            asset = self.get(asset_id)
            if asset['status'] != AssetStatus.IN_USE:
                raise ToolmanError(
                    'CONFLICT',
                    f"Asset {asset_id} cannot be checked in: it is {asset['status']}",
                    asset_id=asset_id,
                    current_status=str(asset['status']),
                )
            if asset['current_holder_id'] != holder_id:
                raise ToolmanError(
                    'FORBIDDEN',
                    f"Only the current holder may return asset {asset_id}",
                    asset_id=asset_id,
                    actor_id=holder_id,
                    current_holder_id=asset['current_holder_id'],
                )
            status = AssetStatus.MAINTENANCE if note else AssetStatus.AVAILABLE
            now = self.clock()
            self._transition(asset, {
                'status': status,
                'current_holder_id': None,
                'updated_at': now,
            }, action=MovementAction.CHECKIN, actor_id=holder_id, timestamp=now, note=note)

        logger.info(
            "toolman.asset.checkin",
            extra={"asset_id": asset_id, "holder_id": holder_id, "status": str(status)},
        )
        if status == AssetStatus.MAINTENANCE:
            notify_safely(self.notifier, 'asset.maintenance', {
                'asset_id': asset_id,
                'asset_name': asset.get('name') or asset_id,
                'reported_by': holder_id,
                'condition_note': note,
            })
            message = f"Asset {asset_id} checked in and sent to maintenance"
        else:
            message = f"Asset {asset_id} checked in"
        return Result.ok(message, asset_id=asset_id, holder_id=holder_id, status=str(status))

    def auto_detect(self, asset_id: str, actor_id: str) -> Result:
        """
        Resolve a scan to checkout or checkin from the asset's current state.

        available → checkout; in use by actor_id → checkin; anything else is
        a CONFLICT whose data['reason'] says why.
        """
        try:
            asset = self.get(asset_id)
        except ToolmanError as e:
            return Result.from_error(e)

        status = asset['status']
        if status == AssetStatus.AVAILABLE:
            return self.checkout(asset_id, actor_id)
        if status == AssetStatus.IN_USE and asset['current_holder_id'] == actor_id:
            return self.checkin(asset_id, actor_id)

        if status == AssetStatus.IN_USE:
            reason = 'held_by_other'
            message = f"Asset {asset_id} is checked out by another holder"
        elif status == AssetStatus.MAINTENANCE:
            reason = 'under_maintenance'
            message = f"Asset {asset_id} is under maintenance"
        else:
            reason = 'inactive'
            message = f"Asset {asset_id} is inactive"
        return Result.fail(
            'CONFLICT',
            f"{message}; no operation is permitted for {actor_id}",
            asset_id=asset_id,
            current_status=str(status),
            reason=reason,
        )

    # ══════════════════════════════════════════════════════════════
    # QUERIES
    # ══════════════════════════════════════════════════════════════

    def get(self, asset_id: str) -> Record:
        """
        Raises:
            ToolmanError('NOT_FOUND'): unknown asset
        """
        asset = self.store.get('assets', asset_id)
        if asset is None:
            raise ToolmanError('NOT_FOUND', f"Asset {asset_id} not found", asset_id=asset_id)
        return asset

    def history(self, asset_id: str) -> list[Record]:
        """Movements of an asset, newest first."""
        return sorted(
            self.store.query('movements', asset_id=asset_id),
            key=lambda m: (m['timestamp'], m['id']),
            reverse=True,
        )

    def current_movement(self, asset_id: str) -> Record | None:
        """Latest movement; equal timestamps resolve to the last inserted."""
        movements = self.history(asset_id)
        return movements[0] if movements else None

    def status_summary(self) -> dict[str, int]:
        """Asset count per status (cached)."""
        if self.cache is None:
            return self._count_by_status()
        return self.cache.get_or_set(SUMMARY_CACHE_KEY, self._count_by_status, self.summary_ttl)

    def _count_by_status(self) -> dict[str, int]:
        counts = {str(status): 0 for status in AssetStatus}
        for asset in self.store.query('assets'):
            counts[str(asset['status'])] = counts.get(str(asset['status']), 0) + 1
        counts['total'] = sum(counts.values())
        return counts

    # ══════════════════════════════════════════════════════════════
    # INTERNALS
    # ══════════════════════════════════════════════════════════════

    def _transition(self, asset: Record, patch: dict[str, Any], *, action: MovementAction,
                    actor_id: str, timestamp: datetime, note: str | None = None) -> None:
        """Status write + movement insert as one saga."""
        asset_id = asset['id']
        saga = Saga(f'asset.{action}')
        saga.step(
            'update_asset',
            lambda: self._write_status(asset, patch),
            undo=lambda _: self._restore_status(asset, patch),
        )
        saga.step(
            'record_movement',
            lambda: self.store.insert('movements', {
                'asset_id': asset_id,
                'actor_id': actor_id,
                'action': action,
                'timestamp': timestamp,
                'condition_note': note,
            }),
        )
        try:
            saga.run()
        finally:
            if self.cache is not None:
                self.cache.invalidate(SUMMARY_CACHE_KEY)

    def _write_status(self, asset: Record, patch: dict[str, Any]) -> Record:
        updated = self.store.update('assets', asset['id'], patch, expected={'status': asset['status']})
        if updated is None:
            raise ToolmanError(
                'CONFLICT',
                f"Asset {asset['id']} was modified concurrently; retry the operation",
                asset_id=asset['id'],
            )
        return updated

    def _restore_status(self, asset: Record, patch: dict[str, Any]) -> None:
        """Undo a status write; queued for replay if the store is unreachable."""
        previous = {field: asset[field] for field in patch}
        try:
            restored = self.store.update('assets', asset['id'], previous, expected={'status': patch['status']})
        except PersistenceError as e:
            if not e.retryable or self.queue is None:
                raise
            self.queue.enqueue('update', 'assets', {'id': asset['id'], **previous})
            logger.warning("toolman.asset.rollback_queued", extra={"asset_id": asset['id']})
            return
        if restored is None:
            raise ToolmanError(
                'CONFLICT',
                f"Asset {asset['id']} changed before its rollback could be applied",
                asset_id=asset['id'],
            )
        logger.info("toolman.asset.rolled_back", extra={"asset_id": asset['id']})
