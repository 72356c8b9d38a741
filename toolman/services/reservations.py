"""
Reservation coordinator — exclusive time windows on assets.

Usage:
    result = coordinator.create(ReservationRequest(
        asset_id='tool-001', holder_id='user-1', holder_name='Ana',
        starts_at=ten, ends_at=noon,
    ))
    coordinator.approve(result.data['reservation_id'], approver_id='lead-1')

Windows are half-open: [10:00, 12:00) and [12:00, 13:00) do not conflict.
Only APPROVED and ACTIVE reservations claim a window.

Each live reservation owns up to three timers on the scheduler:
- reminder: ends_at - 30min (only if still in the future)
- start:    starts_at, for approved reservations (→ ACTIVE)
- expiry:   ends_at (→ EXPIRED, or +1h when auto_extend allows it)
Timers are replaced on extension and cancelled on every terminal transition.
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Hashable, Iterator

from django.utils import timezone

from toolman.adapters.notifications import notify_safely
from toolman.exceptions import ToolmanError
from toolman.models.enums import RESERVATION_TRANSITIONS, AssetStatus, ReservationStatus
from toolman.protocols.notifications import NotificationSink
from toolman.protocols.scheduler import Scheduler
from toolman.protocols.store import PersistenceStore, Record
from toolman.results import Result
from toolman.services.assets import AssetStateMachine
from toolman.services.cache import TTLCache
from toolman.services.performance import PerformanceMonitor, tracked
from toolman.services.saga import Saga
from toolman.services.sync import OfflineSyncQueue
from toolman.windows import AvailabilitySlot, find_conflicts, hourly_slots

logger = logging.getLogger('toolman')

STATS_CACHE_KEY = 'reservations:stats'


@dataclass(frozen=True)
class ReservationRequest:
    """Input for ReservationCoordinator.create()."""

    asset_id: str
    holder_id: str
    starts_at: datetime
    ends_at: datetime
    holder_name: str = ''
    priority: int = 1
    notes: str = ''
    auto_extend: bool = False


def _is_terminal(reservation: Record) -> bool:
    return reservation['status'] in ReservationStatus.terminal()


class ReservationCoordinator:
    """
    Schedules exclusive-use windows for assets.

    Conflict check and write for one asset run under the same per-asset lock
    as AssetStateMachine transitions, and status writes are conditional on
    the status read, so concurrent approvals cannot both claim a window.
    """

    def __init__(self, store: PersistenceStore, assets: AssetStateMachine,
                 scheduler: Scheduler, notifier: NotificationSink,
                 monitor: PerformanceMonitor, cache: TTLCache | None = None,
                 queue: OfflineSyncQueue | None = None,
                 clock: Callable[[], datetime] = timezone.now,
                 reminder_before: timedelta = timedelta(minutes=30),
                 auto_extend_by: timedelta = timedelta(hours=1),
                 quick_duration: timedelta = timedelta(hours=2),
                 stats_ttl: float = 60):
        self.store = store
        self.assets = assets
        self.scheduler = scheduler
        self.notifier = notifier
        self.monitor = monitor
        self.cache = cache
        self.queue = queue
        self.clock = clock
        self.reminder_before = reminder_before
        self.auto_extend_by = auto_extend_by
        self.quick_duration = quick_duration
        self.stats_ttl = stats_ttl
        self.locks = assets.locks
        self._timers: dict[str, dict[str, Hashable]] = {}
        self._timers_lock = threading.Lock()

    # ══════════════════════════════════════════════════════════════
    # CREATE / APPROVE
    # ══════════════════════════════════════════════════════════════

    @tracked('reservation.create')
    def create(self, request: ReservationRequest, pre_approved: bool = False) -> Result:
        """
        Reserve an asset for [starts_at, ends_at).

        Persisted PENDING, or APPROVED when pre_approved (ACTIVE if the
        window has already started). Nothing is persisted on failure.

        Fails with:
            INVALID_WINDOW: starts_at >= ends_at
            NOT_FOUND: unknown asset
            CONFLICT: overlapping reservation, inactive asset, or asset
                checked out by someone else when the window has started
        """
        if request.starts_at >= request.ends_at:
            raise ToolmanError(
                'INVALID_WINDOW',
                starts_at=request.starts_at,
                ends_at=request.ends_at,
            )

        with self.locks.hold(request.asset_id):
            now = self.clock()
            asset = self.assets.get(request.asset_id)
            self._check_asset(asset, request.holder_id, request.starts_at, request.ends_at, now)
            self._check_conflicts(request.asset_id, request.starts_at, request.ends_at)

            if not pre_approved:
                status = ReservationStatus.PENDING
            elif request.starts_at <= now:
                status = ReservationStatus.ACTIVE
            else:
                status = ReservationStatus.APPROVED

            record = {
                'id': uuid.uuid4().hex,
                'asset_id': request.asset_id,
                'holder_id': request.holder_id,
                'holder_name': request.holder_name,
                'starts_at': request.starts_at,
                'ends_at': request.ends_at,
                'priority': request.priority,
                'status': status,
                'notes': request.notes,
                'auto_extend': request.auto_extend,
                'created_at': now,
                'updated_at': now,
            }
            saga = Saga('reservation.create')
            saga.step(
                'insert_reservation',
                lambda: self.store.insert('reservations', record),
                undo=lambda saved: self.store.delete('reservations', saved['id']),
            )
            saga.step('schedule_timers', lambda: self._schedule_timers(record))
            saga.run()

        self._invalidate_stats()
        logger.info(
            "toolman.reservation.created",
            extra={
                "reservation_id": record['id'],
                "asset_id": request.asset_id,
                "holder_id": request.holder_id,
                "status": str(status),
            },
        )
        notify_safely(self.notifier, 'reservation.created', self._payload(record))
        return Result.ok(
            f"Reservation created ({status})",
            reservation_id=record['id'],
            status=str(status),
        )

    def quick_reserve(self, asset_id: str, holder_id: str, holder_name: str = '',
                      notes: str = '') -> Result:
        """Reserve from now for the quick-reservation duration, pre-approved."""
        now = self.clock()
        return self.create(ReservationRequest(
            asset_id=asset_id,
            holder_id=holder_id,
            holder_name=holder_name,
            starts_at=now,
            ends_at=now + self.quick_duration,
            priority=2,
            notes=notes,
        ), pre_approved=True)

    @tracked('reservation.approve')
    def approve(self, reservation_id: str, approver_id: str) -> Result:
        """
        PENDING → APPROVED (ACTIVE if the window has started).

        The conflict check runs again: another reservation may have been
        approved for the same window since this one was submitted.
        """
        asset_id = self.get(reservation_id)['asset_id']
        with self.locks.hold(asset_id):
            reservation = self.get(reservation_id)
            self._require_transition(reservation, ReservationStatus.APPROVED)
            self._check_conflicts(asset_id, reservation['starts_at'], reservation['ends_at'],
                                  exclude_id=reservation_id)
            now = self.clock()
            status = (
                ReservationStatus.ACTIVE
                if reservation['starts_at'] <= now < reservation['ends_at']
                else ReservationStatus.APPROVED
            )
            updated = self._write(reservation, {
                'status': status,
                'approved_by': approver_id,
                'approved_at': now,
                'updated_at': now,
            })
            self._schedule_timers(updated)

        self._invalidate_stats()
        logger.info(
            "toolman.reservation.approved",
            extra={"reservation_id": reservation_id, "approver_id": approver_id},
        )
        notify_safely(self.notifier, 'reservation.approved', {
            **self._payload(updated),
            'approved_by': approver_id,
        })
        return Result.ok(f"Reservation approved ({status})", reservation_id=reservation_id,
                         status=str(status))

    @tracked('reservation.activate')
    def activate(self, reservation_id: str) -> Result:
        """APPROVED → ACTIVE once now is inside the window."""
        asset_id = self.get(reservation_id)['asset_id']
        with self.locks.hold(asset_id):
            reservation = self.get(reservation_id)
            self._require_transition(reservation, ReservationStatus.ACTIVE)
            now = self.clock()
            if not reservation['starts_at'] <= now < reservation['ends_at']:
                raise ToolmanError(
                    'CONFLICT',
                    f"Reservation {reservation_id} window is not open",
                    reservation_id=reservation_id,
                    starts_at=reservation['starts_at'],
                    ends_at=reservation['ends_at'],
                )
            self._write(reservation, {'status': ReservationStatus.ACTIVE, 'updated_at': now})

        self._invalidate_stats()
        logger.info("toolman.reservation.activated", extra={"reservation_id": reservation_id})
        return Result.ok("Reservation active", reservation_id=reservation_id,
                         status=str(ReservationStatus.ACTIVE))

    # ══════════════════════════════════════════════════════════════
    # EXTEND
    # ══════════════════════════════════════════════════════════════

    @tracked('reservation.extend')
    def extend(self, reservation_id: str, new_ends_at: datetime) -> Result:
        """
        Move ends_at later, keeping starts_at.

        The new window is checked against other reservations (never against
        itself); on success the timers are replaced.

        Fails with:
            NOT_FOUND, CONFLICT (terminal or overlapping),
            INVALID_WINDOW (new_ends_at not after the current end)
        """
        updated = self._extend(reservation_id, new_ends_at)
        self._invalidate_stats()
        return Result.ok(
            f"Reservation extended until {new_ends_at.isoformat()}",
            reservation_id=reservation_id,
            ends_at=updated['ends_at'],
        )

    def _extend(self, reservation_id: str, new_ends_at: datetime) -> Record:
        asset_id = self.get(reservation_id)['asset_id']
        with self.locks.hold(asset_id):
            reservation = self.get(reservation_id)
            if _is_terminal(reservation):
                raise ToolmanError(
                    'CONFLICT',
                    f"Reservation {reservation_id} is {reservation['status']} and cannot be extended",
                    reservation_id=reservation_id,
                    current_status=str(reservation['status']),
                )
            if new_ends_at <= reservation['ends_at']:
                raise ToolmanError(
                    'INVALID_WINDOW',
                    f"New end {new_ends_at.isoformat()} is not after the current end",
                    reservation_id=reservation_id,
                    ends_at=reservation['ends_at'],
                )
            self._check_conflicts(asset_id, reservation['starts_at'], new_ends_at,
                                  exclude_id=reservation_id)

            saga = Saga('reservation.extend')
            saga.step(
                'update_window',
                lambda: self._write(reservation, {'ends_at': new_ends_at, 'updated_at': self.clock()}),
                undo=lambda _: self._restore_window(reservation),
            )
            saga.step('reschedule_timers', lambda: self._schedule_timers({**reservation, 'ends_at': new_ends_at}))
            results = saga.run()

        logger.info(
            "toolman.reservation.extended",
            extra={"reservation_id": reservation_id, "ends_at": new_ends_at.isoformat()},
        )
        return results['update_window']

    def _restore_window(self, reservation: Record) -> None:
        self.store.update('reservations', reservation['id'], {
            'ends_at': reservation['ends_at'],
            'updated_at': reservation['updated_at'],
        })

    # ══════════════════════════════════════════════════════════════
    # TERMINAL TRANSITIONS
    # ══════════════════════════════════════════════════════════════

    @tracked('reservation.cancel')
    def cancel(self, reservation_id: str, reason: str = '') -> Result:
        self._finish(reservation_id, ReservationStatus.CANCELLED, reason=reason)
        return Result.ok("Reservation cancelled", reservation_id=reservation_id,
                         status=str(ReservationStatus.CANCELLED))

    @tracked('reservation.complete')
    def complete(self, reservation_id: str) -> Result:
        self._finish(reservation_id, ReservationStatus.COMPLETED)
        return Result.ok("Reservation completed", reservation_id=reservation_id,
                         status=str(ReservationStatus.COMPLETED))

    @tracked('reservation.expire')
    def expire(self, reservation_id: str, reason: str = '') -> Result:
        self._finish(reservation_id, ReservationStatus.EXPIRED, reason=reason)
        return Result.ok("Reservation expired", reservation_id=reservation_id,
                         status=str(ReservationStatus.EXPIRED))

    def _finish(self, reservation_id: str, status: ReservationStatus, reason: str = '') -> Record:
        asset_id = self.get(reservation_id)['asset_id']
        with self.locks.hold(asset_id):
            reservation = self.get(reservation_id)
            self._require_transition(reservation, status)
            now = self.clock()
            patch: dict[str, Any] = {'status': status, 'resolved_at': now, 'updated_at': now}
            if reason:
                patch['metadata'] = {**(reservation.get('metadata') or {}), 'reason': reason}
            updated = self._write(reservation, patch)
            self._cancel_timers(reservation_id)

        self._invalidate_stats()
        logger.info(
            f"toolman.reservation.{status}",
            extra={"reservation_id": reservation_id, "reason": reason},
        )
        if status in (ReservationStatus.CANCELLED, ReservationStatus.EXPIRED):
            notify_safely(self.notifier, f'reservation.{status}', {
                **self._payload(updated),
                'reason': reason,
            })
        return updated

    # ══════════════════════════════════════════════════════════════
    # QUERIES
    # ══════════════════════════════════════════════════════════════

    def get(self, reservation_id: str) -> Record:
        """
        Raises:
            ToolmanError('NOT_FOUND'): unknown reservation
        """
        reservation = self.store.get('reservations', reservation_id)
        if reservation is None:
            raise ToolmanError('NOT_FOUND', f"Reservation {reservation_id} not found",
                               reservation_id=reservation_id)
        return reservation

    def availability(self, asset_id: str, start: datetime, end: datetime) -> Iterator[AvailabilitySlot]:
        """
        Hourly slots over [start, end) for calendar views.

        Lazy: reservations are read when the first slot is requested.
        """
        yield from hourly_slots(self._blocking(asset_id), start, end)

    def for_holder(self, holder_id: str) -> list[Record]:
        """All reservations of a holder, earliest window first."""
        return sorted(self.store.query('reservations', holder_id=holder_id),
                      key=lambda r: r['starts_at'])

    def for_asset(self, asset_id: str) -> list[Record]:
        """Approved/active reservations of an asset, earliest window first."""
        return sorted(self._blocking(asset_id), key=lambda r: r['starts_at'])

    def stats(self) -> dict[str, int]:
        """Counts for dashboards (cached)."""
        if self.cache is None:
            return self._compute_stats()
        return self.cache.get_or_set(STATS_CACHE_KEY, self._compute_stats, self.stats_ttl)

    def _compute_stats(self) -> dict[str, int]:
        reservations = self.store.query('reservations')
        today = timezone.localdate(self.clock())
        live = [r for r in reservations if r['status'] in ReservationStatus.blocking()]
        return {
            'total': len(reservations),
            'pending': sum(1 for r in reservations if r['status'] == ReservationStatus.PENDING),
            'active': len(live),
            'today': sum(1 for r in live if timezone.localdate(r['starts_at']) == today),
            'expired': sum(1 for r in reservations if r['status'] == ReservationStatus.EXPIRED),
        }

    # ══════════════════════════════════════════════════════════════
    # MAINTENANCE
    # ══════════════════════════════════════════════════════════════

    def restore_timers(self) -> int:
        """
        Schedule timers for every live reservation (after a restart).

        Returns:
            Number of reservations scheduled
        """
        live = [r for r in self.store.query('reservations') if not _is_terminal(r)]
        for reservation in live:
            self._schedule_timers(reservation)
        logger.info("toolman.reservation.timers_restored", extra={"count": len(live)})
        return len(live)

    def overdue(self) -> list[Record]:
        """Live reservations whose window has ended."""
        now = self.clock()
        return [
            r for r in self.store.query('reservations')
            if not _is_terminal(r) and r['ends_at'] <= now
        ]

    def sweep_overdue(self) -> dict[str, int]:
        """
        Run the expiry logic for every overdue reservation, and activate
        approved ones whose window is open. Covers timers lost to a restart.
        """
        counts = {'expired': 0, 'extended': 0, 'activated': 0}
        for reservation in self.overdue():
            outcome = self._on_expiry(reservation['id'])
            if outcome in counts:
                counts[outcome] += 1

        now = self.clock()
        for reservation in self.store.query('reservations', status=ReservationStatus.APPROVED):
            if reservation['starts_at'] <= now < reservation['ends_at']:
                if self.activate(reservation['id']):
                    counts['activated'] += 1
        return counts

    def scheduled_timers(self, reservation_id: str) -> set[str]:
        """Names of the timers currently pending for a reservation."""
        with self._timers_lock:
            return set(self._timers.get(reservation_id, {}))

    # ══════════════════════════════════════════════════════════════
    # TIMERS
    # ══════════════════════════════════════════════════════════════

    def _schedule_timers(self, reservation: Record) -> dict[str, Hashable]:
        """
        Replace the reservation's timers with ones matching its window.

        The previous timers are only cancelled once every new one is
        scheduled; on failure they stay in place.
        """
        reservation_id = reservation['id']
        now = self.clock()

        due = {}
        reminder_at = reservation['ends_at'] - self.reminder_before
        if reminder_at > now:
            due['reminder'] = (reminder_at, self._on_reminder)
        if reservation['status'] == ReservationStatus.APPROVED and reservation['starts_at'] > now:
            due['start'] = (reservation['starts_at'], self._on_start)
        due['expiry'] = (reservation['ends_at'], self._on_expiry)

        tokens: dict[str, Hashable] = {}
        try:
            for name, (at, handler) in due.items():
                tokens[name] = self.scheduler.schedule(at - now, self._timer(reservation_id, name, handler))
        except Exception:
            for token in tokens.values():
                self.scheduler.cancel(token)
            raise
        with self._timers_lock:
            previous = self._timers.get(reservation_id, {})
            self._timers[reservation_id] = tokens
        for token in previous.values():
            self.scheduler.cancel(token)
        return tokens

    def _cancel_timers(self, reservation_id: str) -> None:
        with self._timers_lock:
            tokens = self._timers.pop(reservation_id, {})
        for token in tokens.values():
            self.scheduler.cancel(token)

    def _timer(self, reservation_id: str, name: str, handler: Callable[[str], Any]) -> Callable[[], None]:
        def fire():
            with self._timers_lock:
                self._timers.get(reservation_id, {}).pop(name, None)
            try:
                handler(reservation_id)
            except Exception:
                logger.exception(
                    "toolman.reservation.timer_failed",
                    extra={"reservation_id": reservation_id, "timer": name},
                )
        return fire

    def _on_reminder(self, reservation_id: str) -> None:
        reservation = self.get(reservation_id)
        if _is_terminal(reservation):
            return
        notify_safely(self.notifier, 'reservation.reminder', self._payload(reservation))

    def _on_start(self, reservation_id: str) -> None:
        result = self.activate(reservation_id)
        if not result:
            logger.info(
                "toolman.reservation.activation_skipped",
                extra={"reservation_id": reservation_id, "reason": result.message},
            )

    def _on_expiry(self, reservation_id: str) -> str | None:
        """
        Expiry handler: auto-extend when enabled and possible, else expire.

        Returns:
            'extended', 'expired', or None if nothing changed
        """
        reservation = self.get(reservation_id)
        if _is_terminal(reservation):
            return None

        reason = 'window ended'
        if reservation['auto_extend']:
            result = self.extend(reservation_id, reservation['ends_at'] + self.auto_extend_by)
            if result:
                notify_safely(self.notifier, 'reservation.extended', {
                    **self._payload(reservation),
                    'ends_at': result.data['ends_at'],
                    'automatic': True,
                })
                return 'extended'
            reason = f"auto-extend failed: {result.message}"

        result = self.expire(reservation_id, reason=reason)
        if result:
            return 'expired'
        if result.data.get('retryable') and self.queue is not None:
            now = self.clock()
            self.queue.enqueue('update', 'reservations', {
                'id': reservation_id,
                'status': ReservationStatus.EXPIRED,
                'resolved_at': now,
                'updated_at': now,
            })
            self._cancel_timers(reservation_id)
            logger.warning("toolman.reservation.expiry_queued", extra={"reservation_id": reservation_id})
            return 'expired'
        logger.error(
            "toolman.reservation.expiry_failed",
            extra={"reservation_id": reservation_id, "reason": result.message},
        )
        return None

    # ══════════════════════════════════════════════════════════════
    # INTERNALS
    # ══════════════════════════════════════════════════════════════

    def _blocking(self, asset_id: str) -> list[Record]:
        return [
            r for r in self.store.query('reservations', asset_id=asset_id)
            if r['status'] in ReservationStatus.blocking()
        ]

    def _check_conflicts(self, asset_id: str, starts_at: datetime, ends_at: datetime,
                         exclude_id: str | None = None) -> None:
        conflicts = find_conflicts(self._blocking(asset_id), starts_at, ends_at, exclude_id)
        if conflicts:
            holders = ', '.join(dict.fromkeys(r['holder_name'] or r['holder_id'] for r in conflicts))
            raise ToolmanError(
                'CONFLICT',
                f"Asset {asset_id} is already reserved in this window by {holders}",
                asset_id=asset_id,
                conflicts=[
                    {
                        'reservation_id': r['id'],
                        'holder_id': r['holder_id'],
                        'holder_name': r['holder_name'],
                        'starts_at': r['starts_at'],
                        'ends_at': r['ends_at'],
                    }
                    for r in conflicts
                ],
            )

    def _check_asset(self, asset: Record, holder_id: str, starts_at: datetime,
                     ends_at: datetime, now: datetime) -> None:
        if asset['status'] == AssetStatus.INACTIVE:
            raise ToolmanError(
                'CONFLICT',
                f"Asset {asset['id']} is inactive and cannot be reserved",
                asset_id=asset['id'],
                current_status=str(asset['status']),
            )
        started = starts_at <= now < ends_at
        if (started and asset['status'] == AssetStatus.IN_USE
                and asset['current_holder_id'] != holder_id):
            raise ToolmanError(
                'CONFLICT',
                f"Asset {asset['id']} is currently checked out by another holder",
                asset_id=asset['id'],
                current_status=str(asset['status']),
                current_holder_id=asset['current_holder_id'],
            )

    def _require_transition(self, reservation: Record, target: ReservationStatus) -> None:
        current = ReservationStatus(reservation['status'])
        if target not in RESERVATION_TRANSITIONS[current]:
            raise ToolmanError(
                'CONFLICT',
                f"Reservation {reservation['id']} is {current} and cannot become {target}",
                reservation_id=reservation['id'],
                current_status=str(current),
            )

    def _write(self, reservation: Record, patch: dict[str, Any]) -> Record:
        updated = self.store.update('reservations', reservation['id'], patch,
                                    expected={'status': reservation['status']})
        if updated is None:
            raise ToolmanError(
                'CONFLICT',
                f"Reservation {reservation['id']} was modified concurrently; retry the operation",
                reservation_id=reservation['id'],
            )
        return updated

    def _invalidate_stats(self) -> None:
        if self.cache is not None:
            self.cache.invalidate(STATS_CACHE_KEY)

    @staticmethod
    def _payload(reservation: Record) -> dict[str, Any]:
        return {
            'reservation_id': reservation['id'],
            'asset_id': reservation['asset_id'],
            'holder_id': reservation['holder_id'],
            'holder_name': reservation['holder_name'],
            'starts_at': reservation['starts_at'],
            'ends_at': reservation['ends_at'],
            'status': str(reservation['status']),
        }
