"""
Toolman — the single entry point wiring stores, services and timers together.

Usage:
    from toolman import Toolman

    toolman = Toolman.from_settings()
    toolman.start()

    toolman.assets.checkout('tool-001', 'user-1')
    toolman.reservations.create(request)
    toolman.queue.drain()

    toolman.shutdown()

Both services share one PerformanceMonitor, one TTLCache and one KeyedLock,
so reservation and checkout operations on the same asset never interleave.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable

from django.utils import timezone

from toolman.adapters.loading import load_notification_sink, load_store
from toolman.adapters.scheduler import ThreadingScheduler
from toolman.conf import get_toolman_settings
from toolman.protocols.notifications import NotificationSink
from toolman.protocols.scheduler import Scheduler
from toolman.protocols.store import PersistenceStore
from toolman.services.assets import AssetStateMachine
from toolman.services.cache import TTLCache
from toolman.services.performance import PerformanceMonitor
from toolman.services.reservations import ReservationCoordinator
from toolman.services.sync import OfflineSyncQueue

logger = logging.getLogger('toolman')


class Toolman:
    """
    Container for one running coordinator.

    Everything external is injected; from_settings() builds the defaults
    from settings.TOOLMAN.
    """

    def __init__(self, store: PersistenceStore, notifier: NotificationSink,
                 scheduler: Scheduler, clock: Callable[[], datetime] = timezone.now,
                 cache: TTLCache | None = None, monitor: PerformanceMonitor | None = None,
                 queue: OfflineSyncQueue | None = None,
                 cache_storage_path=None, summary_ttl: float = 60,
                 reminder_before: timedelta = timedelta(minutes=30),
                 auto_extend_by: timedelta = timedelta(hours=1),
                 quick_duration: timedelta = timedelta(hours=2),
                 retention: timedelta = timedelta(days=7)):
        self.store = store
        self.notifier = notifier
        self.scheduler = scheduler
        self.clock = clock
        self.cache = cache if cache is not None else TTLCache()
        self.monitor = monitor if monitor is not None else PerformanceMonitor()
        self.queue = queue if queue is not None else OfflineSyncQueue(store, notifier, clock=clock)
        self.cache_storage_path = cache_storage_path
        self.retention = retention
        self.assets = AssetStateMachine(
            store, self.monitor, notifier,
            cache=self.cache,
            queue=self.queue,
            clock=clock,
            summary_ttl=summary_ttl,
        )
        self.reservations = ReservationCoordinator(
            store, self.assets, scheduler, notifier, self.monitor,
            cache=self.cache,
            queue=self.queue,
            clock=clock,
            reminder_before=reminder_before,
            auto_extend_by=auto_extend_by,
            quick_duration=quick_duration,
            stats_ttl=summary_ttl,
        )
        self.started = False

    @classmethod
    def from_settings(cls, scheduler: Scheduler | None = None) -> 'Toolman':
        """
        Build from settings.TOOLMAN.

        Raises:
            ImproperlyConfigured: STORE or NOTIFICATION_SINK cannot be loaded
        """
        conf = get_toolman_settings()
        store = load_store()
        notifier = load_notification_sink()
        return cls(
            store,
            notifier,
            scheduler or ThreadingScheduler(),
            cache=TTLCache(
                max_entries=conf.CACHE_MAX_ENTRIES,
                sweep_probability=conf.CACHE_SWEEP_PROBABILITY,
            ),
            monitor=PerformanceMonitor(
                max_samples=conf.PERFORMANCE_MAX_SAMPLES,
                max_avg_latency_ms=conf.SLA_MAX_AVG_LATENCY_MS,
                min_success_rate=conf.SLA_MIN_SUCCESS_RATE,
            ),
            queue=OfflineSyncQueue(
                store, notifier,
                storage_path=conf.QUEUE_STORAGE_PATH,
                max_retries=conf.QUEUE_MAX_RETRIES,
            ),
            cache_storage_path=conf.CACHE_STORAGE_PATH,
            summary_ttl=conf.SUMMARY_TTL_SECONDS,
            reminder_before=timedelta(minutes=conf.RESERVATION_REMINDER_MINUTES),
            auto_extend_by=timedelta(minutes=conf.AUTO_EXTEND_MINUTES),
            quick_duration=timedelta(hours=conf.QUICK_RESERVATION_HOURS),
            retention=timedelta(days=conf.PERFORMANCE_RETENTION_DAYS),
        )

    def start(self) -> None:
        """
        Restore persisted state and resume timers.

        Loads the cache and the offline queue, drains on connectivity_restored,
        and re-schedules timers for every live reservation.
        """
        if self.started:
            return
        if self.cache_storage_path:
            self.cache.load(self.cache_storage_path)
        restored = self.queue.load()
        self.queue.connect()
        timers = self.reservations.restore_timers()
        self.started = True
        logger.info(
            "toolman.started",
            extra={"queued_operations": restored, "live_reservations": timers},
        )

    def shutdown(self) -> None:
        """
        Persist the cache, stop listening and cancel pending timers.

        The cache is only saved by a started container; one that never loaded
        the blob must not overwrite it.
        """
        if self.started and self.cache_storage_path:
            self.cache.save(self.cache_storage_path)
        self.queue.disconnect()
        shutdown = getattr(self.scheduler, 'shutdown', None)
        if shutdown is not None:
            shutdown()
        self.started = False
        logger.info("toolman.shutdown")

    def purge_performance(self) -> int:
        """Drop performance samples older than the configured retention."""
        return self.monitor.purge(self.retention)

    def health(self) -> dict:
        """Snapshot for status pages."""
        stats = self.monitor.statistics()
        return {
            'healthy': self.monitor.is_healthy(),
            'operations': stats.total,
            'average_ms': stats.average_ms,
            'success_rate': stats.success_rate,
            'queue': self.queue.stats(),
            'cache': self.cache.metrics(),
        }
