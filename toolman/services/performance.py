"""
Performance monitor — latency and success telemetry for state-changing operations.

Usage:
    monitor = PerformanceMonitor()
    token = monitor.start('checkout')
    ...
    monitor.end(token, success=True)
    monitor.is_healthy()  # avg < 500ms and success rate > 95%

Services decorate their public operations with ``@tracked('<operation>')``,
which also turns ToolmanError into a failed Result.
"""

from __future__ import annotations

import functools
import logging
import math
import threading
import time
import uuid
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable

from toolman.exceptions import ToolmanError
from toolman.results import Result

logger = logging.getLogger('toolman')


@dataclass(frozen=True)
class Sample:
    operation: str
    started_at: float  # epoch seconds
    ended_at: float    # epoch seconds
    duration_ms: float
    success: bool
    error_kind: str | None = None


@dataclass(frozen=True)
class PerformanceStats:
    total: int = 0
    average_ms: float = 0.0
    fastest_ms: float = 0.0
    slowest_ms: float = 0.0
    p50_ms: float = 0.0
    p95_ms: float = 0.0
    p99_ms: float = 0.0
    success_rate: float = 0.0  # percent
    by_operation: dict[str, int] = field(default_factory=dict)
    last_24h: int = 0


def percentile(sorted_values: list[float], pct: float) -> float:
    """Nearest-rank percentile of an ascending list."""
    if not sorted_values:
        return 0.0
    rank = max(math.ceil(pct / 100 * len(sorted_values)), 1)
    return sorted_values[rank - 1]


class PerformanceMonitor:
    """Bounded ring buffer of operation samples with an SLA verdict."""

    def __init__(self, max_samples: int = 1000,
                 max_avg_latency_ms: float = 500.0,
                 min_success_rate: float = 95.0,
                 clock: Callable[[], float] = time.perf_counter,
                 wall_clock: Callable[[], float] = time.time):
        self.max_avg_latency_ms = max_avg_latency_ms
        self.min_success_rate = min_success_rate
        self._clock = clock
        self._wall_clock = wall_clock
        self._samples: deque[Sample] = deque(maxlen=max_samples)
        self._pending: dict[str, tuple[str, float, float]] = {}
        self._lock = threading.Lock()

    def start(self, operation: str) -> str:
        token = f"{operation}:{uuid.uuid4().hex}"
        with self._lock:
            self._pending[token] = (operation, self._clock(), self._wall_clock())
        return token

    def end(self, token: str, success: bool, error_kind: str | None = None) -> float:
        """
        Close an operation started with start().

        Returns:
            Duration in milliseconds (0 for an unknown token)
        """
        finished = self._clock()
        with self._lock:
            pending = self._pending.pop(token, None)
            if pending is None:
                logger.warning("toolman.performance.unknown_token", extra={"token": token})
                return 0.0
            operation, started, started_at = pending
            duration_ms = (finished - started) * 1000
            self._samples.append(Sample(
                operation=operation,
                started_at=started_at,
                ended_at=self._wall_clock(),
                duration_ms=duration_ms,
                success=success,
                error_kind=error_kind,
            ))
        logger.debug(
            "toolman.performance.sample",
            extra={"operation": operation, "duration_ms": round(duration_ms, 2), "success": success},
        )
        return duration_ms

    def samples(self) -> list[Sample]:
        with self._lock:
            return list(self._samples)

    def statistics(self) -> PerformanceStats:
        samples = self.samples()
        if not samples:
            return PerformanceStats()

        durations = sorted(s.duration_ms for s in samples)
        successes = sum(1 for s in samples if s.success)
        cutoff = self._wall_clock() - timedelta(hours=24).total_seconds()
        return PerformanceStats(
            total=len(samples),
            average_ms=sum(durations) / len(durations),
            fastest_ms=durations[0],
            slowest_ms=durations[-1],
            p50_ms=percentile(durations, 50),
            p95_ms=percentile(durations, 95),
            p99_ms=percentile(durations, 99),
            success_rate=successes / len(samples) * 100,
            by_operation=dict(Counter(s.operation for s in samples)),
            last_24h=sum(1 for s in samples if s.ended_at >= cutoff),
        )

    def is_healthy(self) -> bool:
        """SLA verdict; False while there are no samples."""
        stats = self.statistics()
        return (
            stats.total > 0
            and stats.average_ms < self.max_avg_latency_ms
            and stats.success_rate > self.min_success_rate
        )

    def purge(self, retention: timedelta = timedelta(days=7)) -> int:
        """
        Drop samples that ended before now - retention.

        Returns:
            Number of samples removed
        """
        cutoff = self._wall_clock() - retention.total_seconds()
        with self._lock:
            kept = [s for s in self._samples if s.ended_at > cutoff]
            removed = len(self._samples) - len(kept)
            self._samples = deque(kept, maxlen=self._samples.maxlen)
        logger.info("toolman.performance.purged", extra={"removed": removed, "kept": len(kept)})
        return removed

    def report(self) -> str:
        stats = self.statistics()
        lines = [
            "Toolman performance report",
            f"  Operations: {stats.total}",
            f"  Average: {stats.average_ms:.2f}ms (p50 {stats.p50_ms:.2f}, "
            f"p95 {stats.p95_ms:.2f}, p99 {stats.p99_ms:.2f})",
            f"  Fastest/slowest: {stats.fastest_ms:.2f}ms / {stats.slowest_ms:.2f}ms",
            f"  Success rate: {stats.success_rate:.1f}%",
            f"  Last 24h: {stats.last_24h}",
        ]
        for operation, count in sorted(stats.by_operation.items()):
            lines.append(f"    {operation}: {count}")
        target = f"< {self.max_avg_latency_ms:g}ms with > {self.min_success_rate:g}% success"
        lines.append(f"  SLA ({target}): {'healthy' if self.is_healthy() else 'attention needed'}")
        return "\n".join(lines)


def tracked(operation: str):
    """
    Time a service method and convert ToolmanError into a failed Result.

    The decorated method's instance must expose ``monitor``. Exceptions other
    than ToolmanError are recorded as failures and re-raised.
    """
    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, *args, **kwargs):
            token = self.monitor.start(operation)
            try:
                result = method(self, *args, **kwargs)
            except ToolmanError as e:
                result = Result.from_error(e)
            except Exception:
                self.monitor.end(token, False, 'INTERNAL_ERROR')
                raise
            self.monitor.end(token, result.success, result.code)
            return result
        return wrapper
    return decorator
