"""
Pytest fixtures for Toolman tests.
"""

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest

from toolman.adapters import DjangoStore, MemoryNotificationSink, MemoryStore, VirtualScheduler
from toolman.exceptions import PersistenceError
from toolman.models import Asset, AssetStatus
from toolman.service import Toolman
from toolman.services import TTLCache


# Monday 08:00 UTC
START = datetime(2026, 3, 2, 8, 0, tzinfo=dt_timezone.utc)


class FlakyStore(MemoryStore):
    """MemoryStore that fails chosen calls on demand."""

    def __init__(self):
        super().__init__()
        self.failures = {}
        self.calls = []

    def fail(self, method, table, times=None, retryable=False):
        """Fail `method` on `table` the next `times` calls (None = forever)."""
        self.failures[(method, table)] = [times, retryable]

    def heal(self):
        self.failures.clear()

    def _check(self, method, table):
        self.calls.append((method, table))
        failure = self.failures.get((method, table))
        if failure is None:
            return
        remaining, retryable = failure
        if remaining is not None:
            if remaining <= 1:
                del self.failures[(method, table)]
            else:
                failure[0] = remaining - 1
        raise PersistenceError(f"{method} on {table} failed", retryable=retryable, table=table)

    def insert(self, table, record):
        self._check('insert', table)
        return super().insert(table, record)

    def update(self, table, id, patch, expected=None):
        self._check('update', table)
        return super().update(table, id, patch, expected)

    def delete(self, table, id):
        self._check('delete', table)
        return super().delete(table, id)


class BrokenScheduler(VirtualScheduler):
    """VirtualScheduler that refuses new timers while broken."""

    broken = False

    def schedule(self, delay, callback):
        if self.broken:
            raise RuntimeError("scheduler unavailable")
        return super().schedule(delay, callback)


def make_asset(store, asset_id='tool-001', status=AssetStatus.AVAILABLE, holder=None, name='Drill'):
    return store.insert('assets', {
        'id': asset_id,
        'name': name,
        'status': status,
        'current_holder_id': holder,
        'created_at': START,
        'updated_at': START,
    })


@pytest.fixture
def start():
    return START


@pytest.fixture
def scheduler():
    return BrokenScheduler(start=START)


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def sink():
    return MemoryNotificationSink()


@pytest.fixture
def cache(scheduler):
    return TTLCache(sweep_probability=0, clock=lambda: scheduler.now().timestamp())


@pytest.fixture
def toolman(store, sink, scheduler, cache):
    """Toolman on in-memory backends, driven by the virtual clock."""
    return Toolman(store, sink, scheduler, clock=scheduler.now, cache=cache)


@pytest.fixture
def assets(toolman):
    return toolman.assets


@pytest.fixture
def reservations(toolman):
    return toolman.reservations


@pytest.fixture
def asset(store):
    """An available asset."""
    return make_asset(store)


@pytest.fixture
def in_use_asset(store):
    """Asset checked out by user-1."""
    return make_asset(store, 'tool-002', AssetStatus.IN_USE, holder='user-1', name='Saw')


@pytest.fixture
def at(start):
    """at(10) → 10:00 on the test day; at(10, 30) → 10:30."""
    def build(hour, minute=0, days=0):
        return start.replace(hour=hour, minute=minute) + timedelta(days=days)
    return build


@pytest.fixture
def db_toolman(db, sink, scheduler):
    """Toolman on the Django ORM."""
    return Toolman(DjangoStore(), sink, scheduler, clock=scheduler.now,
                   cache=TTLCache(sweep_probability=0))


@pytest.fixture
def db_asset(db):
    return Asset.objects.create(id='tool-100', name='Torque wrench', created_at=START, updated_at=START)
