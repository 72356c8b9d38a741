"""
Tests for TTLCache.
"""

import json

import pytest

from toolman.services import TTLCache


class Clock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def tick(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def cache(clock):
    return TTLCache(max_entries=3, sweep_probability=0, clock=clock)


class TestReadWrite:
    """Tests for get/set and expiry."""

    def test_round_trip(self, cache):
        cache.set('k', {'a': 1}, ttl_seconds=60)

        assert cache.get('k') == {'a': 1}

    def test_expires_at_ttl(self, cache, clock):
        cache.set('k', 'v', ttl_seconds=60)

        clock.tick(59.9)
        assert cache.get('k') == 'v'
        clock.tick(0.1)
        assert cache.get('k') is None
        assert len(cache) == 0

    def test_miss_returns_default(self, cache):
        assert cache.get('missing', 'fallback') == 'fallback'

    def test_default_ttl(self, clock):
        cache = TTLCache(default_ttl=10, sweep_probability=0, clock=clock)
        cache.set('k', 'v')

        clock.tick(10)

        assert 'k' not in cache

    def test_get_or_set_computes_once(self, cache):
        calls = []

        def compute():
            calls.append(1)
            return 42

        assert cache.get_or_set('k', compute, 60) == 42
        assert cache.get_or_set('k', compute, 60) == 42
        assert calls == [1]

    def test_cached_none_is_a_hit(self, cache):
        cache.set('k', None, 60)

        assert cache.get_or_set('k', lambda: 'computed', 60) is None

    def test_invalidate(self, cache):
        cache.set('k', 'v', 60)

        assert cache.invalidate('k') is True
        assert cache.invalidate('k') is False
        assert cache.get('k') is None

    def test_invalidate_pattern(self, cache):
        cache.set('assets:summary', 1, 60)
        cache.set('assets:tool-001', 2, 60)
        cache.set('reservations:stats', 3, 60)

        assert cache.invalidate_pattern(r'^assets:') == 2
        assert 'reservations:stats' in cache
        assert len(cache) == 1

    def test_clear_resets_metrics(self, cache):
        cache.set('k', 'v', 60)
        cache.get('k')

        cache.clear()

        assert len(cache) == 0
        assert cache.metrics()['hits'] == 0


class TestSweep:
    """Tests for sweep() and size bounding."""

    def test_sweep_drops_expired(self, cache, clock):
        cache.set('old', 1, ttl_seconds=5)
        cache.set('new', 2, ttl_seconds=60)
        clock.tick(10)

        assert cache.sweep() == 1
        assert len(cache) == 1

    def test_sweep_evicts_oldest_written(self, cache, clock):
        for key in ['a', 'b', 'c', 'd', 'e']:
            cache.set(key, key, 60)
            clock.tick(1)

        cache.sweep()

        assert [k for k in 'abcde' if k in cache] == ['c', 'd', 'e']
        assert cache.metrics()['evictions'] == 2

    def test_rewrite_refreshes_age(self, cache, clock):
        for key in ['a', 'b', 'c']:
            cache.set(key, key, 60)
            clock.tick(1)
        cache.set('a', 'again', 60)
        cache.set('d', 'd', 60)

        cache.sweep()

        assert 'a' in cache
        assert 'b' not in cache

    def test_sweep_triggered_by_writes(self, clock):
        rolls = iter([0.9, 0.05])
        cache = TTLCache(max_entries=1, sweep_probability=0.1, clock=clock, rng=lambda: next(rolls))

        cache.set('a', 1, 60)
        clock.tick(1)
        cache.set('b', 2, 60)

        assert len(cache) == 1
        assert 'b' in cache


class TestMetrics:
    def test_hits_and_misses(self, cache):
        cache.set('k', 'v', 60)
        cache.get('k')
        cache.get('k')
        cache.get('missing')

        metrics = cache.metrics()

        assert metrics['hits'] == 2
        assert metrics['misses'] == 1
        assert metrics['writes'] == 1
        assert metrics['hit_rate'] == pytest.approx(66.67)
        assert metrics['size'] == 1
        assert metrics['max_size'] == 3


class TestPersistence:
    """Tests for dumps/loads and save/load."""

    def test_blob_shape(self, cache, clock):
        cache.set('k', [1, 2], ttl_seconds=30)

        assert cache.dumps() == {'k': {'value': [1, 2], 'writtenAt': clock.now, 'ttlSeconds': 30}}

    def test_save_and_load(self, cache, clock, tmp_path):
        path = tmp_path / 'cache.json'
        cache.set('k', {'total': 3}, 60)
        cache.save(path)

        restored = TTLCache(clock=clock)

        assert restored.load(path) == 1
        assert restored.get('k') == {'total': 3}
        assert json.loads(path.read_text())['k']['ttlSeconds'] == 60

    def test_load_skips_expired_entries(self, cache, clock, tmp_path):
        path = tmp_path / 'cache.json'
        cache.set('short', 1, 5)
        cache.set('long', 2, 60)
        cache.save(path)
        clock.tick(10)

        restored = TTLCache(clock=clock)

        assert restored.load(path) == 1
        assert 'long' in restored

    def test_missing_blob_is_cold_start(self, clock, tmp_path):
        cache = TTLCache(clock=clock)

        assert cache.load(tmp_path / 'absent.json') == 0
        assert len(cache) == 0

    @pytest.mark.parametrize('content', ['{not json', '[1, 2, 3]', '{"k": {"value": 1}}'])
    def test_corrupt_blob_is_cold_start(self, clock, tmp_path, content):
        path = tmp_path / 'cache.json'
        path.write_text(content)
        cache = TTLCache(clock=clock)
        cache.set('stale', 1, 60)

        assert cache.load(path) == 0
        assert len(cache) == 0
