"""
Tests for AssetStateMachine.
"""

import threading
from datetime import timedelta

import pytest

from toolman.models import AssetStatus, MovementAction
from toolman.service import Toolman
from toolman.tests.conftest import FlakyStore, make_asset


def movements(store, asset_id='tool-001'):
    return store.query('movements', asset_id=asset_id)


class TestCheckout:
    """Tests for checkout()."""

    def test_checkout_available_asset(self, assets, store, asset):
        result = assets.checkout('tool-001', 'user-1')

        assert result
        assert result.data['status'] == 'in-use'
        saved = store.get('assets', 'tool-001')
        assert saved['status'] == AssetStatus.IN_USE
        assert saved['current_holder_id'] == 'user-1'

    def test_checkout_records_one_movement(self, assets, store, asset, start):
        assets.checkout('tool-001', 'user-1')

        [movement] = movements(store)
        assert movement['action'] == MovementAction.CHECKOUT
        assert movement['actor_id'] == 'user-1'
        assert movement['timestamp'] == start
        assert movement['condition_note'] is None

    def test_checkout_in_use_asset_conflicts(self, assets, store, asset):
        assets.checkout('tool-001', 'user-1')

        result = assets.checkout('tool-001', 'user-2')

        assert not result
        assert result.code == 'CONFLICT'
        assert 'in-use' in result.message
        assert result.data['current_status'] == 'in-use'
        assert store.get('assets', 'tool-001')['current_holder_id'] == 'user-1'
        assert len(movements(store)) == 1

    @pytest.mark.parametrize('status', [AssetStatus.MAINTENANCE, AssetStatus.INACTIVE])
    def test_checkout_unavailable_status_conflicts(self, assets, store, status):
        make_asset(store, 'tool-009', status)

        result = assets.checkout('tool-009', 'user-1')

        assert result.code == 'CONFLICT'
        assert str(status) in result.message
        assert movements(store, 'tool-009') == []

    def test_checkout_unknown_asset(self, assets, store):
        result = assets.checkout('missing', 'user-1')

        assert result.code == 'NOT_FOUND'
        assert store.query('movements') == []

    def test_movement_failure_rolls_back_status(self, assets, store, asset):
        store.fail('insert', 'movements', times=1)

        result = assets.checkout('tool-001', 'user-1')

        assert result.code == 'PERSISTENCE_ERROR'
        assert result.data['step'] == 'record_movement'
        assert result.data['compensated'] is True
        saved = store.get('assets', 'tool-001')
        assert saved['status'] == AssetStatus.AVAILABLE
        assert saved['current_holder_id'] is None
        assert movements(store) == []

    def test_failed_status_write_leaves_nothing(self, assets, store, asset):
        store.fail('update', 'assets', times=1)

        result = assets.checkout('tool-001', 'user-1')

        assert result.code == 'PERSISTENCE_ERROR'
        assert store.get('assets', 'tool-001')['status'] == AssetStatus.AVAILABLE
        assert movements(store) == []

    def test_stale_read_is_rejected(self, sink, scheduler):
        class StaleStore(FlakyStore):
            stale = None

            def get(self, table, id):
                if table == 'assets' and self.stale is not None:
                    return dict(self.stale)
                return super().get(table, id)

        store = StaleStore()
        make_asset(store)
        toolman = Toolman(store, sink, scheduler, clock=scheduler.now)
        store.stale = store.get('assets', 'tool-001')
        store.update('assets', 'tool-001', {'status': AssetStatus.IN_USE, 'current_holder_id': 'user-1'})

        result = toolman.assets.checkout('tool-001', 'user-2')

        assert result.code == 'CONFLICT'
        assert 'concurrently' in result.message
        assert store.query('movements') == []
        store.stale = None
        assert store.get('assets', 'tool-001')['current_holder_id'] == 'user-1'

    def test_concurrent_checkouts_single_winner(self, assets, store, asset):
        barrier = threading.Barrier(8)
        results = []

        def attempt(holder):
            barrier.wait()
            results.append(assets.checkout('tool-001', holder))

        threads = [threading.Thread(target=attempt, args=(f'user-{i}',)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(1 for r in results if r) == 1
        assert {r.code for r in results if not r} == {'CONFLICT'}
        assert len(movements(store)) == 1

    def test_checkout_is_tracked(self, toolman, asset):
        toolman.assets.checkout('tool-001', 'user-1')
        toolman.assets.checkout('tool-001', 'user-2')

        samples = toolman.monitor.samples()
        assert [s.operation for s in samples] == ['checkout', 'checkout']
        assert [s.success for s in samples] == [True, False]
        assert samples[1].error_kind == 'CONFLICT'


class TestCheckin:
    """Tests for checkin()."""

    def test_checkin_by_holder(self, assets, store, in_use_asset):
        result = assets.checkin('tool-002', 'user-1')

        assert result
        saved = store.get('assets', 'tool-002')
        assert saved['status'] == AssetStatus.AVAILABLE
        assert saved['current_holder_id'] is None
        [movement] = movements(store, 'tool-002')
        assert movement['action'] == MovementAction.CHECKIN

    def test_checkin_by_non_holder_forbidden(self, assets, store, in_use_asset):
        result = assets.checkin('tool-002', 'user-2')

        assert result.code == 'FORBIDDEN'
        assert result.data['current_holder_id'] == 'user-1'
        saved = store.get('assets', 'tool-002')
        assert saved['status'] == AssetStatus.IN_USE
        assert saved['current_holder_id'] == 'user-1'
        assert movements(store, 'tool-002') == []

    def test_checkin_available_asset_conflicts(self, assets, asset):
        result = assets.checkin('tool-001', 'user-1')

        assert result.code == 'CONFLICT'
        assert 'available' in result.message

    def test_condition_note_sends_to_maintenance(self, assets, store, sink, in_use_asset):
        result = assets.checkin('tool-002', 'user-1', condition_note='Blade chipped')

        assert result.data['status'] == 'maintenance'
        assert store.get('assets', 'tool-002')['status'] == AssetStatus.MAINTENANCE
        [movement] = movements(store, 'tool-002')
        assert movement['condition_note'] == 'Blade chipped'
        assert sink.kinds() == ['asset.maintenance']
        assert sink.sent[0][1]['condition_note'] == 'Blade chipped'

    def test_empty_condition_note_is_ignored(self, assets, store, sink, in_use_asset):
        assets.checkin('tool-002', 'user-1', condition_note='')

        assert store.get('assets', 'tool-002')['status'] == AssetStatus.AVAILABLE
        assert movements(store, 'tool-002')[0]['condition_note'] is None
        assert sink.sent == []

    def test_whitespace_condition_note_sends_to_maintenance(self, assets, store, in_use_asset):
        assets.checkin('tool-002', 'user-1', condition_note='   ')

        assert store.get('assets', 'tool-002')['status'] == AssetStatus.MAINTENANCE
        assert movements(store, 'tool-002')[0]['condition_note'] == '   '

    def test_failing_sink_does_not_fail_checkin(self, store, scheduler, in_use_asset):
        class BrokenSink:
            def notify(self, kind, payload):
                raise ConnectionError("push service down")

        toolman = Toolman(store, BrokenSink(), scheduler, clock=scheduler.now)

        result = toolman.assets.checkin('tool-002', 'user-1', condition_note='Dull')

        assert result
        assert store.get('assets', 'tool-002')['status'] == AssetStatus.MAINTENANCE

    def test_unreachable_rollback_is_queued(self, sink, scheduler):
        class OfflineAfterStatusWrite(FlakyStore):
            def insert(self, table, record):
                if table == 'movements':
                    self.online = False
                return super().insert(table, record)

        store = OfflineAfterStatusWrite()
        make_asset(store, 'tool-002', AssetStatus.IN_USE, holder='user-1')
        toolman = Toolman(store, sink, scheduler, clock=scheduler.now)

        result = toolman.assets.checkin('tool-002', 'user-1')

        assert result.code == 'PERSISTENCE_ERROR'
        assert result.data['retryable'] is True
        assert len(toolman.queue) == 1

        store.online = True
        assert store.get('assets', 'tool-002')['status'] == AssetStatus.AVAILABLE
        report = toolman.queue.drain()

        assert report.success
        saved = store.get('assets', 'tool-002')
        assert saved['status'] == AssetStatus.IN_USE
        assert saved['current_holder_id'] == 'user-1'


class TestAutoDetect:
    """Tests for auto_detect()."""

    def test_available_resolves_to_checkout(self, assets, store, asset):
        result = assets.auto_detect('tool-001', 'user-1')

        assert result
        assert store.get('assets', 'tool-001')['current_holder_id'] == 'user-1'

    def test_own_asset_resolves_to_checkin(self, assets, store, in_use_asset):
        result = assets.auto_detect('tool-002', 'user-1')

        assert result
        assert store.get('assets', 'tool-002')['status'] == AssetStatus.AVAILABLE

    @pytest.mark.parametrize('status,holder,reason', [
        (AssetStatus.IN_USE, 'user-1', 'held_by_other'),
        (AssetStatus.MAINTENANCE, None, 'under_maintenance'),
        (AssetStatus.INACTIVE, None, 'inactive'),
    ])
    def test_other_states_conflict_with_reason(self, assets, store, status, holder, reason):
        make_asset(store, 'tool-009', status, holder=holder)

        result = assets.auto_detect('tool-009', 'user-2')

        assert result.code == 'CONFLICT'
        assert result.data['reason'] == reason
        assert 'user-2' in result.message
        assert movements(store, 'tool-009') == []

    def test_unknown_asset(self, assets):
        assert assets.auto_detect('missing', 'user-1').code == 'NOT_FOUND'


class TestAssetQueries:
    """Tests for history, current movement and summary."""

    def test_history_newest_first(self, assets, scheduler, asset):
        assets.checkout('tool-001', 'user-1')
        scheduler.advance(timedelta(hours=2))
        assets.checkin('tool-001', 'user-1')

        history = assets.history('tool-001')

        assert [m['action'] for m in history] == ['checkin', 'checkout']

    def test_current_movement_ties_break_by_insertion(self, assets, asset):
        assets.checkout('tool-001', 'user-1')
        assets.checkin('tool-001', 'user-1')

        current = assets.current_movement('tool-001')

        assert current['action'] == MovementAction.CHECKIN

    def test_current_movement_without_history(self, assets, asset):
        assert assets.current_movement('tool-001') is None

    def test_status_summary(self, assets, store, asset, in_use_asset):
        make_asset(store, 'tool-003', AssetStatus.MAINTENANCE)

        summary = assets.status_summary()

        assert summary == {
            'available': 1,
            'in-use': 1,
            'maintenance': 1,
            'inactive': 0,
            'total': 3,
        }

    def test_status_summary_refreshes_after_transition(self, assets, cache, asset):
        assert assets.status_summary()['available'] == 1
        assert 'assets:summary' in cache

        assets.checkout('tool-001', 'user-1')

        assert 'assets:summary' not in cache
        assert assets.status_summary()['in-use'] == 1
