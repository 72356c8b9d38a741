"""
Tests for Saga and KeyedLock.
"""

import threading

import pytest

from toolman.exceptions import ToolmanError
from toolman.services import KeyedLock, Saga


class TestSaga:
    """Tests for Saga.run()."""

    def test_runs_steps_in_order(self):
        calls = []
        saga = Saga('test')
        saga.step('a', lambda: calls.append('a') or 1)
        saga.step('b', lambda: calls.append('b') or 2)

        assert saga.run() == {'a': 1, 'b': 2}
        assert calls == ['a', 'b']

    def test_failure_compensates_in_reverse(self):
        undone = []

        def fail():
            raise ToolmanError('PERSISTENCE_ERROR', "disk full")

        saga = (
            Saga('test')
            .step('a', lambda: 'A', undo=undone.append)
            .step('b', lambda: 'B', undo=undone.append)
            .step('c', fail)
        )

        with pytest.raises(ToolmanError) as exc:
            saga.run()

        assert undone == ['B', 'A']
        assert exc.value.code == 'PERSISTENCE_ERROR'
        assert exc.value.data['step'] == 'c'
        assert exc.value.data['compensated'] is True
        assert 'a, b rolled back' in exc.value.message

    def test_first_step_failure_keeps_message(self):
        def busy():
            raise ToolmanError('CONFLICT', "busy")

        saga = Saga('test').step('a', busy)

        with pytest.raises(ToolmanError) as exc:
            saga.run()

        assert exc.value.message == 'busy'

    def test_failed_undo_is_reported(self):
        def broken_undo(_):
            raise ToolmanError('PERSISTENCE_ERROR', "offline")

        def fail():
            raise ToolmanError('PERSISTENCE_ERROR', "offline")

        saga = Saga('test').step('a', lambda: 1, undo=broken_undo).step('b', fail)

        with pytest.raises(ToolmanError) as exc:
            saga.run()

        assert exc.value.data['compensated'] is False
        assert 'incomplete' in exc.value.message

    def test_unexpected_error_compensates_and_propagates(self):
        undone = []
        saga = Saga('test').step('a', lambda: 1, undo=undone.append).step('b', lambda: 1 / 0)

        with pytest.raises(ZeroDivisionError):
            saga.run()

        assert undone == [1]


class TestKeyedLock:
    def test_serializes_same_key(self):
        locks = KeyedLock()
        inside = []
        overlap = []

        def work():
            with locks.hold('tool-001'):
                inside.append(1)
                if len(inside) > 1:
                    overlap.append(1)
                threading.Event().wait(0.01)
                inside.pop()

        threads = [threading.Thread(target=work) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert overlap == []
        assert len(locks) == 0

    def test_reentrant(self):
        locks = KeyedLock()

        with locks.hold('tool-001'):
            with locks.hold('tool-001'):
                assert len(locks) == 1

        assert len(locks) == 0
