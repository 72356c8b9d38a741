"""
Tests for window arithmetic: overlap, conflicts and hourly slots.
"""

import types
from datetime import timedelta

import pytest

from toolman.windows import AvailabilitySlot, find_conflicts, hourly_slots, overlaps


def reservation(rid, start, end, holder='user-1', holder_name=''):
    return {'id': rid, 'starts_at': start, 'ends_at': end, 'holder_id': holder, 'holder_name': holder_name}


class TestOverlaps:
    """Half-open interval test."""

    @pytest.mark.parametrize('b,expected', [
        ((11, 13), True),    # straddles the end
        ((9, 11), True),     # straddles the start
        ((10, 12), True),    # identical
        ((10, 11), True),    # inside
        ((9, 13), True),     # contains
        ((12, 13), False),   # starts exactly at the end
        ((8, 10), False),    # ends exactly at the start
        ((13, 14), False),
    ])
    def test_against_ten_to_noon(self, at, b, expected):
        assert overlaps(at(10), at(12), at(b[0]), at(b[1])) is expected

    def test_symmetric(self, at):
        assert overlaps(at(10), at(12), at(11), at(13)) == overlaps(at(11), at(13), at(10), at(12))


class TestFindConflicts:
    def test_sorted_earliest_first(self, at):
        existing = [
            reservation('late', at(11), at(12)),
            reservation('early', at(9), at(10, 30)),
            reservation('clear', at(12), at(13)),
        ]

        conflicts = find_conflicts(existing, at(10), at(12))

        assert [r['id'] for r in conflicts] == ['early', 'late']

    def test_exclude_self(self, at):
        existing = [reservation('self', at(10), at(12))]

        assert find_conflicts(existing, at(10), at(14), exclude_id='self') == []


class TestHourlySlots:
    def test_is_a_generator(self, at):
        assert isinstance(hourly_slots([], at(9), at(12)), types.GeneratorType)

    def test_flags_and_names(self, at):
        existing = [reservation('r1', at(10), at(11, 30), holder='user-7', holder_name='Bia')]

        slots = list(hourly_slots(existing, at(9), at(12)))

        assert slots == [
            AvailabilitySlot(at(9), at(10), True, None),
            AvailabilitySlot(at(10), at(11), False, 'Bia'),
            AvailabilitySlot(at(11), at(12), False, 'Bia'),
        ]

    def test_holder_id_when_nameless(self, at):
        existing = [reservation('r1', at(10), at(11), holder='user-7')]

        [slot] = hourly_slots(existing, at(10), at(11))

        assert slot.reserved_by == 'user-7'

    def test_last_slot_clipped(self, at):
        slots = list(hourly_slots([], at(9), at(10, 45)))

        assert [(s.start, s.end) for s in slots] == [(at(9), at(10)), (at(10), at(10, 45))]

    def test_empty_range(self, at):
        assert list(hourly_slots([], at(10), at(10))) == []

    def test_custom_step(self, at):
        slots = list(hourly_slots([], at(9), at(10), step=timedelta(minutes=15)))

        assert len(slots) == 4
