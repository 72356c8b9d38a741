"""
Reservation windows — isolated, testable, reusable.

A window is the half-open interval [starts_at, ends_at). Two windows conflict
only when they share an instant, so a reservation ending at 12:00 and another
starting at 12:00 do not conflict.

Examples:
    [10:00, 12:00) vs [11:00, 13:00) -> overlap
    [10:00, 12:00) vs [12:00, 13:00) -> no overlap
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Iterator


@dataclass(frozen=True)
class AvailabilitySlot:
    """One calendar slot for an asset."""

    start: datetime
    end: datetime
    available: bool
    reserved_by: str | None = None


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval intersection test."""
    return a_start < b_end and b_start < a_end


def find_conflicts(reservations: Iterable[dict], starts_at: datetime, ends_at: datetime,
                   exclude_id: str | None = None) -> list[dict]:
    """
    Reservation records whose window intersects [starts_at, ends_at).

    Args:
        reservations: Records with starts_at/ends_at (already filtered by
            asset and blocking status)
        exclude_id: Reservation to ignore (used by approve/extend)

    Returns:
        Conflicting records, earliest first
    """
    conflicts = [
        r for r in reservations
        if r['id'] != exclude_id
        and overlaps(r['starts_at'], r['ends_at'], starts_at, ends_at)
    ]
    return sorted(conflicts, key=lambda r: r['starts_at'])


def hourly_slots(reservations: Iterable[dict], start: datetime, end: datetime,
                 step: timedelta = timedelta(hours=1)) -> Iterator[AvailabilitySlot]:
    """
    Yield consecutive slots covering [start, end).

    The last slot is clipped to end. A slot is unavailable when any of the
    given reservations overlaps it; reserved_by names the earliest one.
    """
    reservations = list(reservations)
    current = start
    while current < end:
        slot_end = min(current + step, end)
        blocking = find_conflicts(reservations, current, slot_end)
        yield AvailabilitySlot(
            start=current,
            end=slot_end,
            available=not blocking,
            reserved_by=(blocking[0].get('holder_name') or blocking[0]['holder_id']) if blocking else None,
        )
        current = slot_end
