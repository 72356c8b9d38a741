"""
Django Toolman — asset checkout and reservation coordinator.

Usage:
    from toolman import Toolman

    toolman = Toolman.from_settings()
    toolman.start()
    toolman.assets.checkout('tool-001', 'user-1')
    toolman.reservations.quick_reserve('tool-002', 'user-1', holder_name='Ana')
"""


def __getattr__(name):
    """Lazy import to avoid circular imports during app loading."""
    if name == 'Toolman':
        from toolman.service import Toolman
        return Toolman
    elif name == 'ToolmanError':
        from toolman.exceptions import ToolmanError
        return ToolmanError
    elif name == 'Result':
        from toolman.results import Result
        return Result
    elif name == 'ReservationRequest':
        from toolman.services.reservations import ReservationRequest
        return ReservationRequest
    elif name == 'Asset':
        from toolman.models.asset import Asset
        return Asset
    elif name == 'Movement':
        from toolman.models.movement import Movement
        return Movement
    elif name == 'Reservation':
        from toolman.models.reservation import Reservation
        return Reservation
    elif name == 'AssetStatus':
        from toolman.models.enums import AssetStatus
        return AssetStatus
    elif name == 'ReservationStatus':
        from toolman.models.enums import ReservationStatus
        return ReservationStatus
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    'Toolman',
    'ToolmanError',
    'Result',
    'ReservationRequest',
    'Asset',
    'Movement',
    'Reservation',
    'AssetStatus',
    'ReservationStatus',
]

__version__ = '0.1.0'
