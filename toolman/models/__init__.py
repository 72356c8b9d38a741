"""
Toolman Models.

Core models for asset tracking:
- Asset: A physical tool and its checkout state
- Movement: Immutable audit trail of checkouts/checkins
- Reservation: Exclusive claim on an asset for a time window
"""

from toolman.models.asset import Asset
from toolman.models.enums import (
    AssetStatus,
    MovementAction,
    OperationKind,
    ReservationStatus,
)
from toolman.models.movement import Movement
from toolman.models.reservation import Reservation

__all__ = [
    'AssetStatus',
    'MovementAction',
    'OperationKind',
    'ReservationStatus',
    'Asset',
    'Movement',
    'Reservation',
]
