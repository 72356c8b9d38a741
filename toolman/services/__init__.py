"""
Toolman services — asset lifecycle, reservations and their support layers.

    from toolman.services import AssetStateMachine, ReservationCoordinator
"""

from toolman.services.assets import AssetStateMachine
from toolman.services.cache import TTLCache
from toolman.services.locks import KeyedLock
from toolman.services.performance import PerformanceMonitor, tracked
from toolman.services.reservations import ReservationCoordinator, ReservationRequest
from toolman.services.saga import Saga
from toolman.services.sync import DrainReport, OfflineSyncQueue, QueuedOperation

__all__ = [
    'AssetStateMachine',
    'ReservationCoordinator',
    'ReservationRequest',
    'OfflineSyncQueue',
    'QueuedOperation',
    'DrainReport',
    'TTLCache',
    'PerformanceMonitor',
    'tracked',
    'KeyedLock',
    'Saga',
]
