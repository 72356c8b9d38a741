"""
Enums for Toolman models.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class AssetStatus(models.TextChoices):
    """
    Physical state of a tracked asset.

    AVAILABLE:   On the shelf, can be checked out.
    IN_USE:      Checked out; current_holder_id is always set.
    MAINTENANCE: Returned with a condition note, awaiting repair.
    INACTIVE:    Retired from circulation.
    """
    AVAILABLE = 'available', _('Available')
    IN_USE = 'in-use', _('In use')
    MAINTENANCE = 'maintenance', _('Maintenance')
    INACTIVE = 'inactive', _('Inactive')


class MovementAction(models.TextChoices):
    """Kind of audited asset movement."""
    CHECKOUT = 'checkout', _('Checkout')
    CHECKIN = 'checkin', _('Checkin')


class ReservationStatus(models.TextChoices):
    """Reservation lifecycle status."""
    PENDING = 'pending', _('Pending')         # Submitted, awaiting approval
    APPROVED = 'approved', _('Approved')      # Window is claimed
    ACTIVE = 'active', _('Active')            # now ∈ window
    COMPLETED = 'completed', _('Completed')   # Returned before the end
    CANCELLED = 'cancelled', _('Cancelled')
    EXPIRED = 'expired', _('Expired')

    @classmethod
    def blocking(cls) -> list['ReservationStatus']:
        """Statuses that claim the window against other reservations."""
        return [cls.APPROVED, cls.ACTIVE]

    @classmethod
    def terminal(cls) -> list['ReservationStatus']:
        return [cls.COMPLETED, cls.CANCELLED, cls.EXPIRED]


class OperationKind(models.TextChoices):
    """Mutation kind carried by the offline sync queue."""
    CREATE = 'create', _('Create')
    UPDATE = 'update', _('Update')
    DELETE = 'delete', _('Delete')


# Allowed reservation transitions (source -> targets)
RESERVATION_TRANSITIONS = {
    ReservationStatus.PENDING: {
        ReservationStatus.APPROVED,
        ReservationStatus.CANCELLED,
        ReservationStatus.EXPIRED,
    },
    ReservationStatus.APPROVED: {
        ReservationStatus.ACTIVE,
        ReservationStatus.COMPLETED,
        ReservationStatus.CANCELLED,
        ReservationStatus.EXPIRED,
    },
    ReservationStatus.ACTIVE: {
        ReservationStatus.COMPLETED,
        ReservationStatus.CANCELLED,
        ReservationStatus.EXPIRED,
    },
    ReservationStatus.COMPLETED: set(),
    ReservationStatus.CANCELLED: set(),
    ReservationStatus.EXPIRED: set(),
}
