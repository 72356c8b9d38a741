"""
Reservation model — exclusive claim on an asset for a time window.
"""

from django.db import models
from django.db.models import F, Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from toolman.models.enums import ReservationStatus
from toolman.windows import overlaps


class Reservation(models.Model):
    """
    Claim on an asset for the half-open window [starts_at, ends_at).

    LIFECYCLE:

    ┌──────────────────────────────────────────────────────────────┐
    │                                                              │
    │  ┌─────────┐ approve() ┌──────────┐  starts_at  ┌────────┐   │
    │  │ PENDING │ ────────► │ APPROVED │ ──────────► │ ACTIVE │   │
    │  └─────────┘           └──────────┘             └────────┘   │
    │       │                     │                       │        │
    │       │ cancel()/expire()   │ complete()/cancel()   │        │
    │       ▼                     ▼ expire()              ▼        │
    │  ┌──────────────────────────────────────────────────────┐    │
    │  │        COMPLETED  |  CANCELLED  |  EXPIRED           │    │
    │  └──────────────────────────────────────────────────────┘    │
    │                                                              │
    └──────────────────────────────────────────────────────────────┘

    Only APPROVED and ACTIVE reservations claim the window; on one asset
    those never overlap.
    """

    id = models.CharField(primary_key=True, max_length=40)
    asset = models.ForeignKey(
        'toolman.Asset',
        on_delete=models.PROTECT,
        related_name='reservations',
        verbose_name=_('Asset'),
    )
    holder_id = models.CharField(max_length=64, verbose_name=_('Holder'))
    holder_name = models.CharField(max_length=200, blank=True, default='', verbose_name=_('Holder name'))

    starts_at = models.DateTimeField(db_index=True, verbose_name=_('From'))
    ends_at = models.DateTimeField(db_index=True, verbose_name=_('Until'))
    priority = models.PositiveSmallIntegerField(default=1, verbose_name=_('Priority'))

    status = models.CharField(
        max_length=20,
        choices=ReservationStatus.choices,
        default=ReservationStatus.PENDING,
        db_index=True,
        verbose_name=_('Status'),
    )
    auto_extend = models.BooleanField(
        default=False,
        verbose_name=_('Auto-extend'),
        help_text=_('Extend by one hour on expiry when nothing conflicts'),
    )
    notes = models.TextField(blank=True, default='')

    approved_by = models.CharField(max_length=64, null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)
    resolved_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text=_('When the reservation reached a terminal status'),
    )
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        verbose_name = _('Reservation')
        verbose_name_plural = _('Reservations')
        ordering = ['starts_at']
        constraints = [
            models.CheckConstraint(
                condition=Q(ends_at__gt=F('starts_at')),
                name='toolman_reservation_window_not_empty',
            ),
        ]
        indexes = [
            models.Index(fields=['asset', 'status'], name='toolman_res_asset_status_idx'),
            models.Index(fields=['status', 'ends_at'], name='toolman_res_status_ends_idx'),
        ]

    @property
    def is_terminal(self) -> bool:
        return self.status in ReservationStatus.terminal()

    def overlaps(self, starts_at, ends_at) -> bool:
        """Does [starts_at, ends_at) intersect this reservation's window?"""
        return overlaps(self.starts_at, self.ends_at, starts_at, ends_at)

    def __str__(self) -> str:
        return f"{self.asset_id} {self.holder_name or self.holder_id} [{self.starts_at} → {self.ends_at}) {self.status}"
