"""
Asset model — one physical, individually tracked tool.
"""

from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from toolman.models.enums import AssetStatus


class Asset(models.Model):
    """
    A tool under checkout control.

    LIFECYCLE:

        AVAILABLE ──checkout()──► IN_USE ──checkin()──► AVAILABLE
                                     │
                                     └──checkin(note)──► MAINTENANCE

    Registration and administrative transitions (maintenance → available,
    inactive) happen outside Toolman. Status is only changed through
    AssetStateMachine.
    """

    id = models.CharField(
        primary_key=True,
        max_length=64,
        verbose_name=_('Identifier'),
        help_text=_('Stable identifier (e.g. tool-001, QR payload)'),
    )
    name = models.CharField(max_length=200, blank=True, default='', verbose_name=_('Name'))

    status = models.CharField(
        max_length=20,
        choices=AssetStatus.choices,
        default=AssetStatus.AVAILABLE,
        db_index=True,
        verbose_name=_('Status'),
    )
    current_holder_id = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        verbose_name=_('Current holder'),
        help_text=_('Set if and only if the asset is in use'),
    )

    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = _('Asset')
        verbose_name_plural = _('Assets')
        ordering = ['id']
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(status=AssetStatus.IN_USE, current_holder_id__isnull=False)
                    | (~Q(status=AssetStatus.IN_USE) & Q(current_holder_id__isnull=True))
                ),
                name='toolman_asset_holder_iff_in_use',
            ),
        ]

    def __str__(self) -> str:
        holder = f" @ {self.current_holder_id}" if self.current_holder_id else ""
        return f"{self.name or self.id} [{self.status}]{holder}"
