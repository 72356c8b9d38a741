"""
Movement model — Immutable audit trail of checkouts and checkins.
"""

from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from toolman.models.enums import MovementAction


class Movement(models.Model):
    """
    Immutable record of one asset transition.

    Rules:
    - NEVER update() or delete()
    - Exactly one Movement per successful checkout/checkin
    - The current movement of an asset is the latest timestamp,
      ties broken by insertion order (pk)
    """

    asset = models.ForeignKey(
        'toolman.Asset',
        on_delete=models.PROTECT,
        related_name='movements',
        verbose_name=_('Asset'),
    )
    actor_id = models.CharField(max_length=64, verbose_name=_('Actor'))
    action = models.CharField(
        max_length=20,
        choices=MovementAction.choices,
        verbose_name=_('Action'),
    )
    timestamp = models.DateTimeField(default=timezone.now, db_index=True, verbose_name=_('Timestamp'))
    condition_note = models.TextField(null=True, blank=True, verbose_name=_('Condition note'))

    class Meta:
        verbose_name = _('Movement')
        verbose_name_plural = _('Movements')
        ordering = ['timestamp', 'id']
        indexes = [
            models.Index(fields=['asset', 'timestamp'], name='toolman_mov_asset_ts_idx'),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Movements are immutable. Record a new movement instead.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Movements are immutable and cannot be deleted.")

    def __str__(self) -> str:
        return f"{self.action} {self.asset_id} by {self.actor_id} ({self.timestamp:%Y-%m-%d %H:%M})"
