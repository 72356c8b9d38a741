"""
Initial migration for Toolman models.
"""

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):
    """Create Toolman models: Asset, Movement, Reservation."""

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Asset',
            fields=[
                ('id', models.CharField(help_text='Stable identifier (e.g. tool-001, QR payload)', max_length=64, primary_key=True, serialize=False, verbose_name='Identifier')),
                ('name', models.CharField(blank=True, default='', max_length=200, verbose_name='Name')),
                ('status', models.CharField(choices=[('available', 'Available'), ('in-use', 'In use'), ('maintenance', 'Maintenance'), ('inactive', 'Inactive')], db_index=True, default='available', max_length=20, verbose_name='Status')),
                ('current_holder_id', models.CharField(blank=True, help_text='Set if and only if the asset is in use', max_length=64, null=True, verbose_name='Current holder')),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                'verbose_name': 'Asset',
                'verbose_name_plural': 'Assets',
                'ordering': ['id'],
                'constraints': [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(('current_holder_id__isnull', False), ('status', 'in-use')),
                            models.Q(models.Q(('status', 'in-use'), _negated=True), ('current_holder_id__isnull', True)),
                            _connector='OR',
                        ),
                        name='toolman_asset_holder_iff_in_use',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='Movement',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('actor_id', models.CharField(max_length=64, verbose_name='Actor')),
                ('action', models.CharField(choices=[('checkout', 'Checkout'), ('checkin', 'Checkin')], max_length=20, verbose_name='Action')),
                ('timestamp', models.DateTimeField(db_index=True, default=django.utils.timezone.now, verbose_name='Timestamp')),
                ('condition_note', models.TextField(blank=True, null=True, verbose_name='Condition note')),
                ('asset', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='toolman.asset', verbose_name='Asset')),
            ],
            options={
                'verbose_name': 'Movement',
                'verbose_name_plural': 'Movements',
                'ordering': ['timestamp', 'id'],
                'indexes': [models.Index(fields=['asset', 'timestamp'], name='toolman_mov_asset_ts_idx')],
            },
        ),
        migrations.CreateModel(
            name='Reservation',
            fields=[
                ('id', models.CharField(max_length=40, primary_key=True, serialize=False)),
                ('holder_id', models.CharField(max_length=64, verbose_name='Holder')),
                ('holder_name', models.CharField(blank=True, default='', max_length=200, verbose_name='Holder name')),
                ('starts_at', models.DateTimeField(db_index=True, verbose_name='From')),
                ('ends_at', models.DateTimeField(db_index=True, verbose_name='Until')),
                ('priority', models.PositiveSmallIntegerField(default=1, verbose_name='Priority')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('active', 'Active'), ('completed', 'Completed'), ('cancelled', 'Cancelled'), ('expired', 'Expired')], db_index=True, default='pending', max_length=20, verbose_name='Status')),
                ('auto_extend', models.BooleanField(default=False, help_text='Extend by one hour on expiry when nothing conflicts', verbose_name='Auto-extend')),
                ('notes', models.TextField(blank=True, default='')),
                ('approved_by', models.CharField(blank=True, max_length=64, null=True)),
                ('approved_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('resolved_at', models.DateTimeField(blank=True, help_text='When the reservation reached a terminal status', null=True)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('asset', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='reservations', to='toolman.asset', verbose_name='Asset')),
            ],
            options={
                'verbose_name': 'Reservation',
                'verbose_name_plural': 'Reservations',
                'ordering': ['starts_at'],
                'indexes': [
                    models.Index(fields=['asset', 'status'], name='toolman_res_asset_status_idx'),
                    models.Index(fields=['status', 'ends_at'], name='toolman_res_status_ends_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(
                        condition=models.Q(('ends_at__gt', models.F('starts_at'))),
                        name='toolman_reservation_window_not_empty',
                    ),
                ],
            },
        ),
    ]
