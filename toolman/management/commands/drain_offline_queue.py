"""
Management command to replay the offline sync queue.

Usage:
    python manage.py drain_offline_queue
    python manage.py drain_offline_queue --dry-run
"""

from django.core.management.base import BaseCommand

from toolman import Toolman


class Command(BaseCommand):
    """Drain offline queue command."""

    help = 'Replays operations queued while the store was unreachable'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List queued operations without applying them'
        )

    def handle(self, *args, **options):
        toolman = Toolman.from_settings()
        queue = toolman.queue
        queue.load()

        if options['dry_run']:
            for op in queue.pending():
                self.stdout.write(
                    f'{op.enqueued_at.isoformat()} {op.kind} {op.target} '
                    f'{op.payload.get("id", "-")} (attempts: {op.attempts})'
                )
            self.stdout.write(f'{len(queue)} operation(s) pending')
            return

        report = queue.drain()
        summary = (
            f'{len(report.applied)} applied, {len(report.dropped)} dropped, '
            f'{report.remaining} remaining'
        )
        if report.success:
            self.stdout.write(self.style.SUCCESS(summary))
        else:
            self.stdout.write(self.style.WARNING(summary))
