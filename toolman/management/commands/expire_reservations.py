"""
Management command to resolve reservations whose timers were lost.

Expires (or auto-extends) reservations past their end and activates
approved reservations whose window has opened.

Usage:
    python manage.py expire_reservations
    python manage.py expire_reservations --dry-run
"""

from django.core.management.base import BaseCommand

from toolman import Toolman


class Command(BaseCommand):
    """Expire overdue reservations command."""

    help = 'Expires overdue reservations and activates started ones'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be expired without changing anything'
        )

    def handle(self, *args, **options):
        toolman = Toolman.from_settings()
        try:
            if options['dry_run']:
                overdue = toolman.reservations.overdue()
                self.stdout.write(f'{len(overdue)} reservation(s) would be expired or extended')
                return

            # Expiries that cannot be written are queued behind what is already saved.
            toolman.queue.load()
            counts = toolman.reservations.sweep_overdue()
        finally:
            toolman.shutdown()

        self.stdout.write(
            self.style.SUCCESS(
                f"{counts['expired']} expired, {counts['extended']} extended, "
                f"{counts['activated']} activated"
            )
        )
