"""
Toolman signals.

connectivity_restored:
    Send when the persistence store is reachable again. Connected offline
    queues drain on receipt.

        from toolman.signals import connectivity_restored
        connectivity_restored.send(sender=None)

notification_sent:
    Sent by SignalNotificationSink for every notification.
    Receivers get ``kind`` and ``payload`` keyword arguments.
"""

from django.dispatch import Signal

connectivity_restored = Signal()

notification_sent = Signal()
