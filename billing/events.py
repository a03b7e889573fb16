"""
Committed-change notifications.

Receivers get ``sender`` (the model class), ``instance`` and ``action``.
Events are dispatched from ``transaction.on_commit`` so a receiver never sees
a change that was later rolled back; consumers decide whether to refetch or
apply the change directly.

    invoice_changed        created | items_replaced | paid | overdue
    edit_request_changed   submitted | approved | rejected
"""

import logging
from typing import Any

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)

invoice_changed = Signal()
edit_request_changed = Signal()


def emit_on_commit(signal: Signal, sender: Any, instance: Any, action: str, **extra: Any) -> None:
    def _send():
        responses = signal.send_robust(sender=sender, instance=instance, action=action, **extra)
        for receiver, response in responses:
            if isinstance(response, Exception):
                logger.error(
                    "Receiver %r failed for %s %s %s: %s",
                    receiver, sender.__name__, instance.pk, action, response,
                )

    transaction.on_commit(_send)
