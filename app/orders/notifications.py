"""
Outbound notifications for order events.

The webhook processor hands confirmation and failure notices to an
OrderNotifier and never waits on delivery. The default notifier queues
Celery tasks once the surrounding transaction commits, so a rolled back
status change never sends mail.

A dispatch failure (broker down, serialization error) is logged and
swallowed: it must never change the acknowledgement sent to the gateway.
"""

from __future__ import annotations

import logging
from typing import Protocol

from django.db import transaction

logger = logging.getLogger(__name__)


class OrderNotifier(Protocol):
    """Interface the webhook processor depends on."""

    def order_confirmed(self, reference: str) -> None: ...

    def payment_failed(self, reference: str, session_state: str) -> None: ...


class CeleryOrderNotifier:
    """Queue notification tasks on transaction commit."""

    def order_confirmed(self, reference: str) -> None:
        from orders.tasks import send_order_confirmation

        self._enqueue_on_commit(send_order_confirmation, reference)

    def payment_failed(self, reference: str, session_state: str) -> None:
        from orders.tasks import send_payment_failure_notice

        self._enqueue_on_commit(send_payment_failure_notice, reference, session_state)

    @staticmethod
    def _enqueue_on_commit(task, *args) -> None:
        def enqueue() -> None:
            try:
                task.delay(*args)
            except Exception:
                logger.exception(
                    "Failed to queue order notification",
                    extra={"task": task.name, "task_args": list(args)},
                )

        transaction.on_commit(enqueue)


_notifier: OrderNotifier | None = None


def get_notifier() -> OrderNotifier:
    """Return the active notifier (CeleryOrderNotifier unless overridden)."""
    global _notifier
    if _notifier is None:
        _notifier = CeleryOrderNotifier()
    return _notifier


def set_notifier(notifier: OrderNotifier | None) -> None:
    """Replace the active notifier (None restores the default)."""
    global _notifier
    _notifier = notifier


__all__ = [
    "CeleryOrderNotifier",
    "OrderNotifier",
    "get_notifier",
    "set_notifier",
]
