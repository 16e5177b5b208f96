"""
Order reaper for abandoned checkouts.

An order that never leaves PENDING or PAYMENT_PENDING is a checkout the
customer walked away from. The reaper terminates such orders once they
are older than a threshold.

Tasks:
- reap_abandoned_orders: Periodic task (celery-beat, every 30 minutes)

Usage:
    from orders.workers import OrderReaper

    summary = OrderReaper.sweep(max_age_minutes=1440)
    # {"terminated": 4, "errors": 0, "total": 4}

    reap_abandoned_orders.delay()
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from core.services import BaseService
from orders.services import OrderStore
from orders.state_machines import UNPAID_STATUSES

if TYPE_CHECKING:
    from datetime import datetime


# =============================================================================
# Constants
# =============================================================================

# Maximum orders to terminate per sweep
BATCH_SIZE = 500


class OrderReaper(BaseService):
    """
    Terminates unpaid orders older than a threshold.

    Each order is re-checked under its own lock before it is terminated,
    so a callback that confirms payment while the sweep runs always wins.
    The lock is taken without waiting: an order busy elsewhere is counted
    as an error and picked up by the next sweep.
    """

    @classmethod
    def _cutoff(cls, max_age_minutes: int) -> datetime:
        return timezone.now() - timedelta(minutes=max_age_minutes)

    @classmethod
    def sweep(cls, max_age_minutes: int | None = None) -> dict[str, int]:
        """
        Terminate abandoned orders.

        Args:
            max_age_minutes: Age threshold; defaults to
                ORDERS_ABANDONED_MAX_AGE_MINUTES

        Returns:
            {"terminated": int, "errors": int, "total": int}
        """
        logger = cls.get_logger()
        if max_age_minutes is None:
            max_age_minutes = settings.ORDERS_ABANDONED_MAX_AGE_MINUTES

        cutoff = cls._cutoff(max_age_minutes)
        references = OrderStore.stale_unpaid_references(cutoff, limit=BATCH_SIZE)

        logger.info(
            "Starting abandoned order sweep",
            extra={"max_age_minutes": max_age_minutes, "candidates": len(references)},
        )

        terminated = 0
        errors = 0
        for reference in references:
            try:
                if cls._terminate_if_abandoned(reference, cutoff):
                    terminated += 1
            except Exception as e:
                errors += 1
                logger.error(
                    f"Failed to terminate abandoned order: {e}",
                    extra={"reference": reference},
                )

        logger.info(
            f"Abandoned order sweep complete: terminated {terminated} orders",
            extra={"terminated": terminated, "errors": errors, "total": len(references)},
        )
        return {"terminated": terminated, "errors": errors, "total": len(references)}

    @classmethod
    def _terminate_if_abandoned(cls, reference: str, cutoff: datetime) -> bool:
        with OrderStore.locked(reference, blocking=False) as order:
            # Re-check under lock; a callback may have confirmed it meanwhile
            if order.status not in UNPAID_STATUSES or order.created_at >= cutoff:
                cls.get_logger().info(
                    "Order no longer abandoned, skipping",
                    extra={"reference": reference, "status": order.status},
                )
                return False
            OrderStore.transition(order, "terminate")
        return True

    @classmethod
    def abandoned_stats(cls, max_age_minutes: int | None = None) -> dict[str, int]:
        """
        Count unpaid orders split by the age threshold.

        Returns:
            {"total_pending": int, "abandoned": int, "recent": int}
        """
        if max_age_minutes is None:
            max_age_minutes = settings.ORDERS_ABANDONED_MAX_AGE_MINUTES
        return OrderStore.unpaid_age_counts(cls._cutoff(max_age_minutes))


# =============================================================================
# Periodic Task
# =============================================================================


@shared_task(bind=True)
def reap_abandoned_orders(self, max_age_minutes: int | None = None) -> dict:
    """
    Terminate abandoned orders (celery-beat entry point).

    Idempotent: terminated orders are no longer candidates, so
    overlapping runs never double-process an order.
    """
    return OrderReaper.sweep(max_age_minutes)


__all__ = [
    "BATCH_SIZE",
    "OrderReaper",
    "reap_abandoned_orders",
]
