"""
Workers for background order maintenance.

This module contains Celery tasks for periodic order upkeep:
- OrderReaper: Terminates abandoned unpaid orders

Usage:
    from orders.workers import reap_abandoned_orders

    reap_abandoned_orders.delay()
"""

from orders.workers.order_reaper import OrderReaper, reap_abandoned_orders

__all__ = [
    "OrderReaper",
    "reap_abandoned_orders",
]
