"""
Order domain models.

This module contains all order-related models:
- Order: Aggregate root of a purchase attempt, one row per reference
- OrderLineItem: Immutable snapshot of a cart line
"""

from orders.models.order import (
    PLACEHOLDER_EMAIL,
    PLACEHOLDER_NAME,
    PLACEHOLDER_NAMES,
    Order,
    OrderLineItem,
)

__all__ = [
    "Order",
    "OrderLineItem",
    "PLACEHOLDER_EMAIL",
    "PLACEHOLDER_NAME",
    "PLACEHOLDER_NAMES",
]
