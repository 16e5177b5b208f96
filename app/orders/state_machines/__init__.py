"""
State machine enums and helpers for order models.

This module defines the state enums used by the Order model with django-fsm
and the gateway's own state vocabularies.
"""

from orders.state_machines.states import (
    ORDER_TRANSITIONS,
    REVENUE_STATUSES,
    TERMINAL_STATUSES,
    UNPAID_STATUSES,
    GatewayPaymentState,
    GatewaySessionState,
    OrderStatus,
)

__all__ = [
    "ORDER_TRANSITIONS",
    "GatewayPaymentState",
    "GatewaySessionState",
    "OrderStatus",
    "REVENUE_STATUSES",
    "TERMINAL_STATUSES",
    "UNPAID_STATUSES",
]
