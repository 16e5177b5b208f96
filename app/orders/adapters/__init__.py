"""
Gateway adapters for external services.

This module provides the adapter for the Vipps payment gateway.
All Vipps API calls should go through it to ensure consistent error
handling, timeouts, idempotency, and observability.

Usage:
    from orders.adapters import VippsAdapter

    adapter = VippsAdapter()
    status = adapter.get_session_status("MF-1700000000-AB12CD")
"""

from orders.adapters.access_token import AccessTokenProvider
from orders.adapters.vipps_adapter import (
    PAYMENT_VARIANTS,
    CancelledPayment,
    CapturedPayment,
    CheckoutSessionResult,
    ContactDetails,
    CreateSessionParams,
    IdempotencyKeyGenerator,
    InitiatedPayment,
    OrderLine,
    PartiallyRefundedPayment,
    PaymentAggregate,
    PaymentDetails,
    RefundedPayment,
    ReservedPayment,
    SessionStatus,
    TerminatedPayment,
    UserDetails,
    VippsAdapter,
    effective_payment_state,
    parse_payment_details,
)

__all__ = [
    "AccessTokenProvider",
    "CancelledPayment",
    "CapturedPayment",
    "CheckoutSessionResult",
    "ContactDetails",
    "CreateSessionParams",
    "IdempotencyKeyGenerator",
    "InitiatedPayment",
    "OrderLine",
    "PAYMENT_VARIANTS",
    "PartiallyRefundedPayment",
    "PaymentAggregate",
    "PaymentDetails",
    "RefundedPayment",
    "ReservedPayment",
    "SessionStatus",
    "TerminatedPayment",
    "UserDetails",
    "VippsAdapter",
    "effective_payment_state",
    "parse_payment_details",
]
