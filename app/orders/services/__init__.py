"""
Order services.

This module exports the service classes for order operations:
- OrderStore: Persistence and per-reference serialization
- CheckoutService: Cart validation and Vipps session creation
- PaymentMutationService: Capture, cancel and refund

Usage:
    from orders.services import CheckoutService, PaymentMutationService

    session = CheckoutService.create_checkout_session(cart)
    PaymentMutationService.capture(session.reference)
"""

from orders.services.checkout_service import (
    CartItem,
    CheckoutService,
    CheckoutSession,
    CustomerHints,
    callback_token_for,
    generate_payment_description,
    generate_reference,
    verify_callback_token,
)
from orders.services.order_store import (
    CustomerDetails,
    LineItemDraft,
    OrderDraft,
    OrderStore,
)
from orders.services.payment_mutation_service import (
    CaptureAllResult,
    PaymentMutationService,
)

__all__ = [
    "CaptureAllResult",
    "CartItem",
    "CheckoutService",
    "CheckoutSession",
    "CustomerDetails",
    "CustomerHints",
    "LineItemDraft",
    "OrderDraft",
    "OrderStore",
    "PaymentMutationService",
    "callback_token_for",
    "generate_payment_description",
    "generate_reference",
    "verify_callback_token",
]
