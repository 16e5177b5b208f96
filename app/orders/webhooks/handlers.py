"""
Callback handlers for Vipps Checkout session events.

This module provides a handler registry keyed on the session state carried
by a Vipps callback, and the handlers that move orders along the graph.

Handlers never trust the callback body beyond its reference: the outcome of
a payment is always re-read from Vipps before the order is touched.

Usage:
    from orders.webhooks.handlers import CallbackEvent, dispatch_callback

    event = CallbackEvent.from_payload(request_json)
    result = dispatch_callback(event)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from django.conf import settings

from core.exceptions import BaseApplicationError
from core.services import ServiceResult
from orders.exceptions import GatewayError
from orders.notifications import get_notifier
from orders.services import CheckoutService, CustomerDetails, OrderDraft, OrderStore
from orders.state_machines import GatewayPaymentState, GatewaySessionState, OrderStatus

if TYPE_CHECKING:
    from typing import Any

    from orders.adapters import SessionStatus
    from orders.models import Order


logger = logging.getLogger(__name__)


# Gateway payment state inside a successful session -> (target status, transition)
SUCCESSFUL_PAYMENT_TARGETS: dict[str, tuple[str, str]] = {
    GatewayPaymentState.CAPTURED: (OrderStatus.PAID, "mark_paid"),
    GatewayPaymentState.AUTHORIZED: (OrderStatus.RESERVED, "reserve"),
    GatewayPaymentState.RESERVED: (OrderStatus.RESERVED, "reserve"),
}


@dataclass
class CallbackEvent:
    """
    A parsed Vipps callback.

    Attributes:
        reference: Order reference the callback is about
        session_state: Vipps session state (PaymentSuccessful, ...)
        session_id: Vipps session id, if sent
        payment_method: WALLET, CARD, ... if sent
        payload: The raw callback body
    """

    reference: str
    session_state: str
    session_id: str | None = None
    payment_method: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> CallbackEvent | None:
        """Build an event from a decoded body, or None if it is unusable."""
        if not isinstance(payload, dict):
            return None
        reference = payload.get("reference")
        session_state = payload.get("sessionState")
        if not reference or not session_state:
            return None
        return cls(
            reference=str(reference),
            session_state=str(session_state),
            session_id=payload.get("sessionId"),
            payment_method=payload.get("paymentMethod"),
            payload=payload,
        )


# =============================================================================
# Handler Registry
# =============================================================================


# Maps session states to handler functions
CALLBACK_HANDLERS: dict[str, Callable[[CallbackEvent], ServiceResult]] = {}


def register_handler(session_state: str) -> Callable:
    """
    Decorator to register a callback handler for a session state.

    Usage:
        @register_handler("PaymentSuccessful")
        def handle_payment_successful(event: CallbackEvent) -> ServiceResult:
            ...
    """

    def decorator(func: Callable[[CallbackEvent], ServiceResult]) -> Callable:
        CALLBACK_HANDLERS[session_state] = func
        logger.debug(f"Registered callback handler for {session_state}")
        return func

    return decorator


def dispatch_callback(event: CallbackEvent) -> ServiceResult:
    """
    Dispatch a callback to the handler for its session state.

    Unknown session states are logged and acknowledged. Domain errors
    raised by a handler are logged and returned as a failed result; the
    order is left as it was.
    """
    handler = CALLBACK_HANDLERS.get(event.session_state)

    if not handler:
        logger.info(
            f"No handler registered for session state: {event.session_state}",
            extra={"reference": event.reference},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {event.session_state} callback to handler",
        extra={"reference": event.reference},
    )

    try:
        return handler(event)
    except BaseApplicationError as e:
        logger.warning(
            f"Callback not applied: {e.message}",
            extra={
                "reference": event.reference,
                "session_state": event.session_state,
                "error_code": e.error_code,
            },
        )
        return ServiceResult.from_exception(e)


# =============================================================================
# Payment Successful
# =============================================================================


def _split_amount(amount: int) -> tuple[int, int]:
    """Split a gateway amount into (items_total, shipping_price)."""
    shipping = min(settings.ORDERS_SHIPPING_PRICE_ORE, amount)
    return amount - shipping, shipping


def _notify(event: str, reference: str, *args: Any) -> None:
    """Hand an order event to the notifier; a failure is logged and dropped."""
    try:
        getattr(get_notifier(), event)(reference, *args)
    except Exception:
        logger.exception(
            "Order notification failed",
            extra={"reference": reference, "event": event},
        )


def _create_order_from_session(status: SessionStatus) -> Order:
    """Create the missing local order for a payment Vipps says succeeded."""
    amount = status.amount or 0
    items_total, shipping_price = _split_amount(amount)
    order, created = OrderStore.create_if_absent(
        OrderDraft(
            reference=status.reference,
            items_total=items_total,
            shipping_price=shipping_price,
            currency=status.currency or settings.ORDERS_CURRENCY,
        )
    )
    if created:
        logger.warning(
            "Created order from callback, no local checkout record",
            extra={"reference": status.reference, "amount": amount},
        )
    return order


@register_handler(GatewaySessionState.PAYMENT_SUCCESSFUL)
def handle_payment_successful(event: CallbackEvent) -> ServiceResult:
    """
    Confirm a paid or reserved order.

    Re-reads the session from Vipps, then under the per-reference lock
    creates the order if needed, records customer details once, and moves
    the order to PAID or RESERVED. A replay for an order already in the
    target status changes nothing and sends nothing.
    """
    reference = event.reference

    try:
        status = CheckoutService.get_session_status(reference)
    except GatewayError as e:
        logger.error(
            "Could not fetch session status for callback",
            extra={
                "reference": reference,
                "error_code": e.error_code,
                "is_retryable": e.is_retryable,
            },
        )
        return ServiceResult.from_exception(e)

    payment_state = status.payment_state
    target = SUCCESSFUL_PAYMENT_TARGETS.get(payment_state or "")
    if target is None:
        logger.warning(
            "Successful session without a successful payment state",
            extra={"reference": reference, "payment_state": payment_state},
        )
        return ServiceResult.failure(
            f"Payment state {payment_state} does not confirm the order",
            error_code="UNEXPECTED_PAYMENT_STATE",
        )

    target_status, transition_name = target
    customer = CustomerDetails.from_session_status(status)
    transitioned = False

    with OrderStore.locked(reference, must_exist=False) as order:
        if order is None:
            order = _create_order_from_session(status)

        OrderStore.record_session(order, status.session_id or event.session_id)
        OrderStore.record_gateway_state(
            order, payment_state, status.payment_method or event.payment_method
        )
        if customer is not None:
            OrderStore.apply_customer_details(order, customer)

        if order.status != target_status:
            OrderStore.transition(order, transition_name)
            transitioned = True

    if transitioned:
        _notify("order_confirmed", reference)
    else:
        logger.info(
            "Order already confirmed, callback ignored",
            extra={"reference": reference, "status": order.status},
        )

    return ServiceResult.success(
        {
            "reference": reference,
            "status": order.status,
            "transitioned": transitioned,
        }
    )


# =============================================================================
# Payment Failed
# =============================================================================


@register_handler(GatewaySessionState.PAYMENT_TERMINATED)
@register_handler(GatewaySessionState.PAYMENT_INITIATION_FAILED)
def handle_payment_failed(event: CallbackEvent) -> ServiceResult:
    """
    Cancel an order whose payment was aborted or never started.

    Unknown references and orders already CANCELLED are no-ops. An order
    that has moved past payment (e.g. PAID) rejects the cancel and keeps
    its status.
    """
    reference = event.reference

    with OrderStore.locked(reference, must_exist=False) as order:
        if order is None:
            logger.info(
                "Payment failure callback for unknown order",
                extra={"reference": reference, "session_state": event.session_state},
            )
            return ServiceResult.success(None)

        if order.status == OrderStatus.CANCELLED:
            return ServiceResult.success(
                {"reference": reference, "status": order.status, "transitioned": False}
            )

        OrderStore.transition(order, "cancel")

    _notify("payment_failed", reference, event.session_state)

    return ServiceResult.success(
        {"reference": reference, "status": order.status, "transitioned": True}
    )


# =============================================================================
# Informational States
# =============================================================================


@register_handler(GatewaySessionState.SESSION_CREATED)
@register_handler(GatewaySessionState.PAYMENT_INITIATED)
@register_handler(GatewaySessionState.SESSION_EXPIRED)
def handle_informational_state(event: CallbackEvent) -> ServiceResult:
    """Log session states that never change the order."""
    logger.info(
        "Session state noted",
        extra={"reference": event.reference, "session_state": event.session_state},
    )
    return ServiceResult.success(None)


__all__ = [
    "CALLBACK_HANDLERS",
    "CallbackEvent",
    "SUCCESSFUL_PAYMENT_TARGETS",
    "dispatch_callback",
    "handle_informational_state",
    "handle_payment_failed",
    "handle_payment_successful",
    "register_handler",
]
