"""
Administrator payment mutations: capture, cancel and refund.

This module provides the PaymentMutationService class. Every mutation
checks the gateway's *current* payment state before calling a mutating
endpoint, which makes each operation safe to retry after a timeout:

    capture -> requires gateway RESERVED
    cancel  -> requires gateway RESERVED
    refund  -> requires gateway CAPTURED

A failed precondition raises InvalidPaymentStateError before any mutating
call and leaves the order untouched.

Usage:
    from orders.services import PaymentMutationService

    order = PaymentMutationService.capture("MF-1700000000-AB12CD")
    order = PaymentMutationService.refund("MF-1700000000-AB12CD", amount=5000)

    summary = PaymentMutationService.capture_all_reserved()
    # {"successful": 3, "failed": 1, "total": 4, "errors": ["MF-...: ..."]}
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING

from core.exceptions import ValidationError
from core.services import BaseService
from orders.adapters import IdempotencyKeyGenerator, VippsAdapter
from orders.exceptions import InvalidPaymentStateError, InvalidStateTransitionError
from orders.services.order_store import OrderStore
from orders.state_machines import (
    ORDER_TRANSITIONS,
    GatewayPaymentState,
    OrderStatus,
)

if TYPE_CHECKING:
    from typing import Any

    from orders.adapters import PaymentDetails
    from orders.models import Order


# A payment that has been refunded at all cannot be refunded again
REFUNDABLE_PAYMENT_STATES = (GatewayPaymentState.CAPTURED,)


@dataclass
class CaptureAllResult:
    """Aggregate outcome of capture_all_reserved()."""

    successful: int = 0
    failed: int = 0
    total: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class PaymentMutationService(BaseService):
    """
    Capture, cancel and refund against the Vipps ePayment API.

    Sequence for every mutation:
        1. Load the order; reject unknown or terminal orders
        2. Check the local status allows the resulting transition
        3. Fetch authoritative payment details from Vipps
        4. Enforce the gateway-state precondition
        5. Call the mutating endpoint with a deterministic Idempotency-Key
        6. Under the per-reference lock, record the gateway state and
           apply the local transition

    All methods are class methods. The gateway adapter can be swapped for
    testing with set_gateway_adapter().
    """

    _gateway_adapter: VippsAdapter | None = None

    @classmethod
    def get_gateway_adapter(cls) -> VippsAdapter:
        """Get the gateway adapter (created from settings on first use)."""
        if cls._gateway_adapter is None:
            cls._gateway_adapter = VippsAdapter()
        return cls._gateway_adapter

    @classmethod
    def set_gateway_adapter(cls, adapter: VippsAdapter | None) -> None:
        """Set the gateway adapter (for testing)."""
        cls._gateway_adapter = adapter

    # =========================================================================
    # Preconditions
    # =========================================================================

    @classmethod
    def _load_order(cls, reference: str, transition: str, operation: str) -> Order:
        order = OrderStore.get(reference)
        sources, target = ORDER_TRANSITIONS[transition]
        if order.status == target and operation == "capture":
            # Already captured locally; the gateway check decides the outcome
            return order
        if order.status not in sources:
            raise InvalidStateTransitionError(
                f"Cannot {operation} order {reference} in status {order.status}",
                details={
                    "reference": reference,
                    "current_status": order.status,
                    "operation": operation,
                },
            )
        return order

    @classmethod
    def _require_reservation_possible(cls, order: Order, operation: str) -> None:
        # No session was ever created for a PENDING order, so Vipps holds nothing
        if order.status == OrderStatus.PENDING:
            state = order.gateway_payment_state or "not started"
            raise InvalidPaymentStateError(
                f"Payment is {state}, cannot {operation}",
                details={
                    "reference": order.reference,
                    "payment_state": order.gateway_payment_state,
                    "operation": operation,
                    "required_states": [str(GatewayPaymentState.RESERVED)],
                },
            )

    @classmethod
    def _require_payment_state(
        cls,
        details: PaymentDetails,
        allowed: tuple[str, ...],
        operation: str,
    ) -> None:
        if details.state in allowed:
            return
        state = str(details.state)
        cls.get_logger().warning(
            "Payment state does not allow mutation",
            extra={
                "reference": details.reference,
                "payment_state": state,
                "operation": operation,
            },
        )
        raise InvalidPaymentStateError(
            f"Payment is {state}, cannot {operation}",
            details={
                "reference": details.reference,
                "payment_state": state,
                "operation": operation,
                "required_states": [str(s) for s in allowed],
            },
        )

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def get_payment_details(cls, reference: str) -> PaymentDetails:
        """
        Fetch authoritative payment details for a known order.

        Raises:
            OrderNotFoundError: Unknown reference
        """
        OrderStore.get(reference)
        return cls.get_gateway_adapter().get_payment_details(reference)

    # =========================================================================
    # Mutations
    # =========================================================================

    @classmethod
    def capture(cls, reference: str) -> Order:
        """
        Capture a reserved payment and mark the order PAID.

        Raises:
            OrderNotFoundError: Unknown reference
            InvalidStateTransitionError: Order cannot become PAID
            InvalidPaymentStateError: Gateway state is not RESERVED
            GatewayError: Vipps call failed
        """
        logger = cls.get_logger()
        adapter = cls.get_gateway_adapter()
        order = cls._load_order(reference, "mark_paid", "capture")
        cls._require_reservation_possible(order, "capture")

        details = adapter.get_payment_details(reference)
        cls._require_payment_state(details, (GatewayPaymentState.RESERVED,), "capture")

        amount = order.total_amount
        result = adapter.capture(
            reference,
            amount=amount,
            idempotency_key=IdempotencyKeyGenerator.generate("capture", reference, amount=amount),
            currency=order.currency,
        )

        with OrderStore.locked(reference) as locked_order:
            OrderStore.record_gateway_state(locked_order, result.state, result.payment_method)
            if locked_order.status != OrderStatus.PAID:
                OrderStore.transition(locked_order, "mark_paid")

        logger.info(
            "Payment captured",
            extra={"reference": reference, "amount": amount},
        )
        return locked_order

    @classmethod
    def cancel(cls, reference: str, reason: str | None = None) -> Order:
        """
        Cancel a reserved payment and mark the order CANCELLED.

        Raises:
            OrderNotFoundError: Unknown reference
            InvalidStateTransitionError: Order cannot be cancelled
            InvalidPaymentStateError: Gateway state is not RESERVED
            GatewayError: Vipps call failed
        """
        adapter = cls.get_gateway_adapter()
        order = cls._load_order(reference, "cancel", "cancel")
        cls._require_reservation_possible(order, "cancel")

        details = adapter.get_payment_details(reference)
        cls._require_payment_state(details, (GatewayPaymentState.RESERVED,), "cancel")

        result = adapter.cancel(
            reference,
            idempotency_key=IdempotencyKeyGenerator.generate("cancel", reference),
            reason=reason,
        )

        with OrderStore.locked(reference) as locked_order:
            OrderStore.record_gateway_state(locked_order, result.state, result.payment_method)
            OrderStore.transition(locked_order, "cancel")

        cls.get_logger().info(
            "Payment cancelled",
            extra={"reference": reference, "reason": reason},
        )
        return locked_order

    @classmethod
    def refund(cls, reference: str, amount: int | None = None) -> Order:
        """
        Refund all or part of a captured payment.

        Args:
            reference: Order reference
            amount: Amount in øre; defaults to everything still refundable

        A full refund moves the order to REFUNDED; a partial refund keeps it
        PAID while captured funds remain.

        Raises:
            OrderNotFoundError: Unknown reference
            InvalidStateTransitionError: Order is not PAID
            InvalidPaymentStateError: Gateway state is not CAPTURED
            ValidationError: Amount not positive or above the refundable amount
            GatewayError: Vipps call failed
        """
        logger = cls.get_logger()
        adapter = cls.get_gateway_adapter()
        order = cls._load_order(reference, "refund", "refund")

        details = adapter.get_payment_details(reference)
        cls._require_payment_state(details, REFUNDABLE_PAYMENT_STATES, "refund")

        refundable = details.refundable_amount
        if amount is None:
            amount = refundable
        if amount <= 0 or amount > refundable:
            raise ValidationError(
                f"Refund amount must be between 1 and {refundable}",
                error_code="INVALID_REFUND_AMOUNT",
                details={
                    "reference": reference,
                    "amount": amount,
                    "refundable_amount": refundable,
                },
            )

        adapter.refund(
            reference,
            amount=amount,
            idempotency_key=IdempotencyKeyGenerator.generate("refund", reference, amount=amount),
            currency=order.currency,
        )

        # The refund response does not always carry the new aggregate
        updated = adapter.get_payment_details(reference)

        with OrderStore.locked(reference) as locked_order:
            OrderStore.record_gateway_state(locked_order, updated.state, updated.payment_method)
            if updated.state == GatewayPaymentState.REFUNDED:
                OrderStore.transition(locked_order, "refund")

        logger.info(
            "Payment refunded",
            extra={
                "reference": reference,
                "amount": amount,
                "payment_state": str(updated.state),
            },
        )
        return locked_order

    # =========================================================================
    # Batch
    # =========================================================================

    @classmethod
    def capture_all_reserved(cls) -> dict[str, Any]:
        """
        Capture every RESERVED order, one at a time.

        A failure for one reference is recorded and never stops the batch.

        Returns:
            {"successful": int, "failed": int, "total": int, "errors": [str]}
        """
        logger = cls.get_logger()
        references = OrderStore.references_in_status(OrderStatus.RESERVED)
        result = CaptureAllResult(total=len(references))

        for reference in references:
            try:
                cls.capture(reference)
                result.successful += 1
            except Exception as e:
                failure = cls.handle_exception(e, f"Failed to capture {reference}")
                result.failed += 1
                result.errors.append(f"{reference}: {failure.error}")

        logger.info(
            "Capture-all completed",
            extra={
                "successful": result.successful,
                "failed": result.failed,
                "total": result.total,
            },
        )
        return result.to_dict()


__all__ = [
    "CaptureAllResult",
    "PaymentMutationService",
    "REFUNDABLE_PAYMENT_STATES",
]
