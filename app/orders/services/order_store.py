"""
Order Store: the single gateway to persisted order state.

Every component that changes an order goes through this module:
- create_if_absent: idempotent creation keyed on reference
- locked: per-reference serialized scope (Redis lock + row lock)
- transition: apply a django-fsm transition with domain error translation
- apply_customer_details: write-once customer snapshot from the gateway

Usage:
    from orders.services import OrderStore

    with OrderStore.locked(reference) as order:
        OrderStore.transition(order, "mark_paid")

Concurrency:
    locked() acquires DistributedLock("order:{reference}") and then, inside
    transaction.atomic(), re-reads the row with select_for_update(). Two
    callers touching the same reference are fully serialized; different
    references never contend.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from django_fsm import TransitionNotAllowed

from core.exceptions import ValidationError
from core.services import BaseService
from orders.exceptions import InvalidStateTransitionError, OrderNotFoundError
from orders.locks import DistributedLock, check_version
from orders.models import PLACEHOLDER_EMAIL, PLACEHOLDER_NAME, Order, OrderLineItem
from orders.state_machines import (
    ORDER_TRANSITIONS,
    REVENUE_STATUSES,
    UNPAID_STATUSES,
    OrderStatus,
)

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

    from orders.adapters import ContactDetails, SessionStatus


# Name used when the gateway gives us nothing better
FALLBACK_CUSTOMER_NAME = "Kunde"


# =============================================================================
# Parameter Types
# =============================================================================


@dataclass
class LineItemDraft:
    """
    One cart line ready to be persisted.

    Amounts are in øre and come from the catalog, never from the client.
    """

    product_id: str
    product_name: str
    unit_price: int
    quantity: int
    size: str | None = None
    product_image: str | None = None
    tax_amount: int = 0

    @property
    def total_price(self) -> int:
        return self.unit_price * self.quantity


@dataclass
class OrderDraft:
    """
    Everything needed to create an order row.

    Attributes:
        reference: Order reference
        items: Line item drafts (may be empty for orders created from a callback)
        items_total: Sum of line totals in øre
        shipping_price: Shipping in øre
        currency: ISO 4217 currency code
        customer_email / customer_name / customer_phone: Customer hints
    """

    reference: str
    items_total: int
    shipping_price: int
    items: list[LineItemDraft] = field(default_factory=list)
    currency: str = "NOK"
    customer_email: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None

    @property
    def total_amount(self) -> int:
        return self.items_total + self.shipping_price


@dataclass
class CustomerDetails:
    """Customer identity and addresses reported by the gateway."""

    email: str
    name: str
    phone: str | None = None
    shipping: ContactDetails | None = None
    billing: ContactDetails | None = None

    @classmethod
    def from_session_status(cls, status: SessionStatus) -> CustomerDetails | None:
        """
        Extract customer details from an authoritative session status.

        Email is taken from shipping, then billing, then user details.
        Name is taken from shipping, then billing, then the email local
        part. Returns None when the session carries no email at all.
        """
        shipping = status.shipping_details
        billing = status.billing_details
        user = status.user_details

        email = (
            (shipping and shipping.email)
            or (billing and billing.email)
            or (user and user.email)
            or None
        )
        if not email:
            return None

        name = (
            (shipping and shipping.full_name)
            or (billing and billing.full_name)
            or email.split("@")[0]
            or FALLBACK_CUSTOMER_NAME
        )
        phone = (
            (shipping and shipping.phone_number)
            or (billing and billing.phone_number)
            or (user and user.mobile_number)
            or None
        )
        return cls(email=email, name=name, phone=phone, shipping=shipping, billing=billing)


# =============================================================================
# Order Store
# =============================================================================


class OrderStore(BaseService):
    """
    Persistence and serialization point for Order rows.

    All methods are class methods. Status changes must happen inside
    locked(); the other components never save an Order themselves.
    """

    # =========================================================================
    # Lookups
    # =========================================================================

    @classmethod
    def get(cls, reference: str) -> Order:
        """
        Fetch an order by reference.

        Raises:
            OrderNotFoundError: If no order exists for the reference
        """
        order = cls.find(reference)
        if order is None:
            raise OrderNotFoundError(
                f"Order {reference} not found",
                details={"reference": reference},
            )
        return order

    @classmethod
    def find(cls, reference: str) -> Order | None:
        return Order.objects.filter(reference=reference).first()

    @classmethod
    def list_orders(
        cls,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Order], int]:
        """
        Page through orders, newest first.

        Returns:
            Tuple of (orders on this page, total matching orders)
        """
        queryset = Order.objects.all()
        if status and status != "ALL":
            queryset = queryset.filter(status=status)
        total = queryset.count()
        orders = list(queryset.prefetch_related("items")[offset : offset + limit])
        return orders, total

    @classmethod
    def stale_unpaid_references(cls, cutoff, limit: int | None = None) -> list[str]:
        """References of PENDING/PAYMENT_PENDING orders created before cutoff."""
        queryset = (
            Order.objects.filter(status__in=UNPAID_STATUSES, created_at__lt=cutoff)
            .order_by("created_at")
            .values_list("reference", flat=True)
        )
        if limit is not None:
            queryset = queryset[:limit]
        return list(queryset)

    @classmethod
    def unpaid_age_counts(cls, cutoff) -> dict[str, int]:
        """Count unpaid orders created before and since cutoff."""
        counts = Order.objects.filter(status__in=UNPAID_STATUSES).aggregate(
            total_pending=Count("id"),
            abandoned=Count("id", filter=Q(created_at__lt=cutoff)),
            recent=Count("id", filter=Q(created_at__gte=cutoff)),
        )
        return counts

    @classmethod
    def references_in_status(cls, status: str) -> list[str]:
        return list(
            Order.objects.filter(status=status)
            .order_by("created_at")
            .values_list("reference", flat=True)
        )

    @classmethod
    def dashboard_stats(cls) -> dict[str, int]:
        """Aggregate counts and revenue for the admin dashboard."""
        stats = Order.objects.aggregate(
            total_orders=Count("id"),
            total_revenue=Sum("total_amount", filter=Q(status__in=REVENUE_STATUSES)),
            pending_orders=Count("id", filter=Q(status__in=UNPAID_STATUSES)),
            reserved_orders=Count("id", filter=Q(status=OrderStatus.RESERVED)),
            paid_orders=Count("id", filter=Q(status=OrderStatus.PAID)),
            shipped_orders=Count("id", filter=Q(status=OrderStatus.SHIPPED)),
            cancelled_orders=Count("id", filter=Q(status=OrderStatus.CANCELLED)),
        )
        stats["total_revenue"] = stats["total_revenue"] or 0
        return stats

    # =========================================================================
    # Creation
    # =========================================================================

    @classmethod
    def create_if_absent(cls, draft: OrderDraft) -> tuple[Order, bool]:
        """
        Create the order for draft.reference unless it already exists.

        Idempotent on reference: a second call returns the existing row
        untouched. Line items are written in the same transaction.

        Returns:
            Tuple of (order, created)

        Raises:
            ValidationError: If the draft's amounts are inconsistent
        """
        existing = cls.find(draft.reference)
        if existing is not None:
            return existing, False

        computed_items_total = sum(item.total_price for item in draft.items)
        if draft.items and computed_items_total != draft.items_total:
            raise ValidationError(
                "Items total does not match line items",
                error_code="TOTAL_MISMATCH",
                details={
                    "reference": draft.reference,
                    "items_total": draft.items_total,
                    "line_items_total": computed_items_total,
                },
            )

        try:
            with transaction.atomic():
                order = Order.objects.create(
                    reference=draft.reference,
                    items_total=draft.items_total,
                    shipping_price=draft.shipping_price,
                    total_amount=draft.total_amount,
                    currency=draft.currency,
                    customer_email=draft.customer_email or PLACEHOLDER_EMAIL,
                    customer_name=draft.customer_name or PLACEHOLDER_NAME,
                    customer_phone=draft.customer_phone,
                )
                OrderLineItem.objects.bulk_create(
                    [
                        OrderLineItem(
                            order=order,
                            position=position,
                            product_id=item.product_id,
                            product_name=item.product_name,
                            product_image=item.product_image,
                            size=item.size,
                            unit_price=item.unit_price,
                            quantity=item.quantity,
                            total_price=item.total_price,
                            tax_amount=item.tax_amount,
                        )
                        for position, item in enumerate(draft.items)
                    ]
                )
        except IntegrityError:
            # Lost a creation race on the unique reference
            existing = cls.find(draft.reference)
            if existing is None:
                raise
            return existing, False

        cls.get_logger().info(
            "Order created",
            extra={
                "reference": order.reference,
                "total_amount": order.total_amount,
                "item_count": len(draft.items),
            },
        )
        return order, True

    # =========================================================================
    # Serialized Access
    # =========================================================================

    @classmethod
    @contextmanager
    def locked(
        cls,
        reference: str,
        must_exist: bool = True,
        expected_version: int | None = None,
        blocking: bool = True,
    ) -> Generator[Order | None, None, None]:
        """
        Serialize work on one order reference.

        Holds the distributed lock for the reference and a row lock inside
        a transaction for the duration of the with-block.

        Args:
            reference: Order reference
            must_exist: Raise OrderNotFoundError when the row is missing;
                otherwise yield None so the caller may create it
            expected_version: Optional optimistic version check
            blocking: Wait for the distributed lock (up to
                ORDERS_LOCK_TIMEOUT_SECONDS) instead of failing fast

        Raises:
            LockAcquisitionError: Lock not acquired
            OrderNotFoundError: must_exist and no row
            StaleRecordError: expected_version mismatch
        """
        lock = DistributedLock(
            f"order:{reference}",
            ttl=settings.ORDERS_LOCK_TTL_SECONDS,
            timeout=settings.ORDERS_LOCK_TIMEOUT_SECONDS,
            blocking=blocking,
        )
        with lock:
            with transaction.atomic():
                order = Order.objects.select_for_update().filter(reference=reference).first()
                if order is None:
                    if must_exist:
                        raise OrderNotFoundError(
                            f"Order {reference} not found",
                            details={"reference": reference},
                        )
                elif expected_version is not None:
                    order = check_version(
                        Order, expected_version=expected_version, reference=reference
                    )
                yield order

    @classmethod
    def transition(cls, order: Order, name: str, **kwargs: Any) -> Order:
        """
        Apply a named transition and save.

        Must be called inside locked() with the order it yielded.

        Raises:
            InvalidStateTransitionError: Edge not on the graph; the order
                is left untouched
        """
        if name not in ORDER_TRANSITIONS:
            raise InvalidStateTransitionError(
                f"Unknown transition '{name}'",
                details={"reference": order.reference, "transition": name},
            )

        from_status = order.status
        try:
            getattr(order, name)(**kwargs)
        except TransitionNotAllowed as e:
            cls.get_logger().warning(
                "Rejected order transition",
                extra={
                    "reference": order.reference,
                    "current_status": from_status,
                    "transition": name,
                },
            )
            raise InvalidStateTransitionError(
                f"Cannot {name.replace('_', ' ')} order {order.reference} in status {from_status}",
                details={
                    "reference": order.reference,
                    "current_status": from_status,
                    "transition": name,
                },
            ) from e

        order.save()
        cls.get_logger().info(
            "Order transitioned",
            extra={
                "reference": order.reference,
                "from_status": from_status,
                "to_status": order.status,
                "transition": name,
            },
        )
        return order

    # =========================================================================
    # Field Updates
    # =========================================================================

    @classmethod
    def record_session(cls, order: Order, session_id: str | None) -> None:
        if session_id and order.gateway_session_id != session_id:
            order.gateway_session_id = session_id
            order.save(update_fields=["gateway_session_id", "updated_at", "version"])

    @classmethod
    def record_gateway_state(
        cls,
        order: Order,
        payment_state: str | None,
        payment_method: str | None = None,
    ) -> None:
        """Store the gateway's reported payment state (advisory only)."""
        update_fields = []
        if payment_state and order.gateway_payment_state != payment_state:
            order.gateway_payment_state = payment_state
            update_fields.append("gateway_payment_state")
        if payment_method and order.payment_method != payment_method:
            order.payment_method = payment_method
            update_fields.append("payment_method")
        if update_fields:
            order.save(update_fields=[*update_fields, "updated_at", "version"])

    @classmethod
    def apply_customer_details(cls, order: Order, details: CustomerDetails) -> bool:
        """
        Write gateway-provided customer details onto the order, once.

        Details are written only while the order still holds checkout
        placeholders and have never been confirmed before. A later
        callback can never overwrite them.

        Returns:
            True if the order was updated
        """
        if order.customer_details_confirmed_at is not None:
            return False
        if not order.needs_customer_details:
            return False

        order.customer_email = details.email
        order.customer_name = details.name
        if details.phone:
            order.customer_phone = details.phone

        for prefix, contact in (("shipping", details.shipping), ("billing", details.billing)):
            if contact is None:
                continue
            setattr(order, f"{prefix}_first_name", contact.first_name)
            setattr(order, f"{prefix}_last_name", contact.last_name)
            setattr(order, f"{prefix}_street", contact.street_address)
            setattr(order, f"{prefix}_postal_code", contact.postal_code)
            setattr(order, f"{prefix}_city", contact.city)
            setattr(order, f"{prefix}_country", contact.country)

        order.customer_details_confirmed_at = timezone.now()
        order.save()

        cls.get_logger().info(
            "Customer details recorded",
            extra={"reference": order.reference},
        )
        return True

    @classmethod
    def update_fulfilment_status(
        cls,
        reference: str,
        status: str,
        shipped_at=None,
        expected_version: int | None = None,
    ) -> Order:
        """
        Move an order along the fulfilment edges (SHIPPED, DELIVERED).

        Raises:
            ValidationError: status is not a fulfilment status
            InvalidStateTransitionError: Edge not on the graph
        """
        transitions: dict[str, tuple[str, dict[str, Any]]] = {
            OrderStatus.SHIPPED: ("ship", {"shipped_at": shipped_at}),
            OrderStatus.DELIVERED: ("deliver", {}),
        }
        if status not in transitions:
            raise ValidationError(
                f"Status {status} cannot be set manually",
                error_code="INVALID_STATUS",
                details={"status": status, "allowed": sorted(transitions)},
            )

        name, kwargs = transitions[status]
        with cls.locked(reference, expected_version=expected_version) as order:
            return cls.transition(order, name, **kwargs)


__all__ = [
    "CustomerDetails",
    "FALLBACK_CUSTOMER_NAME",
    "LineItemDraft",
    "OrderDraft",
    "OrderStore",
]
