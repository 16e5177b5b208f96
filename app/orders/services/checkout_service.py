"""
Checkout session orchestration.

This module provides the CheckoutService class which turns a customer's
cart into a provisional order and a Vipps Checkout session.

Flow:
    1. Validate the cart against the catalog (prices within tolerance)
    2. Recompute totals from catalog prices, add flat shipping
    3. Generate a fresh reference
    4. Persist the order in PENDING (before contacting Vipps)
    5. Create the Vipps session with a per-reference callback token
    6. Move the order to PAYMENT_PENDING

A gateway failure leaves the PENDING order in place so the cart is never
lost; the reaper terminates it if the customer never comes back.

Usage:
    from orders.services import CartItem, CheckoutService

    session = CheckoutService.create_checkout_session(
        [CartItem(product_id="1", quantity=2, price=Decimal("299"), size="M")],
    )
    redirect(session.checkout_frontend_url)
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from django.conf import settings

from core.exceptions import ValidationError
from core.services import BaseService
from orders.adapters import CreateSessionParams, OrderLine, VippsAdapter
from orders.catalog import default_catalog
from orders.exceptions import GatewayError
from orders.services.order_store import LineItemDraft, OrderDraft, OrderStore
from orders.state_machines import OrderStatus

if TYPE_CHECKING:
    from orders.adapters import SessionStatus
    from orders.catalog import ProductCatalog


# =============================================================================
# Constants
# =============================================================================

REFERENCE_PREFIX = "MF"
REFERENCE_SUFFIX_LENGTH = 6
BASE36_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"

DESCRIPTION_PREFIX = "Møller Fanclub"
MAX_DESCRIPTION_LENGTH = 100

SHIPPING_LINE_ID = "shipping"
SHIPPING_LINE_NAME = "Frakt"


# =============================================================================
# Parameter Types
# =============================================================================


@dataclass
class CartItem:
    """
    One line of the customer's cart as submitted by the storefront.

    Attributes:
        product_id: Catalog product id
        quantity: Number of units (positive integer)
        price: Unit price in kroner as shown to the customer
        size: Selected size, if any

    Name and image always come from the catalog, never from the client.
    """

    product_id: str
    quantity: int
    price: Decimal
    size: str | None = None


@dataclass
class CustomerHints:
    """Optional customer data the storefront already knows."""

    email: str | None = None
    name: str | None = None
    phone_number: str | None = None


@dataclass
class CheckoutSession:
    """
    Result of a successful checkout session creation.

    Attributes:
        reference: Order reference
        token: Vipps session token
        checkout_frontend_url: URL of the Vipps checkout window
        polling_url: URL for polling session state
    """

    reference: str
    token: str
    checkout_frontend_url: str
    polling_url: str | None = None


# =============================================================================
# Helpers
# =============================================================================


def generate_reference(now_ms: int | None = None) -> str:
    """
    Generate a fresh order reference.

    Format: "MF-{epoch millis}-{6 uppercase base36 chars}"
    """
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(secrets.choice(BASE36_ALPHABET) for _ in range(REFERENCE_SUFFIX_LENGTH))
    return f"{REFERENCE_PREFIX}-{timestamp}-{suffix}"


def callback_token_for(reference: str) -> str:
    """
    Derive the callback authorization token for a reference.

    HMAC-SHA256 of the reference under VIPPS_CALLBACK_SECRET, so the token
    can be re-derived on callback without any stored state.
    """
    return hmac.new(
        settings.VIPPS_CALLBACK_SECRET.encode(),
        reference.encode(),
        hashlib.sha256,
    ).hexdigest()


def verify_callback_token(reference: str, presented: str | None) -> bool:
    """Constant-time check of a presented callback token."""
    if not presented or not reference:
        return False
    return hmac.compare_digest(callback_token_for(reference), presented)


def kroner_to_ore(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _display_name(name: str, size: str | None) -> str:
    return f"{name} ({size})" if size else name


def generate_payment_description(items: list[tuple[str, int, str | None]]) -> str:
    """
    Build the payment description shown in the Vipps app.

    Args:
        items: (name, quantity, size) per cart line

    Examples:
        [("Basic Tee", 1, "M")]               -> "Møller Fanclub - Basic Tee (M)"
        [("Basic Tee", 2, "M")]               -> "Møller Fanclub - 2x Basic Tee (M)"
        [("Basic Tee", 1, "M"), ("Bamse", 1, None)]
                                              -> "Møller Fanclub - Basic Tee (M), Bamse"

    Longer carts are summarised as the first two lines plus "+ N mer", and
    fall back to "N produkt(er)" if that still exceeds 100 characters.
    """
    if not items:
        return DESCRIPTION_PREFIX

    total_quantity = sum(quantity for _, quantity, _ in items)

    if len(items) == 1:
        name, quantity, size = items[0]
        display = _display_name(name, size)
        if quantity == 1:
            return f"{DESCRIPTION_PREFIX} - {display}"
        return f"{DESCRIPTION_PREFIX} - {quantity}x {display}"

    names = [
        f"{quantity}x {_display_name(name, size)}" if quantity > 1 else _display_name(name, size)
        for name, quantity, size in items
    ]
    description = f"{DESCRIPTION_PREFIX} - {', '.join(names)}"
    if len(description) <= MAX_DESCRIPTION_LENGTH:
        return description

    shown = f"{names[0]}, {names[1]}"
    remaining = total_quantity - (items[0][1] + items[1][1])
    if remaining > 0:
        description = f"{DESCRIPTION_PREFIX} - {shown} + {remaining} mer"
    else:
        description = f"{DESCRIPTION_PREFIX} - {shown}"

    if len(description) > MAX_DESCRIPTION_LENGTH:
        description = f"{DESCRIPTION_PREFIX} - {total_quantity} produkt(er)"
    return description


def _absolute_url(path: str | None) -> str | None:
    if not path:
        return None
    if path.startswith("http"):
        return path
    return f"{settings.FRONTEND_URL.rstrip('/')}{path}"


# =============================================================================
# Checkout Service
# =============================================================================


class CheckoutService(BaseService):
    """
    Creates provisional orders and their Vipps Checkout sessions.

    All methods are class methods. The gateway adapter and product catalog
    can be swapped for testing with set_gateway_adapter() / set_catalog().
    """

    _gateway_adapter: VippsAdapter | None = None
    _catalog: ProductCatalog | None = None

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

    @classmethod
    def get_catalog(cls) -> ProductCatalog:
        return cls._catalog or default_catalog

    @classmethod
    def set_catalog(cls, catalog: ProductCatalog | None) -> None:
        cls._catalog = catalog

    # =========================================================================
    # Cart Validation
    # =========================================================================

    @classmethod
    def validate_cart(cls, cart: list[CartItem]) -> list[LineItemDraft]:
        """
        Validate a cart against the catalog and price it in øre.

        The client price is only checked, never used: totals come from the
        catalog.

        Raises:
            ValidationError: EMPTY_CART, UNKNOWN_PRODUCT, INVALID_QUANTITY,
                INVALID_SIZE or PRICE_MISMATCH
        """
        if not cart:
            raise ValidationError("Cart items are required", error_code="EMPTY_CART")

        catalog = cls.get_catalog()
        tolerance = Decimal(str(settings.ORDERS_PRICE_TOLERANCE))
        drafts = []

        for item in cart:
            product = catalog.get(item.product_id)
            if product is None:
                raise ValidationError(
                    f"Product {item.product_id} not found",
                    error_code="UNKNOWN_PRODUCT",
                    details={"product_id": item.product_id},
                )

            if isinstance(item.quantity, bool) or not isinstance(item.quantity, int) or item.quantity <= 0:
                raise ValidationError(
                    f"Invalid quantity for product {item.product_id}",
                    error_code="INVALID_QUANTITY",
                    details={"product_id": item.product_id, "quantity": item.quantity},
                )

            if item.size and product.sizes and item.size not in product.sizes:
                raise ValidationError(
                    f"Size {item.size} is not available for product {item.product_id}",
                    error_code="INVALID_SIZE",
                    details={"product_id": item.product_id, "size": item.size},
                )

            if abs(Decimal(str(item.price)) - product.price) > tolerance:
                raise ValidationError(
                    f"Price mismatch for product {item.product_id}",
                    error_code="PRICE_MISMATCH",
                    details={
                        "product_id": item.product_id,
                        "submitted_price": str(item.price),
                        "catalog_price": str(product.price),
                    },
                )

            drafts.append(
                LineItemDraft(
                    product_id=product.id,
                    product_name=product.title,
                    unit_price=kroner_to_ore(product.price),
                    quantity=item.quantity,
                    size=item.size or None,
                    product_image=product.image_url,
                )
            )

        return drafts

    # =========================================================================
    # Session Creation
    # =========================================================================

    @classmethod
    def create_checkout_session(
        cls,
        cart: list[CartItem],
        customer: CustomerHints | None = None,
    ) -> CheckoutSession:
        """
        Create a provisional order and its Vipps Checkout session.

        Raises:
            ValidationError: Cart rejected (nothing persisted)
            GatewayError: Vipps failed (order stays PENDING)
        """
        logger = cls.get_logger()
        customer = customer or CustomerHints()

        line_items = cls.validate_cart(cart)
        items_total = sum(item.total_price for item in line_items)
        shipping_price = settings.ORDERS_SHIPPING_PRICE_ORE
        currency = settings.ORDERS_CURRENCY
        reference = generate_reference()

        order, _ = OrderStore.create_if_absent(
            OrderDraft(
                reference=reference,
                items=line_items,
                items_total=items_total,
                shipping_price=shipping_price,
                currency=currency,
                customer_email=customer.email,
                customer_name=customer.name,
                customer_phone=customer.phone_number,
            )
        )

        params = CreateSessionParams(
            reference=reference,
            amount=order.total_amount,
            currency=currency,
            callback_url=settings.VIPPS_CALLBACK_URL,
            callback_token=callback_token_for(reference),
            return_url=f"{settings.FRONTEND_URL.rstrip('/')}/checkout/success?reference={reference}",
            payment_description=generate_payment_description(
                [(item.product_name, item.quantity, item.size) for item in line_items]
            ),
            order_lines=cls._build_order_lines(line_items, shipping_price),
            prefill_email=customer.email,
            prefill_phone=customer.phone_number,
        )

        try:
            result = cls.get_gateway_adapter().create_session(params)
        except GatewayError as e:
            logger.error(
                "Failed to create Vipps checkout session",
                extra={
                    "reference": reference,
                    "error_code": e.error_code,
                    "is_retryable": e.is_retryable,
                },
            )
            raise

        with OrderStore.locked(reference) as locked_order:
            # A fast callback may already have moved the order on
            if locked_order.status == OrderStatus.PENDING:
                OrderStore.transition(locked_order, "start_payment")

        logger.info(
            "Checkout session created",
            extra={
                "reference": reference,
                "total_amount": order.total_amount,
                "item_count": len(line_items),
            },
        )

        return CheckoutSession(
            reference=reference,
            token=result.token,
            checkout_frontend_url=result.checkout_frontend_url,
            polling_url=result.polling_url,
        )

    @classmethod
    def _build_order_lines(
        cls,
        line_items: list[LineItemDraft],
        shipping_price: int,
    ) -> list[OrderLine]:
        frontend_url = settings.FRONTEND_URL.rstrip("/")
        lines = [
            OrderLine(
                id=f"{item.product_id}-{item.size or 'default'}",
                name=f"{item.product_name} - {item.size}" if item.size else item.product_name,
                unit_price=item.unit_price,
                quantity=item.quantity,
                total_amount=item.total_price,
                total_tax_amount=item.tax_amount,
                image_url=_absolute_url(item.product_image),
                # Vipps only accepts https product URLs
                product_url=(
                    f"{frontend_url}/merch/{item.product_id}"
                    if frontend_url.startswith("https://")
                    else None
                ),
            )
            for item in line_items
        ]
        if shipping_price:
            lines.append(
                OrderLine(
                    id=SHIPPING_LINE_ID,
                    name=SHIPPING_LINE_NAME,
                    unit_price=shipping_price,
                    quantity=1,
                    total_amount=shipping_price,
                    is_shipping=True,
                )
            )
        return lines

    # =========================================================================
    # Session Passthrough
    # =========================================================================

    @classmethod
    def get_session_status(cls, reference: str) -> SessionStatus:
        """Fetch the live session state from Vipps."""
        return cls.get_gateway_adapter().get_session_status(reference)

    @classmethod
    def expire_session(cls, reference: str) -> None:
        """Expire the Vipps session for a reference."""
        cls.get_gateway_adapter().expire_session(reference)
        cls.get_logger().info("Checkout session expired", extra={"reference": reference})


__all__ = [
    "CartItem",
    "CheckoutService",
    "CheckoutSession",
    "CustomerHints",
    "callback_token_for",
    "generate_payment_description",
    "generate_reference",
    "kroner_to_ore",
    "verify_callback_token",
]
