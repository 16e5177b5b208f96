"""
Tests for CheckoutService and its helpers.

Tests cover:
- Reference generation and callback tokens
- Payment description formatting
- Cart validation against the catalog
- Session creation with gateway success and failure
"""

import re
from decimal import Decimal

import pytest

from core.exceptions import ValidationError
from orders.adapters import CheckoutSessionResult
from orders.catalog import Product, StaticProductCatalog
from orders.exceptions import GatewayTimeoutError, GatewayUnavailableError
from orders.models import Order
from orders.services import (
    CartItem,
    CheckoutService,
    CustomerHints,
    callback_token_for,
    generate_payment_description,
    generate_reference,
    verify_callback_token,
)
from orders.services.checkout_service import kroner_to_ore
from orders.state_machines import OrderStatus


@pytest.fixture
def session_result():
    return CheckoutSessionResult(
        token="session-token",
        checkout_frontend_url="https://checkout.vipps.no/session/abc",
        polling_url="https://api.vipps.no/checkout/v3/session/abc",
    )


@pytest.fixture
def tee_cart():
    return [CartItem(product_id="1", quantity=2, price=Decimal("299"), size="M")]


# =============================================================================
# Helpers
# =============================================================================


class TestGenerateReference:
    """Tests for generate_reference."""

    def test_format(self):
        reference = generate_reference(now_ms=1700000000123)

        assert re.fullmatch(r"MF-1700000000123-[0-9A-Z]{6}", reference)

    def test_uses_current_time_by_default(self):
        assert re.fullmatch(r"MF-\d{13}-[0-9A-Z]{6}", generate_reference())

    def test_references_are_unique(self):
        references = {generate_reference(now_ms=1) for _ in range(50)}

        assert len(references) == 50


class TestCallbackToken:
    """Tests for per-reference callback tokens."""

    def test_token_is_deterministic_per_reference(self):
        assert callback_token_for("MF-1-A") == callback_token_for("MF-1-A")
        assert callback_token_for("MF-1-A") != callback_token_for("MF-1-B")

    def test_token_depends_on_secret(self, settings):
        before = callback_token_for("MF-1-A")
        settings.VIPPS_CALLBACK_SECRET = "rotated"

        assert callback_token_for("MF-1-A") != before

    def test_verify(self):
        token = callback_token_for("MF-1-A")

        assert verify_callback_token("MF-1-A", token) is True
        assert verify_callback_token("MF-1-B", token) is False
        assert verify_callback_token("MF-1-A", None) is False
        assert verify_callback_token("MF-1-A", "") is False


class TestKronerToOre:
    """Tests for kroner_to_ore."""

    @pytest.mark.parametrize(
        ("kroner", "ore"),
        [
            (Decimal("299"), 29900),
            (Decimal("299.00"), 29900),
            (Decimal("0.5"), 50),
            (Decimal("12.345"), 1235),
        ],
    )
    def test_conversion(self, kroner, ore):
        assert kroner_to_ore(kroner) == ore


class TestGeneratePaymentDescription:
    """Tests for the text shown in the Vipps app."""

    def test_single_item(self):
        assert generate_payment_description([("Basic Tee", 1, "M")]) == "Møller Fanclub - Basic Tee (M)"

    def test_single_item_quantity(self):
        assert generate_payment_description([("Basic Tee", 2, "M")]) == "Møller Fanclub - 2x Basic Tee (M)"

    def test_item_without_size(self):
        assert generate_payment_description([("Bamse", 1, None)]) == "Møller Fanclub - Bamse"

    def test_multiple_items_joined(self):
        description = generate_payment_description([("Basic Tee", 1, "M"), ("Bamse", 3, None)])

        assert description == "Møller Fanclub - Basic Tee (M), 3x Bamse"

    def test_long_cart_summarised(self):
        items = [
            ("Basic Tee", 1, "M"),
            ("Tour Hoodie", 1, "L"),
            ("Basic Tour Tee", 2, "XL"),
            ("Premium Tee", 1, "S"),
            ("Bamse", 4, "One Size"),
        ]

        description = generate_payment_description(items)

        assert description == "Møller Fanclub - Basic Tee (M), Tour Hoodie (L) + 7 mer"
        assert len(description) <= 100

    def test_very_long_names_fall_back_to_count(self):
        long_name = "Limited Edition Signed Championship Commemorative Tee"
        items = [(long_name, 1, "M"), (long_name, 1, "L"), ("Bamse", 1, None)]

        assert generate_payment_description(items) == "Møller Fanclub - 3 produkt(er)"


# =============================================================================
# Cart Validation
# =============================================================================


class TestValidateCart:
    """Tests for CheckoutService.validate_cart."""

    def test_prices_from_catalog(self):
        drafts = CheckoutService.validate_cart(
            [CartItem(product_id="1", quantity=2, price=Decimal("299.00"), size="M")]
        )

        assert len(drafts) == 1
        assert drafts[0].product_name == "Basic Tee"
        assert drafts[0].unit_price == 29900
        assert drafts[0].total_price == 59800
        assert drafts[0].product_image == "/merch/basic-tee-front.png"

    def test_price_within_tolerance(self):
        drafts = CheckoutService.validate_cart(
            [CartItem(product_id="1", quantity=1, price=Decimal("298.99"), size="M")]
        )

        assert drafts[0].unit_price == 29900

    def test_line_snapshot_from_catalog(self):
        drafts = CheckoutService.validate_cart(
            [CartItem(product_id="1", quantity=1, price=Decimal("299"), size="M")]
        )

        product = CheckoutService.get_catalog().get("1")
        assert drafts[0].product_name == product.title
        assert drafts[0].product_image == product.image_url

    @pytest.mark.parametrize(
        ("cart", "error_code"),
        [
            ([], "EMPTY_CART"),
            ([CartItem(product_id="999", quantity=1, price=Decimal("100"))], "UNKNOWN_PRODUCT"),
            ([CartItem(product_id="1", quantity=0, price=Decimal("299"), size="M")], "INVALID_QUANTITY"),
            ([CartItem(product_id="1", quantity=-1, price=Decimal("299"), size="M")], "INVALID_QUANTITY"),
            ([CartItem(product_id="1", quantity=1, price=Decimal("299"), size="XXXL")], "INVALID_SIZE"),
            ([CartItem(product_id="1", quantity=1, price=Decimal("199"), size="M")], "PRICE_MISMATCH"),
        ],
    )
    def test_rejections(self, cart, error_code):
        with pytest.raises(ValidationError) as exc_info:
            CheckoutService.validate_cart(cart)

        assert exc_info.value.error_code == error_code

    def test_custom_catalog(self):
        CheckoutService.set_catalog(
            StaticProductCatalog(products=(Product(id="x", title="Cap", price=Decimal("150")),))
        )

        drafts = CheckoutService.validate_cart([CartItem(product_id="x", quantity=1, price=Decimal("150"))])

        assert drafts[0].product_name == "Cap"
        with pytest.raises(ValidationError):
            CheckoutService.validate_cart([CartItem(product_id="1", quantity=1, price=Decimal("299"))])


# =============================================================================
# Session Creation
# =============================================================================


@pytest.mark.django_db
class TestCreateCheckoutSession:
    """Tests for CheckoutService.create_checkout_session."""

    def test_creates_order_and_session(self, mock_gateway_adapter, session_result, tee_cart):
        mock_gateway_adapter.create_session.return_value = session_result

        session = CheckoutService.create_checkout_session(tee_cart)

        assert session.token == "session-token"
        assert session.checkout_frontend_url == "https://checkout.vipps.no/session/abc"
        order = Order.objects.get(reference=session.reference)
        assert order.status == OrderStatus.PAYMENT_PENDING
        assert order.items_total == 59800
        assert order.shipping_price == 7900
        assert order.total_amount == 67700
        assert order.items.count() == 1

    def test_session_params(self, mock_gateway_adapter, session_result, tee_cart):
        """Vipps gets the total, a per-reference token and the order lines."""
        mock_gateway_adapter.create_session.return_value = session_result

        session = CheckoutService.create_checkout_session(
            tee_cart, CustomerHints(email="ola@example.com", phone_number="4791234567")
        )

        params = mock_gateway_adapter.create_session.call_args.args[0]
        assert params.reference == session.reference
        assert params.amount == 67700
        assert params.currency == "NOK"
        assert params.callback_url == "https://api.example.com/api/v1/orders/vipps/callback/"
        assert params.callback_token == callback_token_for(session.reference)
        assert params.return_url == (
            f"https://shop.example.com/checkout/success?reference={session.reference}"
        )
        assert params.payment_description == "Møller Fanclub - 2x Basic Tee (M)"
        assert params.prefill_email == "ola@example.com"
        assert params.prefill_phone == "4791234567"

        product_line, shipping_line = params.order_lines
        assert product_line.id == "1-M"
        assert product_line.name == "Basic Tee - M"
        assert product_line.total_amount == 59800
        assert product_line.image_url == "https://shop.example.com/merch/basic-tee-front.png"
        assert product_line.product_url == "https://shop.example.com/merch/1"
        assert shipping_line.id == "shipping"
        assert shipping_line.name == "Frakt"
        assert shipping_line.is_shipping is True
        assert shipping_line.total_amount == 7900

    def test_no_product_url_for_plain_http_frontend(
        self, settings, mock_gateway_adapter, session_result, tee_cart
    ):
        settings.FRONTEND_URL = "http://localhost:3000"
        mock_gateway_adapter.create_session.return_value = session_result

        CheckoutService.create_checkout_session(tee_cart)

        product_line = mock_gateway_adapter.create_session.call_args.args[0].order_lines[0]
        assert product_line.product_url is None
        assert product_line.image_url == "http://localhost:3000/merch/basic-tee-front.png"

    def test_customer_hints_stored_on_order(self, mock_gateway_adapter, session_result, tee_cart):
        mock_gateway_adapter.create_session.return_value = session_result

        session = CheckoutService.create_checkout_session(
            tee_cart, CustomerHints(email="ola@example.com", name="Ola")
        )

        order = Order.objects.get(reference=session.reference)
        assert order.customer_email == "ola@example.com"
        assert order.customer_name == "Ola"

    @pytest.mark.parametrize("error_class", [GatewayUnavailableError, GatewayTimeoutError])
    def test_gateway_failure_keeps_pending_order(self, mock_gateway_adapter, tee_cart, error_class):
        """The cart is persisted even when Vipps is down."""
        mock_gateway_adapter.create_session.side_effect = error_class("Vipps is down")

        with pytest.raises(error_class):
            CheckoutService.create_checkout_session(tee_cart)

        order = Order.objects.get()
        assert order.status == OrderStatus.PENDING
        assert order.total_amount == 67700

    def test_invalid_cart_persists_nothing(self, mock_gateway_adapter):
        with pytest.raises(ValidationError):
            CheckoutService.create_checkout_session([])

        assert Order.objects.count() == 0
        mock_gateway_adapter.create_session.assert_not_called()


class TestSessionPassthrough:
    """Tests for session status and expiry."""

    def test_get_session_status(self, mock_gateway_adapter):
        mock_gateway_adapter.get_session_status.return_value = "status"

        assert CheckoutService.get_session_status("MF-1-A") == "status"
        mock_gateway_adapter.get_session_status.assert_called_once_with("MF-1-A")

    def test_expire_session(self, mock_gateway_adapter):
        CheckoutService.expire_session("MF-1-A")

        mock_gateway_adapter.expire_session.assert_called_once_with("MF-1-A")
