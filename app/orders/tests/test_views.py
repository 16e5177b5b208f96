"""
Tests for the checkout and order admin API views.

Tests cover:
- Checkout session creation, status and expiry
- Admin order listing, detail and fulfilment updates
- Admin payment mutations (capture, cancel, refund, capture-all)
- Maintenance endpoints (sweep, abandoned stats, dashboard stats)
- Domain error to HTTP status mapping
"""

from datetime import timedelta

import pytest
from django.urls import reverse, reverse_lazy
from django.utils import timezone

from orders.adapters import CheckoutSessionResult
from orders.exceptions import GatewayUnavailableError
from orders.models import Order
from orders.state_machines import GatewayPaymentState, OrderStatus
from orders.tests.factories import OrderFactory, make_payment_details, make_session_status


def checkout_payload(**overrides):
    payload = {
        "items": [{"id": "1", "quantity": 2, "price": "299.00", "size": "M", "name": "Basic Tee"}],
        "customer_info": {"email": "ola@example.com", "phone_number": "4791234567"},
    }
    payload.update(overrides)
    return payload


# =============================================================================
# Checkout
# =============================================================================


@pytest.mark.django_db
class TestCheckoutSessionView:
    """Tests for POST /checkout/session/."""

    url = reverse_lazy("orders:checkout_session")

    def test_creates_session(self, api_client, mock_gateway_adapter):
        """Should return the Vipps session and persist a PAYMENT_PENDING order."""
        mock_gateway_adapter.create_session.return_value = CheckoutSessionResult(
            token="tok_123",
            checkout_frontend_url="https://checkout.vipps.no/session",
            polling_url="https://apitest.vipps.no/checkout/v3/session/poll",
        )

        response = api_client.post(self.url, checkout_payload(), format="json")

        assert response.status_code == 201
        assert response.data["token"] == "tok_123"
        assert response.data["checkout_frontend_url"] == "https://checkout.vipps.no/session"
        order = Order.objects.get(reference=response.data["reference"])
        assert order.status == OrderStatus.PAYMENT_PENDING
        assert order.total_amount == 59800 + 7900

    def test_line_items_ignore_client_name_and_image(self, api_client, mock_gateway_adapter):
        mock_gateway_adapter.create_session.return_value = CheckoutSessionResult(
            token="tok_123",
            checkout_frontend_url="https://checkout.vipps.no/session",
        )
        item = {
            "id": "1",
            "quantity": 1,
            "price": "299.00",
            "size": "M",
            "name": "Gratis Tee",
            "image": "https://elsewhere.example/tee.png",
        }

        response = api_client.post(self.url, checkout_payload(items=[item]), format="json")

        assert response.status_code == 201
        line = Order.objects.get(reference=response.data["reference"]).items.get()
        assert line.product_name == "Basic Tee"
        assert line.product_image != "https://elsewhere.example/tee.png"

    def test_empty_cart_rejected(self, api_client, mock_gateway_adapter):
        response = api_client.post(self.url, checkout_payload(items=[]), format="json")

        assert response.status_code == 400
        assert Order.objects.count() == 0
        mock_gateway_adapter.create_session.assert_not_called()

    def test_price_mismatch_returns_error_code(self, api_client, mock_gateway_adapter):
        """Domain validation errors carry their error code."""
        payload = checkout_payload(items=[{"id": "1", "quantity": 1, "price": "199.00"}])

        response = api_client.post(self.url, payload, format="json")

        assert response.status_code == 400
        assert response.data["error_code"] == "PRICE_MISMATCH"
        assert Order.objects.count() == 0

    def test_gateway_failure_returns_502_and_keeps_order(self, api_client, mock_gateway_adapter):
        """The PENDING order survives a Vipps outage."""
        mock_gateway_adapter.create_session.side_effect = GatewayUnavailableError("Vipps down")

        response = api_client.post(self.url, checkout_payload(), format="json")

        assert response.status_code == 502
        assert response.data["error_code"] == "GATEWAY_UNAVAILABLE"
        assert Order.objects.get().status == OrderStatus.PENDING


@pytest.mark.django_db
class TestCheckoutSessionDetailView:
    """Tests for GET/expire on /checkout/session/<reference>/."""

    def test_returns_session_status(self, api_client, mock_gateway_adapter):
        mock_gateway_adapter.get_session_status.return_value = make_session_status("MF-1")

        response = api_client.get(reverse("orders:checkout_session_detail", args=["MF-1"]))

        assert response.status_code == 200
        assert response.data["session_state"] == "PaymentSuccessful"
        assert response.data["payment_state"] == "AUTHORIZED"
        assert response.data["amount"] == 67700

    def test_expire_session(self, api_client, mock_gateway_adapter):
        response = api_client.post(reverse("orders:checkout_session_expire", args=["MF-1"]))

        assert response.status_code == 200
        assert response.data == {"reference": "MF-1", "expired": True}
        mock_gateway_adapter.expire_session.assert_called_once_with("MF-1")


# =============================================================================
# Admin: Orders
# =============================================================================


@pytest.mark.django_db
class TestAdminPermissions:
    """Admin endpoints are staff only."""

    def test_anonymous_rejected(self, api_client):
        response = api_client.get(reverse("orders:admin_order_list"))

        assert response.status_code == 403

    def test_non_staff_rejected(self, api_client, customer_user):
        api_client.force_authenticate(user=customer_user)

        response = api_client.get(reverse("orders:admin_stats"))

        assert response.status_code == 403


@pytest.mark.django_db
class TestAdminOrderListView:
    """Tests for GET /admin/orders/."""

    url = reverse_lazy("orders:admin_order_list")

    def test_lists_orders_with_pagination(self, staff_client):
        for _ in range(3):
            OrderFactory()

        response = staff_client.get(self.url, {"limit": 2, "offset": 0})

        assert response.status_code == 200
        assert len(response.data["orders"]) == 2
        assert response.data["pagination"] == {"limit": 2, "offset": 0, "total": 3}

    def test_filters_by_status(self, staff_client, pending_order, paid_order):
        response = staff_client.get(self.url, {"status": "PAID"})

        assert [o["reference"] for o in response.data["orders"]] == [paid_order.reference]
        assert response.data["pagination"]["total"] == 1

    def test_status_all_returns_everything(self, staff_client, pending_order, paid_order):
        response = staff_client.get(self.url, {"status": "ALL"})

        assert response.data["pagination"]["total"] == 2

    def test_unknown_status_rejected(self, staff_client):
        response = staff_client.get(self.url, {"status": "LOST"})

        assert response.status_code == 400


@pytest.mark.django_db
class TestAdminOrderDetailView:
    """Tests for GET /admin/orders/<reference>/."""

    def test_returns_order_with_items(self, staff_client, pending_order):
        response = staff_client.get(
            reverse("orders:admin_order_detail", args=[pending_order.reference])
        )

        assert response.status_code == 200
        assert response.data["reference"] == pending_order.reference
        assert response.data["total_amount"] == 67700
        assert response.data["items"][0]["product_name"] == "Basic Tee"
        assert set(response.data["shipping_address"]) == {
            "first_name",
            "last_name",
            "street",
            "postal_code",
            "city",
            "country",
        }

    def test_unknown_reference_returns_404(self, staff_client):
        response = staff_client.get(reverse("orders:admin_order_detail", args=["MF-0-NONE"]))

        assert response.status_code == 404
        assert response.data["error_code"] == "ORDER_NOT_FOUND"


@pytest.mark.django_db
class TestAdminOrderStatusView:
    """Tests for PATCH /admin/orders/<reference>/status/."""

    def test_ship_paid_order(self, staff_client, paid_order):
        response = staff_client.patch(
            reverse("orders:admin_order_status", args=[paid_order.reference]),
            {"status": "SHIPPED"},
            format="json",
        )

        assert response.status_code == 200
        assert response.data["status"] == OrderStatus.SHIPPED
        assert response.data["shipped_at"] is not None

    def test_invalid_transition_returns_409(self, staff_client, pending_order):
        """A PENDING order cannot be shipped."""
        response = staff_client.patch(
            reverse("orders:admin_order_status", args=[pending_order.reference]),
            {"status": "SHIPPED"},
            format="json",
        )

        assert response.status_code == 409
        assert response.data["error_code"] == "INVALID_STATE_TRANSITION"
        assert Order.objects.get(pk=pending_order.pk).status == OrderStatus.PENDING

    def test_stale_version_returns_409(self, staff_client, paid_order):
        response = staff_client.patch(
            reverse("orders:admin_order_status", args=[paid_order.reference]),
            {"status": "SHIPPED", "version": paid_order.version + 5},
            format="json",
        )

        assert response.status_code == 409
        assert response.data["error_code"] == "STALE_RECORD"

    def test_non_fulfilment_status_rejected(self, staff_client, paid_order):
        response = staff_client.patch(
            reverse("orders:admin_order_status", args=[paid_order.reference]),
            {"status": "CANCELLED"},
            format="json",
        )

        assert response.status_code == 400


# =============================================================================
# Admin: Payment Mutations
# =============================================================================


@pytest.mark.django_db
class TestAdminPaymentMutationViews:
    """Tests for capture, cancel, refund and capture-all."""

    def test_capture(self, staff_client, reserved_order, mock_gateway_adapter):
        mock_gateway_adapter.get_payment_details.return_value = make_payment_details(
            GatewayPaymentState.RESERVED, reference=reserved_order.reference
        )
        mock_gateway_adapter.capture.return_value = make_payment_details(
            GatewayPaymentState.CAPTURED, reference=reserved_order.reference
        )

        response = staff_client.post(
            reverse("orders:admin_order_capture", args=[reserved_order.reference])
        )

        assert response.status_code == 200
        assert response.data["status"] == OrderStatus.PAID

    def test_capture_wrong_payment_state_returns_409(
        self, staff_client, reserved_order, mock_gateway_adapter
    ):
        mock_gateway_adapter.get_payment_details.return_value = make_payment_details(
            GatewayPaymentState.CANCELLED, reference=reserved_order.reference
        )

        response = staff_client.post(
            reverse("orders:admin_order_capture", args=[reserved_order.reference])
        )

        assert response.status_code == 409
        assert response.data["error_code"] == "INVALID_PAYMENT_STATE"
        mock_gateway_adapter.capture.assert_not_called()

    def test_cancel_with_reason(self, staff_client, reserved_order, mock_gateway_adapter):
        mock_gateway_adapter.get_payment_details.return_value = make_payment_details(
            GatewayPaymentState.RESERVED, reference=reserved_order.reference
        )
        mock_gateway_adapter.cancel.return_value = make_payment_details(
            GatewayPaymentState.CANCELLED, reference=reserved_order.reference
        )

        response = staff_client.post(
            reverse("orders:admin_order_cancel", args=[reserved_order.reference]),
            {"reason": "Out of stock"},
            format="json",
        )

        assert response.status_code == 200
        assert response.data["status"] == OrderStatus.CANCELLED
        assert mock_gateway_adapter.cancel.call_args.kwargs["reason"] == "Out of stock"

    def test_refund_invalid_amount_returns_400(
        self, staff_client, paid_order, mock_gateway_adapter
    ):
        mock_gateway_adapter.get_payment_details.return_value = make_payment_details(
            GatewayPaymentState.CAPTURED, reference=paid_order.reference
        )

        response = staff_client.post(
            reverse("orders:admin_order_refund", args=[paid_order.reference]),
            {"amount": 999999},
            format="json",
        )

        assert response.status_code == 400
        assert response.data["error_code"] == "INVALID_REFUND_AMOUNT"
        mock_gateway_adapter.refund.assert_not_called()

    def test_full_refund(self, staff_client, paid_order, mock_gateway_adapter):
        mock_gateway_adapter.get_payment_details.side_effect = [
            make_payment_details(GatewayPaymentState.CAPTURED, reference=paid_order.reference),
            make_payment_details(
                GatewayPaymentState.REFUNDED, reference=paid_order.reference, refunded=67700
            ),
        ]

        response = staff_client.post(
            reverse("orders:admin_order_refund", args=[paid_order.reference]),
            {},
            format="json",
        )

        assert response.status_code == 200
        assert response.data["status"] == OrderStatus.REFUNDED
        assert mock_gateway_adapter.refund.call_args.kwargs["amount"] == 67700

    def test_capture_all(self, staff_client, reserved_order, mock_gateway_adapter):
        mock_gateway_adapter.get_payment_details.return_value = make_payment_details(
            GatewayPaymentState.RESERVED, reference=reserved_order.reference
        )
        mock_gateway_adapter.capture.return_value = make_payment_details(
            GatewayPaymentState.CAPTURED, reference=reserved_order.reference
        )

        response = staff_client.post(reverse("orders:admin_capture_all"))

        assert response.status_code == 200
        assert response.data == {"successful": 1, "failed": 0, "total": 1, "errors": []}


# =============================================================================
# Admin: Maintenance and Stats
# =============================================================================


@pytest.mark.django_db
class TestAdminMaintenanceViews:
    """Tests for sweep, abandoned stats and dashboard stats."""

    def _backdate(self, order, minutes):
        Order.objects.filter(pk=order.pk).update(
            created_at=timezone.now() - timedelta(minutes=minutes)
        )

    def test_sweep_terminates_old_unpaid_orders(self, staff_client):
        old = OrderFactory()
        recent = OrderFactory()
        self._backdate(old, 120)

        response = staff_client.post(
            reverse("orders:admin_sweep"), {"max_age_minutes": 60}, format="json"
        )

        assert response.status_code == 200
        assert response.data == {"terminated": 1, "errors": 0, "total": 1}
        assert Order.objects.get(pk=old.pk).status == OrderStatus.TERMINATED
        assert Order.objects.get(pk=recent.pk).status == OrderStatus.PENDING

    def test_abandoned_stats(self, staff_client):
        old = OrderFactory()
        OrderFactory()
        OrderFactory(status=OrderStatus.PAID)
        self._backdate(old, 120)

        response = staff_client.get(
            reverse("orders:admin_abandoned_stats"), {"max_age_minutes": 60}
        )

        assert response.status_code == 200
        assert response.data == {"total_pending": 2, "abandoned": 1, "recent": 1}

    def test_dashboard_stats(self, staff_client, pending_order, reserved_order, paid_order):
        OrderFactory(status=OrderStatus.SHIPPED)
        OrderFactory(status=OrderStatus.CANCELLED)

        response = staff_client.get(reverse("orders:admin_stats"))

        assert response.status_code == 200
        assert response.data["total_orders"] == 5
        assert response.data["total_revenue"] == 2 * 67700
        assert response.data["pending_orders"] == 1
        assert response.data["reserved_orders"] == 1
        assert response.data["paid_orders"] == 1
        assert response.data["shipped_orders"] == 1
        assert response.data["cancelled_orders"] == 1
