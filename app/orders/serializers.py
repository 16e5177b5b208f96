"""
Serializers for the checkout and order admin API.

Provides:
- CheckoutSessionRequestSerializer: Cart submitted by the storefront
- CheckoutSessionSerializer: Session handed back to the storefront
- SessionStatusSerializer: Live Vipps session state
- OrderSerializer: Full order for the admin dashboard
- FulfilmentStatusSerializer / CancelPaymentSerializer / RefundSerializer /
  SweepSerializer: Admin request bodies
"""

from __future__ import annotations

from rest_framework import serializers

from orders.models import Order, OrderLineItem
from orders.services import CartItem, CustomerHints
from orders.state_machines import OrderStatus


# =============================================================================
# Checkout
# =============================================================================


class CartItemSerializer(serializers.Serializer):
    """One cart line. The price is in kroner, as displayed in the shop."""

    id = serializers.CharField(max_length=64)
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.DecimalField(max_digits=10, decimal_places=2)
    size = serializers.CharField(max_length=16, required=False, allow_blank=True, allow_null=True)


class CustomerInfoSerializer(serializers.Serializer):
    email = serializers.EmailField(required=False, allow_blank=True)
    name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    phone_number = serializers.CharField(max_length=32, required=False, allow_blank=True)


class CheckoutSessionRequestSerializer(serializers.Serializer):
    """
    Body of POST /checkout/session/.

    Example:
        {
            "items": [{"id": "1", "quantity": 2, "price": "299.00", "size": "M"}],
            "customer_info": {"email": "ola@example.com"}
        }
    """

    items = CartItemSerializer(many=True, allow_empty=False)
    customer_info = CustomerInfoSerializer(required=False)

    def get_cart(self) -> list[CartItem]:
        return [
            CartItem(
                product_id=item["id"],
                quantity=item["quantity"],
                price=item["price"],
                size=item.get("size") or None,
            )
            for item in self.validated_data["items"]
        ]

    def get_customer(self) -> CustomerHints | None:
        info = self.validated_data.get("customer_info")
        if not info:
            return None
        return CustomerHints(
            email=info.get("email") or None,
            name=info.get("name") or None,
            phone_number=info.get("phone_number") or None,
        )


class CheckoutSessionSerializer(serializers.Serializer):
    reference = serializers.CharField()
    token = serializers.CharField()
    checkout_frontend_url = serializers.URLField()
    polling_url = serializers.CharField(allow_null=True)


class SessionStatusSerializer(serializers.Serializer):
    reference = serializers.CharField()
    session_state = serializers.CharField()
    session_id = serializers.CharField(allow_null=True)
    payment_method = serializers.CharField(allow_null=True)
    payment_state = serializers.CharField(allow_null=True)
    amount = serializers.IntegerField(allow_null=True)
    currency = serializers.CharField(allow_null=True)


# =============================================================================
# Orders
# =============================================================================


class OrderLineItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderLineItem
        fields = [
            "id",
            "product_id",
            "product_name",
            "product_image",
            "size",
            "quantity",
            "unit_price",
            "total_price",
        ]
        read_only_fields = fields


class AddressSerializer(serializers.Serializer):
    """Flattens the prefixed address columns of an order."""

    first_name = serializers.CharField(allow_null=True)
    last_name = serializers.CharField(allow_null=True)
    street = serializers.CharField(allow_null=True)
    postal_code = serializers.CharField(allow_null=True)
    city = serializers.CharField(allow_null=True)
    country = serializers.CharField(allow_null=True)


class OrderSerializer(serializers.ModelSerializer):
    """
    Read-only order representation for the admin dashboard.

    Amounts are integers in øre.
    """

    items = OrderLineItemSerializer(many=True, read_only=True)
    shipping_address = serializers.SerializerMethodField()
    billing_address = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "reference",
            "status",
            "version",
            "customer_email",
            "customer_name",
            "customer_phone",
            "shipping_address",
            "billing_address",
            "items",
            "items_total",
            "shipping_price",
            "total_amount",
            "currency",
            "payment_method",
            "gateway_payment_state",
            "created_at",
            "updated_at",
            "paid_at",
            "shipped_at",
            "delivered_at",
            "cancelled_at",
            "refunded_at",
            "terminated_at",
        ]
        read_only_fields = fields

    def _address(self, order: Order, prefix: str) -> dict:
        return AddressSerializer(
            {
                name: getattr(order, f"{prefix}_{name}")
                for name in AddressSerializer().fields
            }
        ).data

    def get_shipping_address(self, order: Order) -> dict:
        return self._address(order, "shipping")

    def get_billing_address(self, order: Order) -> dict:
        return self._address(order, "billing")


class OrderListQuerySerializer(serializers.Serializer):
    limit = serializers.IntegerField(min_value=1, max_value=500, default=50)
    offset = serializers.IntegerField(min_value=0, default=0)
    status = serializers.ChoiceField(
        choices=["ALL", *OrderStatus.values],
        required=False,
    )


# =============================================================================
# Admin Requests
# =============================================================================


class FulfilmentStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[OrderStatus.SHIPPED, OrderStatus.DELIVERED])
    shipped_at = serializers.DateTimeField(required=False)
    version = serializers.IntegerField(
        min_value=1,
        required=False,
        help_text="Version the client last saw; rejected with 409 if stale",
    )


class CancelPaymentSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)


class RefundSerializer(serializers.Serializer):
    amount = serializers.IntegerField(
        min_value=1,
        required=False,
        help_text="Amount in øre; defaults to everything still refundable",
    )


class SweepSerializer(serializers.Serializer):
    max_age_minutes = serializers.IntegerField(min_value=1, required=False)


class CaptureAllResultSerializer(serializers.Serializer):
    successful = serializers.IntegerField()
    failed = serializers.IntegerField()
    total = serializers.IntegerField()
    errors = serializers.ListField(child=serializers.CharField())
