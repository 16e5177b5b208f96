"""
Factory Boy factories for order test data.

Usage:
    from orders.tests.factories import OrderFactory, OrderLineItemFactory

    # PENDING order for 2x Basic Tee plus shipping
    order = OrderFactory()

    # Order in a specific status (creation only; transitions go through
    # OrderStore in the code under test)
    order = OrderFactory(status=OrderStatus.RESERVED)

    # Order without line items (as created from a callback)
    order = OrderFactory(items=None)

    # Gateway payloads
    details = make_payment_details(GatewayPaymentState.RESERVED, reference=order.reference)
    status = make_session_status(order.reference, payment_state="CAPTURED")
"""

import factory

from orders.adapters import ContactDetails, SessionStatus, UserDetails, parse_payment_details
from orders.models import Order, OrderLineItem
from orders.state_machines import GatewayPaymentState, OrderStatus


class UserFactory(factory.django.DjangoModelFactory):
    """Factory for django.contrib.auth users."""

    class Meta:
        model = "auth.User"
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.Sequence(lambda n: f"user{n}@example.com")
    password = factory.PostGenerationMethodCall("set_password", "testpass123")
    is_active = True


class StaffUserFactory(UserFactory):
    """Shop administrator allowed on the admin endpoints."""

    is_staff = True


class OrderFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating Order instances.

    Default creates a PENDING order: 2x Basic Tee (59800 øre) plus
    7900 øre shipping, with one matching line item.

    Example:
        order = OrderFactory(status=OrderStatus.PAID, customer_email="ola@example.com")
    """

    class Meta:
        model = Order
        skip_postgeneration_save = True

    reference = factory.Sequence(lambda n: f"MF-1700000000000-T{n:05d}")
    status = OrderStatus.PENDING
    items_total = 59800
    shipping_price = 7900
    total_amount = factory.LazyAttribute(lambda o: o.items_total + o.shipping_price)
    currency = "NOK"

    items = factory.RelatedFactory(
        "orders.tests.factories.OrderLineItemFactory",
        factory_related_name="order",
        quantity=2,
    )


class OrderLineItemFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating OrderLineItem instances.

    Default is one Basic Tee in size M at 299 kr.
    """

    class Meta:
        model = OrderLineItem
        skip_postgeneration_save = True

    order = factory.SubFactory(OrderFactory, items=None)
    position = 0
    product_id = "1"
    product_name = "Basic Tee"
    product_image = "/merch/basic-tee-front.png"
    size = "M"
    unit_price = 29900
    quantity = 1
    total_price = factory.LazyAttribute(lambda o: o.unit_price * o.quantity)


# =============================================================================
# Gateway Payload Builders
# =============================================================================


def make_payment_details(
    state: str,
    reference: str = "MF-1700000000000-T00000",
    amount: int = 67700,
    captured: int | None = None,
    refunded: int = 0,
):
    """
    Build a PaymentDetails variant the way the adapter parses it.

    The aggregate is derived from the requested state so that the
    effective state matches.
    """
    if state in (GatewayPaymentState.RESERVED, GatewayPaymentState.AUTHORIZED):
        aggregate = {"authorizedAmount": {"value": amount}}
    elif state in (
        GatewayPaymentState.CAPTURED,
        GatewayPaymentState.PARTIALLY_REFUNDED,
        GatewayPaymentState.REFUNDED,
    ):
        aggregate = {
            "authorizedAmount": {"value": amount},
            "capturedAmount": {"value": amount if captured is None else captured},
            "refundedAmount": {"value": refunded},
        }
    elif state == GatewayPaymentState.CANCELLED:
        aggregate = {
            "authorizedAmount": {"value": amount},
            "cancelledAmount": {"value": amount},
        }
    else:
        aggregate = {}

    return parse_payment_details(
        {
            "reference": reference,
            "state": "AUTHORIZED" if state == GatewayPaymentState.RESERVED else str(state),
            "amount": {"currency": "NOK", "value": amount},
            "aggregate": aggregate,
            "paymentMethod": {"type": "WALLET"},
        }
    )


def make_session_status(
    reference: str,
    session_state: str = "PaymentSuccessful",
    payment_state: str | None = "AUTHORIZED",
    amount: int | None = 67700,
    email: str | None = "ola.nordmann@example.com",
    session_id: str = "sess_test_123",
):
    """Build a SessionStatus as returned by the Vipps session endpoint."""
    shipping = None
    if email:
        shipping = ContactDetails(
            first_name="Ola",
            last_name="Nordmann",
            email=email,
            phone_number="4791234567",
            street_address="Karl Johans gate 1",
            postal_code="0154",
            city="Oslo",
            country="NO",
        )
    return SessionStatus(
        reference=reference,
        session_state=session_state,
        session_id=session_id,
        payment_method="WALLET",
        payment_state=payment_state,
        amount=amount,
        currency="NOK" if amount is not None else None,
        shipping_details=shipping,
        user_details=UserDetails(user_id="vipps-user-1", email=email) if email else None,
    )
