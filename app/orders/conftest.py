"""
Pytest fixtures for order tests.

Shared by every orders test package (models, adapters, services, webhooks,
workers). Provides orders in each status, a mocked Vipps adapter, a
recording notifier, and a Redis stand-in for the distributed lock.

Usage:
    def test_capture(reserved_order, mock_gateway_adapter):
        mock_gateway_adapter.get_payment_details.return_value = make_payment_details(
            GatewayPaymentState.RESERVED, reference=reserved_order.reference
        )
        PaymentMutationService.capture(reserved_order.reference)
"""

from unittest.mock import MagicMock

import pytest
from rest_framework.test import APIClient

from orders.adapters import VippsAdapter
from orders.notifications import set_notifier
from orders.services import CheckoutService, PaymentMutationService
from orders.state_machines import GatewayPaymentState, OrderStatus
from orders.tests.factories import OrderFactory, StaffUserFactory, UserFactory

CALLBACK_SECRET = "test-callback-secret"


# =============================================================================
# Settings and Collaborators
# =============================================================================


@pytest.fixture(autouse=True)
def order_settings(settings):
    """Deterministic order settings for every test."""
    settings.VIPPS_CALLBACK_SECRET = CALLBACK_SECRET
    settings.VIPPS_CALLBACK_URL = "https://api.example.com/api/v1/orders/vipps/callback/"
    settings.VIPPS_API_BASE_URL = "https://apitest.vipps.no"
    settings.VIPPS_CLIENT_ID = "test-client-id"
    settings.VIPPS_CLIENT_SECRET = "test-client-secret"
    settings.VIPPS_SUBSCRIPTION_KEY = "test-subscription-key"
    settings.VIPPS_MSN = "123456"
    settings.FRONTEND_URL = "https://shop.example.com"
    settings.ORDERS_CURRENCY = "NOK"
    settings.ORDERS_SHIPPING_PRICE_ORE = 7900
    settings.ORDERS_PRICE_TOLERANCE = 0.01
    settings.ORDERS_ABANDONED_MAX_AGE_MINUTES = 1440
    settings.ORDER_NOTIFICATION_EMAIL = "shop@example.com"
    return settings


@pytest.fixture(autouse=True)
def mock_redis(mocker):
    """
    Redis stand-in for DistributedLock.

    Every lock is granted and released by default; set
    mock_redis.set.return_value = False to simulate a held lock.
    """
    redis = MagicMock()
    redis.set.return_value = True
    redis.eval.return_value = 1
    mocker.patch("orders.locks.get_redis_connection", return_value=redis)
    return redis


@pytest.fixture(autouse=True)
def reset_order_collaborators():
    """Restore default adapters, catalog and notifier after each test."""
    yield
    CheckoutService.set_gateway_adapter(None)
    CheckoutService.set_catalog(None)
    PaymentMutationService.set_gateway_adapter(None)
    set_notifier(None)


@pytest.fixture
def mock_gateway_adapter():
    """Mocked VippsAdapter installed on both orchestrators."""
    adapter = MagicMock(spec=VippsAdapter)
    CheckoutService.set_gateway_adapter(adapter)
    PaymentMutationService.set_gateway_adapter(adapter)
    return adapter


@pytest.fixture
def mock_notifier():
    """Recording notifier installed for the webhook processor."""
    notifier = MagicMock()
    set_notifier(notifier)
    return notifier


# =============================================================================
# Order Fixtures
# =============================================================================


@pytest.fixture
def pending_order(db):
    """Order persisted at checkout, no Vipps session yet."""
    return OrderFactory()


@pytest.fixture
def payment_pending_order(db):
    """Order with a Vipps session awaiting payment."""
    return OrderFactory(status=OrderStatus.PAYMENT_PENDING, gateway_session_id="sess_test_123")


@pytest.fixture
def reserved_order(db):
    """Order whose payment is authorized but not captured."""
    return OrderFactory(
        status=OrderStatus.RESERVED,
        gateway_payment_state=GatewayPaymentState.AUTHORIZED,
        customer_email="ola.nordmann@example.com",
        customer_name="Ola Nordmann",
    )


@pytest.fixture
def paid_order(db):
    """Order whose payment was captured."""
    return OrderFactory(
        status=OrderStatus.PAID,
        gateway_payment_state=GatewayPaymentState.CAPTURED,
        customer_email="ola.nordmann@example.com",
        customer_name="Ola Nordmann",
    )


@pytest.fixture
def shipped_order(db):
    return OrderFactory(status=OrderStatus.SHIPPED)


@pytest.fixture
def cancelled_order(db):
    return OrderFactory(status=OrderStatus.CANCELLED)


@pytest.fixture
def terminated_order(db):
    return OrderFactory(status=OrderStatus.TERMINATED)


# =============================================================================
# API Clients
# =============================================================================


@pytest.fixture
def staff_user(db):
    return StaffUserFactory()


@pytest.fixture
def customer_user(db):
    return UserFactory()


@pytest.fixture
def api_client():
    """Unauthenticated DRF client."""
    return APIClient()


@pytest.fixture
def staff_client(staff_user):
    """DRF client authenticated as a shop administrator."""
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client
