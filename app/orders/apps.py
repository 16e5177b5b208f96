"""
Orders app configuration.

This app owns the order and payment lifecycle of the storefront:
- Checkout session creation with the payment gateway
- Gateway callback processing
- Administrator capture, cancel and refund
- Reaping of abandoned orders
"""

from django.apps import AppConfig


class OrdersConfig(AppConfig):
    """Configuration for the orders application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "orders"
    verbose_name = "Orders"
