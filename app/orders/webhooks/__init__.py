"""
Callback handling for Vipps Checkout session events.

Callbacks are authenticated with a per-reference token, then dispatched
to a handler chosen by session state. The outcome of a payment is always
re-read from Vipps before an order changes.

Usage:
    # In urls.py
    from orders.webhooks.views import vipps_callback

    urlpatterns = [
        path("vipps/callback/", vipps_callback, name="vipps_callback"),
    ]
"""

from orders.webhooks.handlers import CallbackEvent, dispatch_callback, register_handler
from orders.webhooks.views import vipps_callback

__all__ = [
    "CallbackEvent",
    "dispatch_callback",
    "register_handler",
    "vipps_callback",
]
