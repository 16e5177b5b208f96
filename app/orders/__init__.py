"""
Orders app for the Vipps-backed storefront.

This app handles:
- Cart validation against the product catalog
- Vipps Checkout session creation and status lookups
- Callback (webhook) handling from Vipps
- Capture, cancel and refund through the Vipps ePayment API
- Termination of orders abandoned mid-checkout

Usage:
    from orders.services import CheckoutService, PaymentMutationService

    session = CheckoutService.create_checkout_session(cart)
    PaymentMutationService.capture(session.reference)
"""
