"""
Celery tasks for order notifications.

This module provides async tasks for:
- Order confirmation email to the customer
- Payment failure notice to the shop

Usage:
    from orders.tasks import send_order_confirmation

    send_order_confirmation.delay("MF-1700000000-AB12CD")

These tasks are normally queued by orders.notifications, not called directly.
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

from orders.models import PLACEHOLDER_EMAIL, Order

logger = logging.getLogger(__name__)


SHOP_NAME = "Møller Fanclub"


def _format_kroner(amount: int) -> str:
    return f"{amount / 100:.0f} kr"


def _confirmation_body(order: Order) -> str:
    lines = [
        f"Hei {order.customer_name}!",
        "",
        f"Takk for din bestilling hos {SHOP_NAME}!",
        "",
        f"Ordrenummer: {order.reference}",
        "",
    ]
    for item in order.items.all():
        size = f" ({item.size})" if item.size else ""
        lines.append(f"{item.quantity}x {item.product_name}{size} - {_format_kroner(item.total_price)}")
    lines += [
        "",
        f"Frakt: {_format_kroner(order.shipping_price)}",
        f"Total: {_format_kroner(order.total_amount)}",
        "",
        "Med vennlig hilsen,",
        SHOP_NAME,
    ]
    return "\n".join(lines)


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 3},
    acks_late=True,
)
def send_order_confirmation(self, reference: str) -> bool:
    """
    Email the order confirmation to the customer.

    Returns:
        True if sent, False if skipped (unknown order or no real address)
    """
    order = Order.objects.filter(reference=reference).first()
    if order is None:
        logger.warning(f"Order {reference} not found, skipping confirmation")
        return False

    if not order.customer_email or order.customer_email == PLACEHOLDER_EMAIL:
        logger.info(
            f"Order {reference} has no customer email, skipping confirmation",
            extra={"reference": reference},
        )
        return False

    send_mail(
        subject=f"Ordrebekreftelse #{order.reference} - {SHOP_NAME}",
        message=_confirmation_body(order),
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[order.customer_email],
    )
    logger.info(
        f"Order confirmation sent for {reference}",
        extra={"reference": reference},
    )
    return True


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 3},
    acks_late=True,
)
def send_payment_failure_notice(self, reference: str, session_state: str) -> bool:
    """
    Notify the shop that a payment was terminated or failed.

    Returns:
        True if sent, False if no notification address is configured
    """
    recipient = settings.ORDER_NOTIFICATION_EMAIL
    if not recipient:
        logger.info(
            f"ORDER_NOTIFICATION_EMAIL not set, skipping failure notice for {reference}",
            extra={"reference": reference, "session_state": session_state},
        )
        return False

    message = "\n".join(
        [
            "Ordre feilet",
            "",
            f"Ordrenummer: {reference}",
            f"Status: {session_state}",
            "",
            f"Dette er en automatisk varsling fra {SHOP_NAME} ordresystem.",
        ]
    )
    send_mail(
        subject=f"Ordre feilet #{reference} - {SHOP_NAME}",
        message=message,
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[recipient],
    )
    logger.info(
        f"Payment failure notice sent for {reference}",
        extra={"reference": reference, "session_state": session_state},
    )
    return True


# =============================================================================
# Re-exported Worker Tasks
# =============================================================================
# Defined in orders.workers; re-exported so Celery autodiscover finds them.

from orders.workers import reap_abandoned_orders  # noqa: E402, F401
