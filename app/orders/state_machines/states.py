"""
State enums for the order lifecycle.

These are Django TextChoices for database storage and admin integration,
plus the raw string vocabularies the payment gateway uses.

State Machines Overview:

Order Status:
    PENDING → PAYMENT_PENDING                       (gateway session created)
    PENDING/PAYMENT_PENDING → PAID | RESERVED       (payment callback)
    RESERVED → PAID | CANCELLED                     (admin capture / cancel)
    PAID → REFUNDED                                 (admin full refund)
    PAID → SHIPPED → DELIVERED                      (fulfilment)
    PENDING/PAYMENT_PENDING → CANCELLED             (payment terminated/failed)
    PENDING/PAYMENT_PENDING → TERMINATED            (abandoned order reaper)

Gateway Payment State (ePayment API):
    INITIATED → AUTHORIZED/RESERVED → CAPTURED → PARTIALLY_REFUNDED → REFUNDED
    RESERVED → CANCELLED
    INITIATED → TERMINATED
"""

from django.db import models


class OrderStatus(models.TextChoices):
    """
    States for the Order model lifecycle.

    Terminal states: DELIVERED, CANCELLED, REFUNDED, TERMINATED
    """

    PENDING = "PENDING", "Pending"
    PAYMENT_PENDING = "PAYMENT_PENDING", "Payment Pending"
    RESERVED = "RESERVED", "Reserved"
    PAID = "PAID", "Paid"
    SHIPPED = "SHIPPED", "Shipped"
    DELIVERED = "DELIVERED", "Delivered"
    CANCELLED = "CANCELLED", "Cancelled"
    REFUNDED = "REFUNDED", "Refunded"
    TERMINATED = "TERMINATED", "Terminated"


TERMINAL_STATUSES = frozenset(
    {
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
        OrderStatus.TERMINATED,
    }
)

# Orders the customer has not finished paying for yet
UNPAID_STATUSES = (OrderStatus.PENDING, OrderStatus.PAYMENT_PENDING)

# Transition name -> (allowed sources, target). The Order model builds its
# django-fsm transitions from this table; nothing else may move a status.
ORDER_TRANSITIONS: dict[str, tuple[tuple[str, ...], str]] = {
    "start_payment": ((OrderStatus.PENDING,), OrderStatus.PAYMENT_PENDING),
    "reserve": (UNPAID_STATUSES, OrderStatus.RESERVED),
    "mark_paid": (
        (OrderStatus.PENDING, OrderStatus.PAYMENT_PENDING, OrderStatus.RESERVED),
        OrderStatus.PAID,
    ),
    "cancel": (
        (OrderStatus.PENDING, OrderStatus.PAYMENT_PENDING, OrderStatus.RESERVED),
        OrderStatus.CANCELLED,
    ),
    "refund": ((OrderStatus.PAID,), OrderStatus.REFUNDED),
    "ship": ((OrderStatus.PAID,), OrderStatus.SHIPPED),
    "deliver": ((OrderStatus.SHIPPED,), OrderStatus.DELIVERED),
    "terminate": (UNPAID_STATUSES, OrderStatus.TERMINATED),
}

# Statuses that count towards revenue on the dashboard
REVENUE_STATUSES = (OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.DELIVERED)


class GatewayPaymentState(models.TextChoices):
    """
    Payment states reported by the gateway's ePayment API.

    The gateway is authoritative for these; the local copy on an order is
    advisory only.
    """

    INITIATED = "INITIATED", "Initiated"
    AUTHORIZED = "AUTHORIZED", "Authorized"
    RESERVED = "RESERVED", "Reserved"
    CAPTURED = "CAPTURED", "Captured"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED", "Partially Refunded"
    REFUNDED = "REFUNDED", "Refunded"
    CANCELLED = "CANCELLED", "Cancelled"
    TERMINATED = "TERMINATED", "Terminated"
    UNKNOWN = "UNKNOWN", "Unknown"


class GatewaySessionState(models.TextChoices):
    """Checkout session states delivered in gateway callbacks."""

    SESSION_CREATED = "SessionCreated", "Session Created"
    PAYMENT_INITIATED = "PaymentInitiated", "Payment Initiated"
    SESSION_EXPIRED = "SessionExpired", "Session Expired"
    PAYMENT_SUCCESSFUL = "PaymentSuccessful", "Payment Successful"
    PAYMENT_TERMINATED = "PaymentTerminated", "Payment Terminated"
    PAYMENT_INITIATION_FAILED = "PaymentInitiationFailed", "Payment Initiation Failed"
