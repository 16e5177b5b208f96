"""
Order and OrderLineItem models for the order/payment lifecycle.

Order is the aggregate root of a purchase attempt: one row per checkout
reference, carrying the customer snapshot, the immutable amounts and the
status managed by django-fsm. OrderLineItem rows snapshot the cart at
creation time so later catalog price changes never touch an existing order.

Usage:
    from orders.models import Order
    from orders.state_machines import OrderStatus

    order = Order.objects.create(
        reference="MF-1700000000-AB12CD",
        items_total=27900,
        shipping_price=7900,
        total_amount=35800,
    )

    # State transitions using django-fsm
    order.start_payment()  # PENDING -> PAYMENT_PENDING
    order.save()

Note:
    Services never call transitions directly; they go through the Order
    Store, which serializes per reference and translates
    TransitionNotAllowed into InvalidStateTransitionError.
"""

from __future__ import annotations

from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.exceptions import ValidationError
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from orders.state_machines import ORDER_TRANSITIONS, TERMINAL_STATUSES, OrderStatus

# Values written at checkout when the customer has not identified yet
PLACEHOLDER_EMAIL = "pending@example.com"
PLACEHOLDER_NAMES = frozenset({"Pending", "PENDING"})
PLACEHOLDER_NAME = "Pending"


def _sources(name: str) -> list[str]:
    return list(ORDER_TRANSITIONS[name][0])


def _target(name: str) -> str:
    return ORDER_TRANSITIONS[name][1]


class Order(UUIDPrimaryKeyMixin, BaseModel):
    """
    Aggregate root of a purchase attempt.

    Uses django-fsm for status management (protected field: direct
    assignment raises) and a version counter for optimistic locking.

    State Flow (happy path):
        PENDING -> PAYMENT_PENDING -> PAID -> SHIPPED -> DELIVERED

    Reservation Flow:
        PAYMENT_PENDING -> RESERVED -> PAID (capture) | CANCELLED (cancel)

    Failure Flows:
        PENDING/PAYMENT_PENDING -> CANCELLED (payment terminated)
        PENDING/PAYMENT_PENDING -> TERMINATED (abandoned)
        PAID -> REFUNDED (full refund)

    Fields:
        reference: External identifier shared with the gateway session
        status: Current FSM state
        gateway_*: Last known gateway session/payment data (advisory)
        customer_*, shipping_*, billing_*: Customer snapshot
        items_total/shipping_price/total_amount: Amounts in øre
        version: Optimistic locking version
        *_at timestamps: Track state transition times
    """

    # ==========================================================================
    # Identity
    # ==========================================================================

    reference = models.CharField(
        max_length=64,
        unique=True,
        help_text="Externally visible order reference, shared with the gateway",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=OrderStatus.PENDING,
        choices=OrderStatus.choices,
        db_index=True,
        protected=True,  # Prevent direct assignment outside transitions
        help_text="Current status of the order (managed by FSM)",
    )

    # ==========================================================================
    # Gateway Integration
    # ==========================================================================

    gateway_session_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Checkout session identifier returned by the gateway",
    )

    gateway_payment_state = models.CharField(
        max_length=32,
        null=True,
        blank=True,
        help_text="Last payment state reported by the gateway (advisory only)",
    )

    payment_method = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        help_text="Payment method reported by the gateway (e.g. WALLET, CARD)",
    )

    # ==========================================================================
    # Customer Snapshot
    # ==========================================================================

    customer_email = models.EmailField(
        default=PLACEHOLDER_EMAIL,
        help_text="Customer email (placeholder until the gateway confirms identity)",
    )

    customer_name = models.CharField(
        max_length=255,
        default=PLACEHOLDER_NAME,
        help_text="Customer display name",
    )

    customer_phone = models.CharField(
        max_length=32,
        null=True,
        blank=True,
        help_text="Customer phone number",
    )

    customer_details_confirmed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When gateway-provided customer details were written (write-once)",
    )

    # ==========================================================================
    # Shipping Address
    # ==========================================================================

    shipping_first_name = models.CharField(max_length=100, null=True, blank=True)
    shipping_last_name = models.CharField(max_length=100, null=True, blank=True)
    shipping_street = models.CharField(max_length=255, null=True, blank=True)
    shipping_postal_code = models.CharField(max_length=20, null=True, blank=True)
    shipping_city = models.CharField(max_length=100, null=True, blank=True)
    shipping_country = models.CharField(max_length=2, null=True, blank=True)

    # ==========================================================================
    # Billing Address
    # ==========================================================================

    billing_first_name = models.CharField(max_length=100, null=True, blank=True)
    billing_last_name = models.CharField(max_length=100, null=True, blank=True)
    billing_street = models.CharField(max_length=255, null=True, blank=True)
    billing_postal_code = models.CharField(max_length=20, null=True, blank=True)
    billing_city = models.CharField(max_length=100, null=True, blank=True)
    billing_country = models.CharField(max_length=2, null=True, blank=True)

    # ==========================================================================
    # Amounts (minor currency units)
    # ==========================================================================

    items_total = models.PositiveBigIntegerField(
        help_text="Sum of line totals in øre",
    )

    shipping_price = models.PositiveBigIntegerField(
        default=0,
        help_text="Shipping price in øre",
    )

    total_amount = models.PositiveBigIntegerField(
        help_text="items_total + shipping_price in øre (immutable)",
    )

    currency = models.CharField(
        max_length=3,
        default="NOK",
        help_text="ISO 4217 currency code",
    )

    # ==========================================================================
    # Concurrency Control
    # ==========================================================================

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    # ==========================================================================
    # State Timestamps
    # ==========================================================================

    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the order entered PAID (set exactly once)",
    )

    shipped_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the order was shipped",
    )

    delivered_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the order was delivered",
    )

    cancelled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the order was cancelled",
    )

    refunded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the order was fully refunded",
    )

    terminated_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the order was terminated as abandoned",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        indexes = [
            models.Index(fields=["status", "created_at"], name="orders_status_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(total_amount=F("items_total") + F("shipping_price")),
                name="order_total_matches_parts",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.total_amount / 100:.2f} {self.currency}"
        return f"Order({self.reference}, {self.status}, {amount_display})"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_total_amount = instance.__dict__.get("total_amount")
        return instance

    def save(self, *args, **kwargs):
        """
        Save with amount invariants and version auto-increment.

        On insert the total must equal items_total + shipping_price; on
        update the total must not have changed since the row was loaded.
        """
        is_update = self.pk and not self._state.adding and not kwargs.get("force_insert", False)
        if not is_update:
            if self.total_amount != self.items_total + self.shipping_price:
                raise ValidationError(
                    "Order total must equal items total plus shipping",
                    error_code="TOTAL_MISMATCH",
                    details={
                        "items_total": self.items_total,
                        "shipping_price": self.shipping_price,
                        "total_amount": self.total_amount,
                    },
                )
        else:
            loaded_total = getattr(self, "_loaded_total_amount", None)
            if loaded_total is not None and loaded_total != self.total_amount:
                raise ValidationError(
                    "Order total is immutable",
                    error_code="TOTAL_IMMUTABLE",
                    details={"reference": self.reference},
                )
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    # ==========================================================================
    # Customer Details
    # ==========================================================================

    @property
    def needs_customer_details(self) -> bool:
        """Whether the customer snapshot still holds checkout placeholders."""
        return (
            not self.customer_email
            or self.customer_email == PLACEHOLDER_EMAIL
            or self.customer_name in PLACEHOLDER_NAMES
            or not self.shipping_first_name
            or not self.shipping_street
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=_sources("start_payment"), target=_target("start_payment"))
    def start_payment(self, session_id: str | None = None):
        """
        Gateway checkout session was created.

        Transition: PENDING -> PAYMENT_PENDING
        """
        if session_id:
            self.gateway_session_id = session_id

    @transition(field=status, source=_sources("reserve"), target=_target("reserve"))
    def reserve(self):
        """
        Funds are authorized but not captured.

        Transition: PENDING/PAYMENT_PENDING -> RESERVED
        """
        pass

    @transition(field=status, source=_sources("mark_paid"), target=_target("mark_paid"))
    def mark_paid(self):
        """
        Payment captured, either reported by callback or captured by an admin.

        Transition: PENDING/PAYMENT_PENDING/RESERVED -> PAID
        """
        if self.paid_at is None:
            self.paid_at = timezone.now()

    @transition(field=status, source=_sources("cancel"), target=_target("cancel"))
    def cancel(self):
        """
        Payment terminated, failed, or reservation cancelled.

        Transition: PENDING/PAYMENT_PENDING/RESERVED -> CANCELLED
        """
        self.cancelled_at = timezone.now()

    @transition(field=status, source=_sources("refund"), target=_target("refund"))
    def refund(self):
        """
        Captured amount was refunded in full.

        Transition: PAID -> REFUNDED
        """
        self.refunded_at = timezone.now()

    @transition(field=status, source=_sources("ship"), target=_target("ship"))
    def ship(self, shipped_at=None):
        """Transition: PAID -> SHIPPED"""
        self.shipped_at = shipped_at or timezone.now()

    @transition(field=status, source=_sources("deliver"), target=_target("deliver"))
    def deliver(self):
        """Transition: SHIPPED -> DELIVERED"""
        self.delivered_at = timezone.now()

    @transition(field=status, source=_sources("terminate"), target=_target("terminate"))
    def terminate(self):
        """
        Abandoned before payment completed.

        Transition: PENDING/PAYMENT_PENDING -> TERMINATED
        """
        self.terminated_at = timezone.now()


class OrderLineItem(UUIDPrimaryKeyMixin, BaseModel):
    """
    Snapshot of one cart line at checkout time.

    Line items are written together with their order and never updated.
    """

    order = models.ForeignKey(
        Order,
        on_delete=models.PROTECT,
        related_name="items",
        help_text="Order this line belongs to",
    )

    position = models.PositiveSmallIntegerField(
        default=0,
        help_text="Position of the line within the cart",
    )

    product_id = models.CharField(
        max_length=64,
        help_text="Catalog product identifier",
    )

    product_name = models.CharField(
        max_length=255,
        help_text="Product name at checkout time",
    )

    product_image = models.CharField(
        max_length=500,
        null=True,
        blank=True,
        help_text="Product image path or URL at checkout time",
    )

    size = models.CharField(
        max_length=20,
        null=True,
        blank=True,
        help_text="Selected size, if the product has sizes",
    )

    unit_price = models.PositiveBigIntegerField(
        help_text="Catalog unit price in øre",
    )

    quantity = models.PositiveIntegerField(
        help_text="Number of units",
    )

    total_price = models.PositiveBigIntegerField(
        help_text="unit_price * quantity in øre",
    )

    tax_amount = models.PositiveBigIntegerField(
        default=0,
        help_text="Tax included in total_price, in øre",
    )

    tax_percent = models.PositiveSmallIntegerField(
        default=25,
        help_text="VAT rate recorded for the line",
    )

    class Meta:
        ordering = ["position", "created_at"]
        verbose_name = "Order Line Item"
        verbose_name_plural = "Order Line Items"

    def __str__(self) -> str:
        size = f" ({self.size})" if self.size else ""
        return f"{self.quantity}x {self.product_name}{size}"
