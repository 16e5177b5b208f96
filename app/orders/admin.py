"""
Order admin configuration.

Orders are read-only in the admin: status changes go through the service
layer and orders are never deleted.
"""

from django.contrib import admin

from orders.models import Order, OrderLineItem


class OrderLineItemInline(admin.TabularInline):
    model = OrderLineItem
    extra = 0
    can_delete = False
    readonly_fields = [
        "position",
        "product_id",
        "product_name",
        "size",
        "unit_price",
        "quantity",
        "total_price",
        "tax_amount",
        "tax_percent",
    ]
    fields = readonly_fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Admin configuration for Order.

    Provides visibility into orders and their payment states.
    State changes should be made through the service layer, not admin.
    """

    list_display = [
        "reference",
        "status",
        "amount_display",
        "customer_email",
        "gateway_payment_state",
        "created_at",
    ]
    list_filter = ["status", "currency", "created_at"]
    search_fields = ["reference", "customer_email", "customer_name", "gateway_session_id"]
    readonly_fields = [
        "id",
        "reference",
        "status",
        "items_total",
        "shipping_price",
        "total_amount",
        "currency",
        "gateway_session_id",
        "gateway_payment_state",
        "payment_method",
        "customer_details_confirmed_at",
        "created_at",
        "updated_at",
        "version",
        "paid_at",
        "shipped_at",
        "delivered_at",
        "cancelled_at",
        "refunded_at",
        "terminated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    inlines = [OrderLineItemInline]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "reference", "status"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("items_total", "shipping_price", "total_amount", "currency"),
            },
        ),
        (
            "Gateway",
            {
                "fields": ("gateway_session_id", "gateway_payment_state", "payment_method"),
            },
        ),
        (
            "Customer",
            {
                "fields": (
                    "customer_email",
                    "customer_name",
                    "customer_phone",
                    "customer_details_confirmed_at",
                ),
            },
        ),
        (
            "Shipping Address",
            {
                "fields": (
                    "shipping_first_name",
                    "shipping_last_name",
                    "shipping_street",
                    "shipping_postal_code",
                    "shipping_city",
                    "shipping_country",
                ),
                "classes": ("collapse",),
            },
        ),
        (
            "Billing Address",
            {
                "fields": (
                    "billing_first_name",
                    "billing_last_name",
                    "billing_street",
                    "billing_postal_code",
                    "billing_city",
                    "billing_country",
                ),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": (
                    "created_at",
                    "updated_at",
                    "paid_at",
                    "shipped_at",
                    "delivered_at",
                    "cancelled_at",
                    "refunded_at",
                    "terminated_at",
                ),
                "classes": ("collapse",),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("version",),
                "classes": ("collapse",),
            },
        ),
    )

    @admin.display(description="Amount")
    def amount_display(self, obj):
        return f"{obj.total_amount / 100:.2f} {obj.currency}"

    def has_delete_permission(self, request, obj=None):
        return False
