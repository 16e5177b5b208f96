"""
URL configuration for the orders app.

All routes are prefixed with /api/v1/orders/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("orders/", include("orders.urls")),
    ]
"""

from django.urls import path

from orders import views
from orders.webhooks.views import vipps_callback

app_name = "orders"

urlpatterns = [
    # Checkout
    path("checkout/session/", views.CheckoutSessionView.as_view(), name="checkout_session"),
    path(
        "checkout/session/<str:reference>/",
        views.CheckoutSessionDetailView.as_view(),
        name="checkout_session_detail",
    ),
    path(
        "checkout/session/<str:reference>/expire/",
        views.CheckoutSessionExpireView.as_view(),
        name="checkout_session_expire",
    ),
    # Vipps callback
    path("vipps/callback/", vipps_callback, name="vipps_callback"),
    # Admin (literal paths before <reference>)
    path("admin/orders/", views.AdminOrderListView.as_view(), name="admin_order_list"),
    path(
        "admin/orders/capture-all/",
        views.AdminCaptureAllView.as_view(),
        name="admin_capture_all",
    ),
    path("admin/orders/sweep/", views.AdminSweepView.as_view(), name="admin_sweep"),
    path(
        "admin/orders/stats/abandoned/",
        views.AdminAbandonedStatsView.as_view(),
        name="admin_abandoned_stats",
    ),
    path(
        "admin/orders/<str:reference>/",
        views.AdminOrderDetailView.as_view(),
        name="admin_order_detail",
    ),
    path(
        "admin/orders/<str:reference>/status/",
        views.AdminOrderStatusView.as_view(),
        name="admin_order_status",
    ),
    path(
        "admin/orders/<str:reference>/capture/",
        views.AdminOrderCaptureView.as_view(),
        name="admin_order_capture",
    ),
    path(
        "admin/orders/<str:reference>/cancel/",
        views.AdminOrderCancelView.as_view(),
        name="admin_order_cancel",
    ),
    path(
        "admin/orders/<str:reference>/refund/",
        views.AdminOrderRefundView.as_view(),
        name="admin_order_refund",
    ),
    path("admin/stats/", views.AdminDashboardStatsView.as_view(), name="admin_stats"),
]
