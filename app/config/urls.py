"""
URL configuration for the order service.

The `urlpatterns` list routes URLs to views. This is the root URL configuration
that includes all app-specific routes.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/orders/                - Order endpoints
        checkout/session/          - Create checkout session (POST)
        checkout/session/{ref}/    - Session status (GET)
        checkout/session/{ref}/expire/ - Expire session (POST)
        vipps/callback/            - Vipps callback endpoint (POST)
        admin/orders/              - List orders (staff)
        admin/orders/{ref}/        - Order detail (staff)
        admin/orders/{ref}/status/ - Fulfilment status (staff, PATCH)
        admin/orders/{ref}/capture/ - Capture payment (staff)
        admin/orders/{ref}/cancel/ - Cancel payment (staff)
        admin/orders/{ref}/refund/ - Refund payment (staff)
        admin/orders/capture-all/  - Capture all reserved (staff)
        admin/orders/sweep/        - Terminate abandoned orders (staff)
        admin/orders/stats/abandoned/ - Abandoned order stats (staff)
        admin/stats/               - Dashboard stats (staff)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Orders
    path("orders/", include("orders.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Møller Fanclub Orders"
admin.site.site_title = "Orders Admin"
admin.site.index_title = "Order administration"
