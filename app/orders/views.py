"""
DRF views for checkout and order administration.

Related files:
    - services/: CheckoutService, PaymentMutationService, OrderStore
    - workers/order_reaper.py: OrderReaper
    - serializers.py: Request/response serializers
    - urls.py: URL routing

Endpoints (prefixed with /api/v1/orders/):
    POST  checkout/session/                         - Create checkout session
    GET   checkout/session/<reference>/             - Session status
    POST  checkout/session/<reference>/expire/      - Expire session
    GET   admin/orders/                             - List orders
    GET   admin/orders/<reference>/                 - Order detail
    PATCH admin/orders/<reference>/status/          - Fulfilment status
    POST  admin/orders/<reference>/capture/         - Capture payment
    POST  admin/orders/<reference>/cancel/          - Cancel payment
    POST  admin/orders/<reference>/refund/          - Refund payment
    POST  admin/orders/capture-all/                 - Capture all reserved
    POST  admin/orders/sweep/                       - Terminate abandoned orders
    GET   admin/orders/stats/abandoned/             - Abandoned order stats
    GET   admin/stats/                              - Dashboard stats

Security:
    - Checkout endpoints are public
    - Admin endpoints require a staff user
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from orders.serializers import (
    CancelPaymentSerializer,
    CaptureAllResultSerializer,
    CheckoutSessionRequestSerializer,
    CheckoutSessionSerializer,
    FulfilmentStatusSerializer,
    OrderListQuerySerializer,
    OrderSerializer,
    RefundSerializer,
    SessionStatusSerializer,
    SweepSerializer,
)
from orders.services import CheckoutService, OrderStore, PaymentMutationService
from orders.workers import OrderReaper

logger = logging.getLogger(__name__)


# Most specific class first
ERROR_STATUS_CODES: tuple[tuple[type[BaseApplicationError], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (PermissionDeniedError, status.HTTP_401_UNAUTHORIZED),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
)


def status_code_for(exc: BaseApplicationError) -> int:
    for exc_class, code in ERROR_STATUS_CODES:
        if isinstance(exc, exc_class):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


class OrderAPIView(APIView):
    """
    APIView that renders domain exceptions as JSON.

    BaseApplicationError subclasses become {"error", "error_code",
    "details"} with the mapped HTTP status; anything else goes through
    DRF's normal handling.
    """

    def handle_exception(self, exc):
        if isinstance(exc, BaseApplicationError):
            code = status_code_for(exc)
            log = logger.error if code >= 500 else logger.warning
            log(
                f"{self.__class__.__name__} failed: {exc.message}",
                extra={"error_code": exc.error_code, "status_code": code},
            )
            return Response(exc.to_dict(), status=code)
        return super().handle_exception(exc)


# =============================================================================
# Checkout
# =============================================================================


class CheckoutSessionView(OrderAPIView):
    """
    Create a Vipps Checkout session for a cart.

    POST /api/v1/orders/checkout/session/

    Response:
        201 Created: {"reference", "token", "checkout_frontend_url", "polling_url"}
        400 Bad Request: Cart rejected
        502 Bad Gateway: Vipps failed (the order is kept as PENDING)
    """

    permission_classes = [AllowAny]

    @extend_schema(
        operation_id="create_checkout_session",
        summary="Create checkout session",
        request=CheckoutSessionRequestSerializer,
        responses={
            201: CheckoutSessionSerializer,
            400: OpenApiResponse(description="Cart rejected"),
            502: OpenApiResponse(description="Vipps unavailable"),
        },
        tags=["Orders - Checkout"],
    )
    def post(self, request):
        serializer = CheckoutSessionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        session = CheckoutService.create_checkout_session(
            serializer.get_cart(),
            customer=serializer.get_customer(),
        )
        return Response(
            CheckoutSessionSerializer(session).data,
            status=status.HTTP_201_CREATED,
        )


class CheckoutSessionDetailView(OrderAPIView):
    """GET /api/v1/orders/checkout/session/<reference>/"""

    permission_classes = [AllowAny]

    @extend_schema(
        operation_id="get_checkout_session",
        summary="Get checkout session status",
        responses={200: SessionStatusSerializer},
        tags=["Orders - Checkout"],
    )
    def get(self, request, reference):
        session_status = CheckoutService.get_session_status(reference)
        return Response(SessionStatusSerializer(session_status).data)


class CheckoutSessionExpireView(OrderAPIView):
    """POST /api/v1/orders/checkout/session/<reference>/expire/"""

    permission_classes = [AllowAny]

    @extend_schema(
        operation_id="expire_checkout_session",
        summary="Expire checkout session",
        request=None,
        responses={200: OpenApiResponse(description="Session expired")},
        tags=["Orders - Checkout"],
    )
    def post(self, request, reference):
        CheckoutService.expire_session(reference)
        return Response({"reference": reference, "expired": True})


# =============================================================================
# Admin: Orders
# =============================================================================


class AdminOrderListView(OrderAPIView):
    """
    List orders, newest first.

    GET /api/v1/orders/admin/orders/?limit=50&offset=0&status=PAID
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="list_orders",
        summary="List orders",
        parameters=[
            OpenApiParameter("limit", int, description="Page size (default 50)"),
            OpenApiParameter("offset", int, description="Rows to skip"),
            OpenApiParameter("status", str, description="Status filter or ALL"),
        ],
        responses={200: OrderSerializer(many=True)},
        tags=["Orders - Admin"],
    )
    def get(self, request):
        query = OrderListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        limit = query.validated_data["limit"]
        offset = query.validated_data["offset"]

        orders, total = OrderStore.list_orders(
            status=query.validated_data.get("status"),
            limit=limit,
            offset=offset,
        )
        return Response(
            {
                "orders": OrderSerializer(orders, many=True).data,
                "pagination": {"limit": limit, "offset": offset, "total": total},
            }
        )


class AdminOrderDetailView(OrderAPIView):
    """GET /api/v1/orders/admin/orders/<reference>/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="get_order",
        summary="Get order",
        responses={200: OrderSerializer, 404: OpenApiResponse(description="Unknown reference")},
        tags=["Orders - Admin"],
    )
    def get(self, request, reference):
        return Response(OrderSerializer(OrderStore.get(reference)).data)


class AdminOrderStatusView(OrderAPIView):
    """
    Move an order to SHIPPED or DELIVERED.

    PATCH /api/v1/orders/admin/orders/<reference>/status/

    Request body:
        {"status": "SHIPPED", "version": 3}
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="update_order_status",
        summary="Update fulfilment status",
        request=FulfilmentStatusSerializer,
        responses={
            200: OrderSerializer,
            409: OpenApiResponse(description="Transition not allowed or stale version"),
        },
        tags=["Orders - Admin"],
    )
    def patch(self, request, reference):
        serializer = FulfilmentStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = OrderStore.update_fulfilment_status(
            reference,
            serializer.validated_data["status"],
            shipped_at=serializer.validated_data.get("shipped_at"),
            expected_version=serializer.validated_data.get("version"),
        )
        return Response(OrderSerializer(order).data)


# =============================================================================
# Admin: Payment Mutations
# =============================================================================


class AdminOrderCaptureView(OrderAPIView):
    """POST /api/v1/orders/admin/orders/<reference>/capture/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="capture_order",
        summary="Capture reserved payment",
        request=None,
        responses={
            200: OrderSerializer,
            409: OpenApiResponse(description="Payment is not RESERVED"),
            502: OpenApiResponse(description="Vipps call failed"),
        },
        tags=["Orders - Payments"],
    )
    def post(self, request, reference):
        order = PaymentMutationService.capture(reference)
        return Response(OrderSerializer(order).data)


class AdminOrderCancelView(OrderAPIView):
    """POST /api/v1/orders/admin/orders/<reference>/cancel/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="cancel_order",
        summary="Cancel reserved payment",
        request=CancelPaymentSerializer,
        responses={
            200: OrderSerializer,
            409: OpenApiResponse(description="Payment is not RESERVED"),
        },
        tags=["Orders - Payments"],
    )
    def post(self, request, reference):
        serializer = CancelPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = PaymentMutationService.cancel(
            reference,
            reason=serializer.validated_data.get("reason") or None,
        )
        return Response(OrderSerializer(order).data)


class AdminOrderRefundView(OrderAPIView):
    """
    Refund all or part of a captured payment.

    POST /api/v1/orders/admin/orders/<reference>/refund/

    Request body:
        {"amount": 5000}   (øre, optional)
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="refund_order",
        summary="Refund captured payment",
        request=RefundSerializer,
        responses={
            200: OrderSerializer,
            400: OpenApiResponse(description="Invalid refund amount"),
            409: OpenApiResponse(description="Payment is not CAPTURED"),
        },
        tags=["Orders - Payments"],
    )
    def post(self, request, reference):
        serializer = RefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = PaymentMutationService.refund(
            reference,
            amount=serializer.validated_data.get("amount"),
        )
        return Response(OrderSerializer(order).data)


class AdminCaptureAllView(OrderAPIView):
    """POST /api/v1/orders/admin/orders/capture-all/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="capture_all_reserved",
        summary="Capture every reserved order",
        request=None,
        responses={200: CaptureAllResultSerializer},
        tags=["Orders - Payments"],
    )
    def post(self, request):
        result = PaymentMutationService.capture_all_reserved()
        return Response(CaptureAllResultSerializer(result).data)


# =============================================================================
# Admin: Maintenance and Stats
# =============================================================================


class AdminSweepView(OrderAPIView):
    """
    Terminate abandoned unpaid orders now.

    POST /api/v1/orders/admin/orders/sweep/

    Request body:
        {"max_age_minutes": 1440}   (optional)
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="sweep_abandoned_orders",
        summary="Terminate abandoned orders",
        request=SweepSerializer,
        responses={200: OpenApiResponse(description="{terminated, errors, total}")},
        tags=["Orders - Admin"],
    )
    def post(self, request):
        serializer = SweepSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = OrderReaper.sweep(serializer.validated_data.get("max_age_minutes"))
        return Response(result)


class AdminAbandonedStatsView(OrderAPIView):
    """GET /api/v1/orders/admin/orders/stats/abandoned/?max_age_minutes=1440"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="abandoned_order_stats",
        summary="Abandoned order stats",
        parameters=[OpenApiParameter("max_age_minutes", int, description="Age threshold")],
        responses={200: OpenApiResponse(description="{total_pending, abandoned, recent}")},
        tags=["Orders - Admin"],
    )
    def get(self, request):
        query = SweepSerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        return Response(OrderReaper.abandoned_stats(query.validated_data.get("max_age_minutes")))


class AdminDashboardStatsView(OrderAPIView):
    """GET /api/v1/orders/admin/stats/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="dashboard_stats",
        summary="Dashboard stats",
        responses={200: OpenApiResponse(description="Order counts and revenue in øre")},
        tags=["Orders - Admin"],
    )
    def get(self, request):
        return Response(OrderStore.dashboard_stats())
