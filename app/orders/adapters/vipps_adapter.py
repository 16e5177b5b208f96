"""
Vipps API adapter for checkout and payment operations.

This module provides the VippsAdapter class which encapsulates all
Vipps API interactions (Checkout v3 and ePayment v1). All gateway calls
should go through this adapter to ensure consistent error handling,
timeouts, idempotency, and observability.

Features:
- Bounded timeouts on all API calls
- Automatic error translation to domain exceptions
- Structured logging with timing metrics
- Idempotency-Key header on every mutating ePayment call
- Payment details parsed into one dataclass per gateway state

Configuration (via settings):
- VIPPS_API_BASE_URL: API base URL (test or production)
- VIPPS_CLIENT_ID / VIPPS_CLIENT_SECRET: Merchant credentials
- VIPPS_SUBSCRIPTION_KEY: Ocp-Apim-Subscription-Key
- VIPPS_MSN: Merchant-Serial-Number
- VIPPS_REQUEST_TIMEOUT_SECONDS: API call timeout (default: 30)

Usage:
    from orders.adapters import VippsAdapter, IdempotencyKeyGenerator

    adapter = VippsAdapter()

    details = adapter.get_payment_details("MF-1700000000-AB12CD")
    if details.state == GatewayPaymentState.RESERVED:
        adapter.capture(
            "MF-1700000000-AB12CD",
            amount=details.amount,
            idempotency_key=IdempotencyKeyGenerator.generate(
                "capture", "MF-1700000000-AB12CD", amount=details.amount
            ),
        )
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any, ClassVar

import requests
from django.conf import settings

from orders.adapters.access_token import AccessTokenProvider
from orders.exceptions import (
    GatewayAuthenticationError,
    GatewayError,
    GatewayRateLimitError,
    GatewayRequestError,
    GatewayTimeoutError,
    GatewayUnavailableError,
)
from orders.state_machines import GatewayPaymentState


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class OrderLine:
    """
    One line of the order summary shown in the Vipps checkout window.

    Amounts are in øre.
    """

    id: str
    name: str
    unit_price: int
    quantity: int
    total_amount: int
    total_tax_amount: int = 0
    tax_percentage: int = 0
    is_shipping: bool = False
    image_url: str | None = None
    product_url: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "id": self.id,
            "totalAmount": self.total_amount,
            "totalAmountExcludingTax": self.total_amount - self.total_tax_amount,
            "totalTaxAmount": self.total_tax_amount,
            "taxPercentage": self.tax_percentage,
            "unitInfo": {
                "unitPrice": self.unit_price,
                # Vipps expects quantity as a string
                "quantity": str(self.quantity),
                "quantityUnit": "pcs",
            },
            "isReturn": False,
            "isShipping": self.is_shipping,
        }
        if self.image_url:
            payload["imageUrl"] = self.image_url
        if self.product_url:
            payload["productUrl"] = self.product_url
        return payload


@dataclass
class CreateSessionParams:
    """
    Parameters for creating a Vipps Checkout session.

    Attributes:
        reference: Order reference (becomes the gateway payment reference)
        amount: Total amount in øre
        currency: ISO 4217 currency code
        callback_url: URL Vipps posts session updates to
        callback_token: Token Vipps echoes in the Authorization header
        return_url: URL the customer returns to after checkout
        payment_description: Text shown in the Vipps app
        order_lines: Order summary lines (should sum to amount)
        prefill_email: Optional email to prefill
        prefill_phone: Optional phone number to prefill
    """

    reference: str
    amount: int
    currency: str
    callback_url: str
    callback_token: str
    return_url: str
    payment_description: str
    order_lines: list[OrderLine] = field(default_factory=list)
    prefill_email: str | None = None
    prefill_phone: str | None = None

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if self.amount <= 0:
            raise ValueError("amount must be positive")
        if not self.reference:
            raise ValueError("reference is required")
        if not self.callback_token:
            raise ValueError("callback_token is required")
        if not self.currency:
            raise ValueError("currency is required")

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": "PAYMENT",
            "reference": self.reference,
            "transaction": {
                "amount": {"currency": self.currency, "value": self.amount},
                "reference": self.reference,
                "paymentDescription": self.payment_description,
            },
            "merchantInfo": {
                "callbackUrl": self.callback_url,
                "returnUrl": self.return_url,
                "callbackAuthorizationToken": self.callback_token,
            },
            "configuration": {
                # Address is needed for shipping
                "elements": "PaymentAndContactInfo",
            },
        }
        if self.order_lines:
            payload["transaction"]["orderSummary"] = {
                "orderLines": [line.to_payload() for line in self.order_lines],
                "orderBottomLine": {"currency": self.currency, "amount": self.amount},
            }
        prefill = {}
        if self.prefill_email:
            prefill["email"] = self.prefill_email
        if self.prefill_phone:
            prefill["phoneNumber"] = self.prefill_phone
        if prefill:
            payload["prefillCustomer"] = prefill
        return payload


@dataclass
class CheckoutSessionResult:
    """
    Result from creating a checkout session.

    Attributes:
        token: Session token used by the Vipps checkout frontend
        checkout_frontend_url: URL to load the checkout window from
        polling_url: URL for polling the session state
        raw_response: Full Vipps response dict (for debugging)
    """

    token: str
    checkout_frontend_url: str
    polling_url: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class ContactDetails:
    """Shipping or billing contact as reported by the checkout session."""

    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone_number: str | None = None
    street_address: str | None = None
    postal_code: str | None = None
    city: str | None = None
    country: str | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any] | None) -> ContactDetails | None:
        if not data:
            return None
        return cls(
            first_name=data.get("firstName"),
            last_name=data.get("lastName"),
            email=data.get("email"),
            phone_number=data.get("phoneNumber"),
            street_address=data.get("streetAddress"),
            postal_code=data.get("postalCode"),
            city=data.get("city"),
            country=data.get("country"),
        )

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


@dataclass
class UserDetails:
    """Vipps user identity attached to a session."""

    user_id: str | None = None
    email: str | None = None
    mobile_number: str | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any] | None) -> UserDetails | None:
        if not data:
            return None
        return cls(
            user_id=data.get("userId"),
            email=data.get("email"),
            mobile_number=data.get("mobileNumber"),
        )


@dataclass
class SessionStatus:
    """
    Authoritative state of a checkout session.

    Attributes:
        reference: Order reference
        session_state: SessionCreated, PaymentSuccessful, ...
        session_id: Vipps session id
        payment_method: WALLET, CARD, ...
        payment_state: Payment state inside the session (AUTHORIZED, CAPTURED, ...)
        amount: Payment amount in øre, if reported
        currency: Payment currency, if reported
        shipping_details / billing_details / user_details: Customer data
        raw_response: Full Vipps response dict
    """

    reference: str
    session_state: str
    session_id: str | None = None
    payment_method: str | None = None
    payment_state: str | None = None
    amount: int | None = None
    currency: str | None = None
    shipping_details: ContactDetails | None = None
    billing_details: ContactDetails | None = None
    user_details: UserDetails | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: dict[str, Any], reference: str | None = None) -> SessionStatus:
        payment = data.get("paymentDetails") or {}
        amount = payment.get("amount") or {}
        return cls(
            reference=data.get("reference") or reference or "",
            session_state=data.get("sessionState", ""),
            session_id=data.get("sessionId"),
            payment_method=data.get("paymentMethod"),
            payment_state=payment.get("state"),
            amount=amount.get("value"),
            currency=amount.get("currency"),
            shipping_details=ContactDetails.from_payload(data.get("shippingDetails")),
            billing_details=ContactDetails.from_payload(data.get("billingDetails")),
            user_details=UserDetails.from_payload(data.get("userDetails")),
            raw_response=data,
        )


# -----------------------------------------------------------------------------
# Payment details, one variant per gateway state
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentAggregate:
    """Running totals for a payment, in øre."""

    authorized: int = 0
    captured: int = 0
    refunded: int = 0
    cancelled: int = 0

    @classmethod
    def from_payload(cls, data: dict[str, Any] | None) -> PaymentAggregate:
        data = data or {}

        def value(key: str) -> int:
            return int((data.get(key) or {}).get("value") or 0)

        return cls(
            authorized=value("authorizedAmount"),
            captured=value("capturedAmount"),
            refunded=value("refundedAmount"),
            cancelled=value("cancelledAmount"),
        )


@dataclass(frozen=True)
class PaymentDetails:
    """
    Base for the per-state payment variants returned by parse_payment_details.

    `state` is the effective state derived from the aggregate amounts, not
    necessarily the raw state string Vipps reported.
    """

    state: ClassVar[str] = GatewayPaymentState.UNKNOWN

    reference: str
    amount: int
    currency: str
    aggregate: PaymentAggregate = field(default_factory=PaymentAggregate)
    reported_state: str | None = None
    payment_method: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class InitiatedPayment(PaymentDetails):
    """Payment started, nothing authorized yet."""

    state: ClassVar[str] = GatewayPaymentState.INITIATED


@dataclass(frozen=True)
class ReservedPayment(PaymentDetails):
    """Funds authorized and available for capture or cancel."""

    state: ClassVar[str] = GatewayPaymentState.RESERVED


@dataclass(frozen=True)
class CapturedPayment(PaymentDetails):
    """Funds captured, nothing refunded."""

    state: ClassVar[str] = GatewayPaymentState.CAPTURED

    @property
    def refundable_amount(self) -> int:
        return self.aggregate.captured - self.aggregate.refunded


@dataclass(frozen=True)
class PartiallyRefundedPayment(CapturedPayment):
    """Part of the captured amount has been refunded."""

    state: ClassVar[str] = GatewayPaymentState.PARTIALLY_REFUNDED


@dataclass(frozen=True)
class RefundedPayment(PaymentDetails):
    """The whole captured amount has been refunded."""

    state: ClassVar[str] = GatewayPaymentState.REFUNDED


@dataclass(frozen=True)
class CancelledPayment(PaymentDetails):
    """Reservation released without capture."""

    state: ClassVar[str] = GatewayPaymentState.CANCELLED


@dataclass(frozen=True)
class TerminatedPayment(PaymentDetails):
    """Payment aborted before authorization."""

    state: ClassVar[str] = GatewayPaymentState.TERMINATED


PAYMENT_VARIANTS: dict[str, type[PaymentDetails]] = {
    GatewayPaymentState.INITIATED: InitiatedPayment,
    GatewayPaymentState.AUTHORIZED: ReservedPayment,
    GatewayPaymentState.RESERVED: ReservedPayment,
    GatewayPaymentState.CAPTURED: CapturedPayment,
    GatewayPaymentState.PARTIALLY_REFUNDED: PartiallyRefundedPayment,
    GatewayPaymentState.REFUNDED: RefundedPayment,
    GatewayPaymentState.CANCELLED: CancelledPayment,
    GatewayPaymentState.TERMINATED: TerminatedPayment,
}


def effective_payment_state(reported_state: str | None, aggregate: PaymentAggregate) -> str:
    """
    Derive the payment state from the aggregate amounts.

    Vipps keeps reporting AUTHORIZED after a capture or refund; the
    aggregate amounts tell what actually happened.
    """
    if aggregate.captured > 0:
        if aggregate.refunded > 0:
            if aggregate.refunded >= aggregate.captured:
                return GatewayPaymentState.REFUNDED
            return GatewayPaymentState.PARTIALLY_REFUNDED
        return GatewayPaymentState.CAPTURED
    if aggregate.cancelled > 0:
        return GatewayPaymentState.CANCELLED
    if aggregate.authorized > 0:
        return GatewayPaymentState.RESERVED
    return reported_state or GatewayPaymentState.UNKNOWN


def parse_payment_details(data: dict[str, Any], reference: str | None = None) -> PaymentDetails:
    """
    Parse an ePayment payment response into its state variant.

    Args:
        data: JSON body from GET /epayment/v1/payments/{reference} or a
            capture/cancel/refund response
        reference: Fallback reference when the body omits it

    Returns:
        A PaymentDetails subclass matching the effective state
    """
    aggregate = PaymentAggregate.from_payload(data.get("aggregate"))
    reported_state = data.get("state")
    state = effective_payment_state(reported_state, aggregate)
    variant = PAYMENT_VARIANTS.get(state, PaymentDetails)

    amount = data.get("amount") or {}
    transaction = data.get("transaction") or {}
    payment_method = (data.get("paymentMethod") or {}).get("type")

    return variant(
        reference=data.get("reference") or transaction.get("reference") or reference or "",
        amount=int(amount.get("value") or 0),
        currency=amount.get("currency") or settings.ORDERS_CURRENCY,
        aggregate=aggregate,
        reported_state=reported_state,
        payment_method=payment_method,
        raw_response=data,
    )


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Vipps ePayment mutations.

    Format: "{operation}-{reference}-{amount}-{hash}"

    Keys are deterministic: retrying the same mutation with the same
    arguments produces the same key, so Vipps applies it at most once.

    Example:
        key = IdempotencyKeyGenerator.generate(
            operation="refund",
            reference="MF-1700000000-AB12CD",
            amount=5000,
        )
        # Result: "refund-MF-1700000000-AB12CD-5000-a1b2c3d4"
    """

    # Vipps rejects keys longer than this
    MAX_LENGTH = 50

    @staticmethod
    def generate(
        operation: str,
        reference: str,
        amount: int | None = None,
    ) -> str:
        """
        Generate an idempotency key.

        Args:
            operation: The mutation (capture, cancel, refund)
            reference: Order reference
            amount: Amount in øre, if the operation carries one

        Returns:
            Formatted idempotency key string
        """
        amount_part = "all" if amount is None else str(amount)
        hash_input = f"{operation}:{reference}:{amount_part}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        key = f"{operation}-{reference}-{amount_part}-{short_hash}"
        if len(key) > IdempotencyKeyGenerator.MAX_LENGTH:
            key = f"{operation}-{hashlib.sha256(key.encode()).hexdigest()[:32]}"
        return key


# =============================================================================
# Vipps Adapter
# =============================================================================


class VippsAdapter:
    """
    Adapter for the Vipps Checkout v3 and ePayment v1 APIs.

    Checkout endpoints authenticate with the merchant client credentials
    in headers; ePayment endpoints use a bearer token from the injected
    AccessTokenProvider.

    Thread-safe for use from request workers and Celery workers as long as
    the underlying requests.Session is not shared across processes.

    Args:
        token_provider: Access token source (built from settings if omitted)
        session: requests.Session to use (one is created if omitted)
        base_url: API base URL override
        timeout: Request timeout override in seconds
    """

    CHECKOUT_SESSION_PATH = "/checkout/v3/session"
    PAYMENTS_PATH = "/epayment/v1/payments"

    def __init__(
        self,
        token_provider: AccessTokenProvider | None = None,
        session: requests.Session | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.base_url = (base_url or settings.VIPPS_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.VIPPS_REQUEST_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        self.token_provider = token_provider or AccessTokenProvider.from_settings(
            base_url=self.base_url,
            timeout=self.timeout,
            session=self.session,
        )

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Headers
    # =========================================================================

    @staticmethod
    def _system_headers() -> dict[str, str]:
        return {
            "Merchant-Serial-Number": settings.VIPPS_MSN,
            "Vipps-System-Name": settings.VIPPS_SYSTEM_NAME,
            "Vipps-System-Version": settings.VIPPS_SYSTEM_VERSION,
            "Vipps-System-Plugin-Name": settings.VIPPS_PLUGIN_NAME,
            "Vipps-System-Plugin-Version": settings.VIPPS_PLUGIN_VERSION,
        }

    def _checkout_headers(self) -> dict[str, str]:
        return {
            "client_id": settings.VIPPS_CLIENT_ID,
            "client_secret": settings.VIPPS_CLIENT_SECRET,
            "Ocp-Apim-Subscription-Key": settings.VIPPS_SUBSCRIPTION_KEY,
            **self._system_headers(),
        }

    def _payment_headers(self, idempotency_key: str | None = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.token_provider.get_token()}",
            "Ocp-Apim-Subscription-Key": settings.VIPPS_SUBSCRIPTION_KEY,
            **self._system_headers(),
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    # =========================================================================
    # Checkout Sessions
    # =========================================================================

    def create_session(self, params: CreateSessionParams) -> CheckoutSessionResult:
        """
        Create a Vipps Checkout session.

        Returns:
            CheckoutSessionResult with the token and frontend URL

        Raises:
            GatewayRequestError: Vipps rejected the session request
            GatewayUnavailableError: Vipps unreachable or 5xx
            GatewayTimeoutError: Request timed out
        """
        log_context = {
            "operation": "create_session",
            "reference": params.reference,
            "amount": params.amount,
            "currency": params.currency,
        }
        data = self._request(
            "POST",
            self.CHECKOUT_SESSION_PATH,
            headers=self._checkout_headers(),
            json=params.to_payload(),
            log_context=log_context,
        )

        if not data.get("token") or not data.get("checkoutFrontendUrl"):
            self.get_logger().error(
                "Invalid session response from Vipps",
                extra={**log_context, "response_keys": sorted(data)},
            )
            raise GatewayUnavailableError(
                "Invalid response from Vipps: missing token or checkoutFrontendUrl",
                details={"reference": params.reference},
            )

        return CheckoutSessionResult(
            token=data["token"],
            checkout_frontend_url=data["checkoutFrontendUrl"],
            polling_url=data.get("pollingUrl"),
            raw_response=data,
        )

    def get_session_status(self, reference: str) -> SessionStatus:
        """Retrieve the authoritative session state for a reference."""
        data = self._request(
            "GET",
            f"{self.CHECKOUT_SESSION_PATH}/{reference}",
            headers=self._checkout_headers(),
            log_context={"operation": "get_session_status", "reference": reference},
        )
        return SessionStatus.from_payload(data, reference=reference)

    def expire_session(self, reference: str) -> None:
        """Expire a checkout session so it can no longer be paid."""
        self._request(
            "POST",
            f"{self.CHECKOUT_SESSION_PATH}/{reference}/expire",
            headers=self._checkout_headers(),
            json={},
            log_context={"operation": "expire_session", "reference": reference},
        )

    # =========================================================================
    # ePayment Operations
    # =========================================================================

    def get_payment_details(self, reference: str) -> PaymentDetails:
        """
        Retrieve the authoritative payment state for a reference.

        Returns:
            PaymentDetails variant for the effective state
        """
        data = self._payment_request(
            "GET",
            f"{self.PAYMENTS_PATH}/{reference}",
            log_context={"operation": "get_payment_details", "reference": reference},
        )
        return parse_payment_details(data, reference=reference)

    def capture(
        self,
        reference: str,
        amount: int,
        idempotency_key: str,
        currency: str | None = None,
    ) -> PaymentDetails:
        """
        Capture a reserved payment.

        Raises:
            GatewayRequestError: Vipps rejected the capture
            GatewayUnavailableError / GatewayTimeoutError: Outcome unknown
        """
        currency = currency or settings.ORDERS_CURRENCY
        data = self._payment_request(
            "POST",
            f"{self.PAYMENTS_PATH}/{reference}/capture",
            idempotency_key=idempotency_key,
            json={"modificationAmount": {"currency": currency, "value": amount}},
            log_context={
                "operation": "capture",
                "reference": reference,
                "amount": amount,
                "idempotency_key": idempotency_key,
            },
        )
        return parse_payment_details(data, reference=reference)

    def cancel(
        self,
        reference: str,
        idempotency_key: str,
        reason: str | None = None,
    ) -> PaymentDetails:
        """Cancel a reserved payment, releasing the reservation."""
        body: dict[str, Any] = {}
        if reason:
            body["transactionText"] = reason
        data = self._payment_request(
            "POST",
            f"{self.PAYMENTS_PATH}/{reference}/cancel",
            idempotency_key=idempotency_key,
            json=body,
            log_context={
                "operation": "cancel",
                "reference": reference,
                "idempotency_key": idempotency_key,
            },
        )
        return parse_payment_details(data, reference=reference)

    def refund(
        self,
        reference: str,
        amount: int,
        idempotency_key: str,
        currency: str | None = None,
    ) -> PaymentDetails:
        """Refund all or part of a captured payment."""
        currency = currency or settings.ORDERS_CURRENCY
        data = self._payment_request(
            "POST",
            f"{self.PAYMENTS_PATH}/{reference}/refund",
            idempotency_key=idempotency_key,
            json={"modificationAmount": {"currency": currency, "value": amount}},
            log_context={
                "operation": "refund",
                "reference": reference,
                "amount": amount,
                "idempotency_key": idempotency_key,
            },
        )
        return parse_payment_details(data, reference=reference)

    # =========================================================================
    # Transport
    # =========================================================================

    def _request(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        log_context: dict[str, Any],
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        logger = self.get_logger()
        start_time = time.time()
        logger.info("Starting Vipps operation", extra=log_context)

        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                headers=headers,
                json=json,
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json() if response.content else {}
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self._handle_gateway_error(e, log_context, duration_ms)
            raise  # Never reached, but satisfies type checker

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Vipps operation completed",
            extra={
                **log_context,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return data

    def _payment_request(
        self,
        method: str,
        path: str,
        log_context: dict[str, Any],
        idempotency_key: str | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            return self._request(
                method,
                path,
                headers=self._payment_headers(idempotency_key),
                log_context=log_context,
                json=json,
            )
        except GatewayAuthenticationError:
            # Drop a revoked token instead of reusing it until expiry
            self.token_provider.invalidate()
            raise

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_gateway_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate transport and HTTP errors to domain exceptions.

        Raises:
            GatewayTimeoutError: Request timed out
            GatewayUnavailableError: Connection failure, 5xx or bad body
            GatewayRateLimitError: 429
            GatewayAuthenticationError: 401/403
            GatewayRequestError: Any other 4xx
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}
        operation = log_context.get("operation", "request")

        if isinstance(error, GatewayError):
            raise error

        if isinstance(error, requests.Timeout):
            logger.error("Vipps request timed out", extra=log_context)
            raise GatewayTimeoutError(
                f"Vipps {operation} timed out. Outcome unknown, please retry.",
            ) from error

        if isinstance(error, requests.HTTPError):
            response = error.response
            status_code = response.status_code if response is not None else None
            body = _error_body(response)
            gateway_code = body.get("errorCode") or body.get("error") or body.get("type")
            message = (
                body.get("error_description")
                or body.get("detail")
                or body.get("title")
                or body.get("message")
                or f"Vipps {operation} failed"
            )
            log_context = {**log_context, "status_code": status_code, "gateway_code": gateway_code}

            if status_code == 429:
                logger.warning("Rate limited by Vipps", extra=log_context)
                raise GatewayRateLimitError(
                    "Vipps rate limit exceeded. Please retry.",
                    status_code=status_code,
                    gateway_code=gateway_code,
                ) from error

            if status_code in (401, 403):
                logger.critical(
                    "Vipps authentication failed - check credentials",
                    extra=log_context,
                )
                raise GatewayAuthenticationError(
                    f"Vipps API Error ({status_code}): {message}",
                    status_code=status_code,
                    gateway_code=gateway_code,
                ) from error

            if status_code is not None and status_code >= 500:
                logger.error("Vipps API error", extra=log_context)
                raise GatewayUnavailableError(
                    f"Vipps API Error ({status_code}): {message}",
                    status_code=status_code,
                    gateway_code=gateway_code,
                ) from error

            logger.error("Invalid request to Vipps", extra=log_context)
            raise GatewayRequestError(
                f"Vipps API Error ({status_code}): {message}",
                status_code=status_code,
                gateway_code=gateway_code,
                details={"errors": body.get("errors")} if body.get("errors") else None,
            ) from error

        if isinstance(error, requests.RequestException):
            logger.error("Connection error to Vipps", extra=log_context, exc_info=True)
            raise GatewayUnavailableError(
                "Could not connect to Vipps. Please retry.",
            ) from error

        if isinstance(error, ValueError):
            logger.error("Invalid JSON from Vipps", extra=log_context)
            raise GatewayUnavailableError(
                f"Invalid response body from Vipps {operation}",
            ) from error

        logger.error(
            f"Unexpected error from Vipps: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise GatewayUnavailableError(
            f"Unexpected Vipps error: {error}",
        ) from error


def _error_body(response: requests.Response | None) -> dict[str, Any]:
    if response is None:
        return {}
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
