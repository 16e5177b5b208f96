"""
Order-specific exceptions for checkout, callback and payment operations.

Exception Hierarchy:
    OrderNotFoundError - Unknown order reference (inherits NotFoundError)

    GatewayError - Base for payment gateway failures (inherits ExternalServiceError)
    ├── GatewayTimeoutError - Request timed out (transient, retry)
    ├── GatewayUnavailableError - Connection failure or 5xx (transient, retry)
    ├── GatewayRateLimitError - Rate limited (transient, retry)
    ├── GatewayAuthenticationError - Credentials rejected (permanent)
    └── GatewayRequestError - Request rejected with 4xx (permanent)

    InvalidStateTransitionError - Status change not on the order graph (ConflictError)
    InvalidPaymentStateError - Gateway state does not allow the mutation (ConflictError)
    StaleRecordError - Optimistic locking conflict (ConflictError)
    LockAcquisitionError - Distributed lock timeout (ConflictError)

    UnauthorizedCallbackError - Callback token mismatch (PermissionDeniedError)

Usage:
    from orders.exceptions import InvalidPaymentStateError

    raise InvalidPaymentStateError(
        "Payment is CAPTURED, cannot cancel",
        details={"reference": reference, "payment_state": "CAPTURED"},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
)

if TYPE_CHECKING:
    from typing import Any


class OrderNotFoundError(NotFoundError):
    """Raised when no order exists for a reference."""

    default_error_code: str = "ORDER_NOT_FOUND"


# =============================================================================
# Gateway Exceptions
# =============================================================================


class GatewayError(ExternalServiceError):
    """
    Base exception for all payment gateway errors.

    Attributes:
        status_code: HTTP status returned by the gateway, if any
        gateway_code: The gateway's own error code, if any
        is_retryable: Whether the caller may retry the operation

    A retryable error means the outcome is unknown: the request may or may
    not have been applied at the gateway. Callers re-check authoritative
    state before retrying a mutation.

    Example:
        try:
            adapter.capture(reference, amount, idempotency_key=key)
        except GatewayError as e:
            if e.is_retryable:
                schedule_retry(e)
            else:
                report_permanent_failure(e)
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        gateway_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        if gateway_code:
            details["gateway_code"] = gateway_code
        super().__init__(message, error_code=error_code, details=details)
        self.status_code = status_code
        self.gateway_code = gateway_code


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry)
# -----------------------------------------------------------------------------


class GatewayTimeoutError(GatewayError):
    """
    Request to the gateway timed out.

    Never treated as success. The operation may have been applied, so a
    retry must be idempotent at the gateway or preceded by a state check.
    """

    default_error_code: str = "GATEWAY_TIMEOUT"
    is_retryable: bool = True


class GatewayUnavailableError(GatewayError):
    """Connection failure or 5xx response from the gateway."""

    default_error_code: str = "GATEWAY_UNAVAILABLE"
    is_retryable: bool = True


class GatewayRateLimitError(GatewayError):
    """Gateway responded 429 Too Many Requests."""

    default_error_code: str = "GATEWAY_RATE_LIMITED"
    is_retryable: bool = True


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class GatewayAuthenticationError(GatewayError):
    """Gateway rejected our credentials (401/403 or token endpoint failure)."""

    default_error_code: str = "GATEWAY_AUTHENTICATION_FAILED"
    is_retryable: bool = False


class GatewayRequestError(GatewayError):
    """Gateway rejected the request (4xx other than auth and rate limit)."""

    default_error_code: str = "GATEWAY_REQUEST_REJECTED"
    is_retryable: bool = False


# =============================================================================
# State & Concurrency Exceptions
# =============================================================================


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a requested status change is not on the order graph.

    The order is left untouched: status, updated_at and version keep
    their previous values.

    Example:
        raise InvalidStateTransitionError(
            "Cannot move order from PAID to CANCELLED",
            details={"reference": "MF-...", "current_status": "PAID",
                     "transition": "cancel"},
        )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


class InvalidPaymentStateError(ConflictError):
    """
    Raised when the gateway's current payment state does not permit a
    capture, cancel or refund.

    Raised before any mutating gateway call is made.
    """

    default_error_code: str = "INVALID_PAYMENT_STATE"


class StaleRecordError(ConflictError):
    """Raised when a record's version no longer matches the expected one."""

    default_error_code: str = "STALE_RECORD"


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    Example:
        raise LockAcquisitionError(
            "Failed to acquire lock 'lock:order:MF-...' within 10.0s",
            details={"key": "lock:order:MF-...", "timeout": 10.0},
        )
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


# =============================================================================
# Callback Exceptions
# =============================================================================


class UnauthorizedCallbackError(PermissionDeniedError):
    """Raised when a gateway callback presents the wrong authorization token."""

    default_error_code: str = "UNAUTHORIZED_CALLBACK"


__all__ = [
    "GatewayAuthenticationError",
    "GatewayError",
    "GatewayRateLimitError",
    "GatewayRequestError",
    "GatewayTimeoutError",
    "GatewayUnavailableError",
    "InvalidPaymentStateError",
    "InvalidStateTransitionError",
    "LockAcquisitionError",
    "OrderNotFoundError",
    "StaleRecordError",
    "UnauthorizedCallbackError",
]
