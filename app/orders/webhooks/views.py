"""
Callback endpoint view for Vipps Checkout.

The view:
1. Verifies the per-reference Authorization token against the body's reference
2. Parses the callback event
3. Dispatches the event to its handler synchronously
4. Acknowledges with 200 once authenticated, whatever the outcome

Vipps retries callbacks that are not acknowledged, so processing errors
are logged and never surface as a non-2xx response. Only a callback
whose token cannot be verified is rejected.

Usage:
    # In urls.py
    from orders.webhooks.views import vipps_callback

    urlpatterns = [
        path("vipps/callback/", vipps_callback, name="vipps_callback"),
    ]
"""

from __future__ import annotations

import json
import logging
from typing import Any

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from orders.services import verify_callback_token
from orders.webhooks.handlers import CallbackEvent, dispatch_callback


logger = logging.getLogger(__name__)


def _acknowledge() -> JsonResponse:
    return JsonResponse({"received": True}, status=200)


def _unauthorized() -> JsonResponse:
    return JsonResponse({"error": "Unauthorized"}, status=401)


def _load_payload(body: bytes) -> Any:
    try:
        return json.loads(body or b"null")
    except (ValueError, UnicodeDecodeError):
        return None


@csrf_exempt
@require_POST
def vipps_callback(request: HttpRequest) -> JsonResponse:
    """
    Receive a Vipps Checkout callback.

    Security:
    - The Authorization header must equal HMAC-SHA256(VIPPS_CALLBACK_SECRET,
      reference), compared in constant time
    - CSRF exemption required for external callbacks
    - Only POST requests accepted

    Returns:
        JsonResponse with status:
        - 200 {"received": true}: Callback authenticated
        - 401 {"error": "Unauthorized"}: Token missing or wrong, or no
          reference to check it against
    """
    payload = _load_payload(request.body)
    reference = payload.get("reference") if isinstance(payload, dict) else None
    if not isinstance(reference, str):
        logger.warning("Callback without a reference to authenticate")
        return _unauthorized()

    if not verify_callback_token(reference, request.headers.get("Authorization")):
        logger.warning(
            "Invalid callback authorization token",
            extra={"reference": reference},
        )
        return _unauthorized()

    event = CallbackEvent.from_payload(payload)
    if event is None:
        logger.warning("Callback missing sessionState", extra={"reference": reference})
        return _acknowledge()

    logger.info(
        f"Received Vipps callback: {event.session_state}",
        extra={"reference": event.reference, "session_state": event.session_state},
    )

    try:
        result = dispatch_callback(event)
    except Exception as e:
        logger.error(
            f"Unexpected error processing callback: {type(e).__name__}",
            extra={"reference": event.reference, "session_state": event.session_state},
            exc_info=True,
        )
        return _acknowledge()

    if not result.success:
        logger.warning(
            "Callback processed without effect",
            extra={
                "reference": event.reference,
                "session_state": event.session_state,
                "error_code": result.error_code,
            },
        )

    return _acknowledge()
