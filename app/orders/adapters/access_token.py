"""
Access token provider for the Vipps ePayment API.

The ePayment endpoints require a short-lived bearer token obtained from
POST /accessToken/get with the merchant's client credentials. The provider
caches the token and refreshes it when less than REFRESH_MARGIN_SECONDS of
validity remain.

The clock is injectable so expiry handling can be tested without sleeping:

    provider = AccessTokenProvider(..., clock=lambda: 1_700_000_000.0)
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING

import requests
from django.conf import settings

from orders.exceptions import (
    GatewayAuthenticationError,
    GatewayTimeoutError,
    GatewayUnavailableError,
)

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class AccessTokenProvider:
    """
    Expiry-aware holder of the gateway access token.

    Thread-safe: concurrent callers share one refresh.

    Args:
        base_url: Gateway API base URL
        client_id: Merchant client id
        client_secret: Merchant client secret
        subscription_key: Ocp-Apim-Subscription-Key
        timeout: Request timeout in seconds
        session: requests.Session to use (one is created if omitted)
        clock: Callable returning the current time in seconds
    """

    TOKEN_PATH = "/accessToken/get"
    REFRESH_MARGIN_SECONDS = 60

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        subscription_key: str,
        timeout: float = 30,
        session: requests.Session | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.subscription_key = subscription_key
        self.timeout = timeout
        self.session = session or requests.Session()
        self.clock = clock
        self._token: str | None = None
        self._expires_at: float = 0.0
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, **overrides) -> AccessTokenProvider:
        """Build a provider from the VIPPS_* settings."""
        options = {
            "base_url": settings.VIPPS_API_BASE_URL,
            "client_id": settings.VIPPS_CLIENT_ID,
            "client_secret": settings.VIPPS_CLIENT_SECRET,
            "subscription_key": settings.VIPPS_SUBSCRIPTION_KEY,
            "timeout": settings.VIPPS_REQUEST_TIMEOUT_SECONDS,
        }
        options.update(overrides)
        return cls(**options)

    @property
    def is_valid(self) -> bool:
        """Whether the cached token has more than the refresh margin left."""
        return self._token is not None and self._expires_at - self.clock() > self.REFRESH_MARGIN_SECONDS

    def get_token(self) -> str:
        """
        Return a valid access token, fetching a new one if needed.

        Raises:
            GatewayAuthenticationError: Credentials rejected
            GatewayTimeoutError: Token request timed out
            GatewayUnavailableError: Gateway unreachable or 5xx
        """
        with self._lock:
            if not self.is_valid:
                self._refresh()
            return self._token

    def invalidate(self) -> None:
        """Drop the cached token so the next call fetches a new one."""
        with self._lock:
            self._token = None
            self._expires_at = 0.0

    def _refresh(self) -> None:
        headers = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "Ocp-Apim-Subscription-Key": self.subscription_key,
        }
        requested_at = self.clock()

        try:
            response = self.session.post(
                f"{self.base_url}{self.TOKEN_PATH}",
                headers=headers,
                json={},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.Timeout as e:
            logger.error("Vipps access token request timed out", exc_info=True)
            raise GatewayTimeoutError("Timed out fetching Vipps access token") from e
        except requests.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            if status_code is not None and status_code >= 500:
                logger.error(
                    "Vipps token endpoint unavailable",
                    extra={"status_code": status_code},
                )
                raise GatewayUnavailableError(
                    "Vipps token endpoint unavailable",
                    status_code=status_code,
                ) from e
            logger.critical(
                "Vipps access token request rejected - check credentials",
                extra={"status_code": status_code},
            )
            raise GatewayAuthenticationError(
                "Failed to get Vipps access token",
                status_code=status_code,
            ) from e
        except requests.RequestException as e:
            logger.error("Could not connect to Vipps token endpoint", exc_info=True)
            raise GatewayUnavailableError("Could not connect to Vipps") from e
        except ValueError as e:
            raise GatewayUnavailableError("Invalid access token response from Vipps") from e

        token = payload.get("access_token")
        if not token:
            raise GatewayAuthenticationError("Vipps access token response had no token")

        self._token = token
        self._expires_at = requested_at + int(payload.get("expires_in", 0))
        logger.debug(
            "Fetched Vipps access token",
            extra={"expires_in": payload.get("expires_in")},
        )


__all__ = ["AccessTokenProvider"]
