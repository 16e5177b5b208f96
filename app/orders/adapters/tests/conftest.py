"""
Pytest fixtures for Vipps adapter tests.

Sections:
    - HTTP Response Fixtures
    - Adapter Fixtures
"""

import json
from unittest.mock import MagicMock

import pytest
import requests

from orders.adapters import AccessTokenProvider, VippsAdapter


# =============================================================================
# HTTP Response Fixtures
# =============================================================================


@pytest.fixture
def make_response():
    """Build a real requests.Response with a JSON (or raw) body."""

    def _create(status_code: int = 200, body=None, raw: bytes | None = None) -> requests.Response:
        response = requests.Response()
        response.status_code = status_code
        response.url = "https://apitest.vipps.no/test"
        if raw is not None:
            response._content = raw
        elif body is not None:
            response._content = json.dumps(body).encode()
        else:
            response._content = b""
        response.headers["Content-Type"] = "application/json"
        return response

    return _create


@pytest.fixture
def session_payload():
    """A PaymentSuccessful session body as Vipps returns it."""
    return {
        "sessionId": "sess_abc",
        "reference": "MF-1700000000000-AB12CD",
        "sessionState": "PaymentSuccessful",
        "paymentMethod": "WALLET",
        "paymentDetails": {
            "amount": {"currency": "NOK", "value": 67700},
            "state": "AUTHORIZED",
        },
        "shippingDetails": {
            "firstName": "Ola",
            "lastName": "Nordmann",
            "email": "ola@example.com",
            "phoneNumber": "4791234567",
            "streetAddress": "Karl Johans gate 1",
            "postalCode": "0154",
            "city": "Oslo",
            "country": "NO",
        },
        "userDetails": {"userId": "vipps-1", "email": "ola@example.com", "mobileNumber": "4791234567"},
    }


# =============================================================================
# Adapter Fixtures
# =============================================================================


@pytest.fixture
def mock_session():
    """Mocked requests.Session; set request.return_value per test."""
    return MagicMock(spec=requests.Session)


@pytest.fixture
def token_provider():
    provider = MagicMock(spec=AccessTokenProvider)
    provider.get_token.return_value = "access-token-123"
    return provider


@pytest.fixture
def adapter(mock_session, token_provider):
    return VippsAdapter(
        token_provider=token_provider,
        session=mock_session,
        base_url="https://apitest.vipps.no",
        timeout=5,
    )
