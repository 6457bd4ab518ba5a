"""
Unit Tests for the API Key Authentication Dependencies

Credential extraction and client address resolution.
"""

import pytest
from starlette.requests import Request

from backend.middleware.api_key_auth import extract_api_key, get_client_ip


def _request(headers: dict[str, str] | None = None, client=("198.51.100.20", 4711)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


class TestExtractApiKey:

    def test_bearer_header(self):
        assert extract_api_key(_request({"Authorization": "Bearer sk_live_abc"})) == "sk_live_abc"

    def test_x_api_key_header(self):
        assert extract_api_key(_request({"X-API-Key": "sk_live_abc"})) == "sk_live_abc"

    def test_bearer_wins_over_x_api_key(self):
        request = _request({"Authorization": "Bearer sk_live_bearer", "X-API-Key": "sk_live_header"})
        assert extract_api_key(request) == "sk_live_bearer"

    def test_non_bearer_authorization_falls_back(self):
        request = _request({"Authorization": "Basic dXNlcjpwYXNz", "X-API-Key": "sk_live_header"})
        assert extract_api_key(request) == "sk_live_header"

    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "Bearer "}, {"X-API-Key": "   "}, {"Authorization": "Token abc"}],
    )
    def test_missing_or_blank(self, headers):
        assert extract_api_key(_request(headers)) is None


class TestClientIp:

    def test_first_forwarded_entry(self):
        request = _request({"X-Forwarded-For": "203.0.113.7, 10.0.0.1, 10.0.0.2"})
        assert get_client_ip(request) == "203.0.113.7"

    def test_socket_peer_without_forwarding(self):
        assert get_client_ip(_request()) == "198.51.100.20"

    def test_unknown_without_peer(self):
        assert get_client_ip(_request(client=None)) == "unknown"
