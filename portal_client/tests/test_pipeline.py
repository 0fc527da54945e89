"""
Unit tests for the stateless gateway stages.
"""

import httpx
import pytest

from portal_client.app.gateway import RequestConfig, ResponseClass, classify_response, parse_retry_after
from portal_client.app.gateway.pipeline import endpoint_label, response_payload


class TestClassifyResponse:
    """Test cases for classify_response."""

    @pytest.mark.parametrize("status,expected", [
        (200, ResponseClass.OK),
        (204, ResponseClass.OK),
        (401, ResponseClass.UNAUTHORIZED),
        (429, ResponseClass.RATE_LIMITED),
        (403, ResponseClass.ERROR),
        (500, ResponseClass.ERROR),
    ])
    def test_status_classes(self, status, expected):
        """Test each status code maps to its response class."""
        assert classify_response(httpx.Response(status)) is expected

    def test_revoked_token(self):
        """Test a 401 carrying TOKEN_REVOKED is classified as revoked."""
        response = httpx.Response(401, json={"code": "TOKEN_REVOKED"})
        assert classify_response(response) is ResponseClass.TOKEN_REVOKED

    def test_other_401_codes_are_plain_unauthorized(self):
        """Test other 401 codes are plain unauthorized."""
        response = httpx.Response(401, json={"code": "TOKEN_EXPIRED"})
        assert classify_response(response) is ResponseClass.UNAUTHORIZED

    def test_non_json_401(self):
        """Test non json 401."""
        response = httpx.Response(401, text="<html>nope</html>")
        assert classify_response(response) is ResponseClass.UNAUTHORIZED


class TestParseRetryAfter:
    """Test cases for parse_retry_after."""

    def test_header(self):
        """Test Retry-After header is parsed as seconds."""
        response = httpx.Response(429, headers={"Retry-After": "10"})
        assert parse_retry_after(response, 60) == 10

    def test_body_field(self):
        """Test the retryAfter body field is used without a header."""
        response = httpx.Response(429, json={"retryAfter": 7})
        assert parse_retry_after(response, 60) == 7

    def test_header_wins_over_body(self):
        """Test header wins over body."""
        response = httpx.Response(429, headers={"Retry-After": "3"}, json={"retryAfter": 9})
        assert parse_retry_after(response, 60) == 3

    def test_unparseable_header_falls_back_to_body(self):
        """Test unparseable header falls back to body."""
        response = httpx.Response(429, headers={"Retry-After": "soon"}, json={"retryAfter": "12"})
        assert parse_retry_after(response, 60) == 12

    def test_default(self):
        """Test the default applies when no value is present."""
        assert parse_retry_after(httpx.Response(429), 60) == 60


class TestHelpers:
    """Test cases for the small pipeline helpers."""

    @pytest.mark.parametrize("path,label", [
        ("/properties", "/properties"),
        ("/properties/42", "/properties/{id}"),
        ("/documents/3f2b8c1e-0d4a-4b7e-9c1f-2a3b4c5d6e7f/download", "/documents/{id}/download"),
        ("/properties/search?q=oak", "/properties/search"),
    ])
    def test_endpoint_label(self, path, label):
        """Test id segments are collapsed in endpoint labels."""
        assert endpoint_label(path) == label

    def test_response_payload(self):
        """Test response payload decoding for JSON, text and empty bodies."""
        assert response_payload(httpx.Response(200, json={"a": 1})) == {"a": 1}
        assert response_payload(httpx.Response(500, text="oops")) == "oops"
        assert response_payload(httpx.Response(204)) is None

    def test_with_headers_copies(self):
        """Test with headers copies."""
        config = RequestConfig(method="GET", path="/properties", headers={"A": "1"})
        updated = config.with_headers({"B": "2"})

        assert updated.headers == {"B": "2"}
        assert config.headers == {"A": "1"}
        assert updated.path == "/properties"
