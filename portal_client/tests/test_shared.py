"""
Unit tests for the shared errors, config, logging and metrics modules.
"""

import pytest

from shared.config import ClientConfig, get_config
from shared.errors import (
    ErrorKind,
    LoginResponseError,
    RateLimitedError,
    RateLimitGateBlockedError,
    RequestFailedError,
    SessionExpiredError,
    TokenStoreError,
)
from shared.logging import (
    add_correlation_context,
    add_service_context,
    reset_request_context,
    set_request_context,
    set_user_context,
    clear_context,
)
from shared.metrics import MetricsCollector, PerfLog


class TestErrors:
    """Test cases for the error hierarchy."""

    @pytest.mark.parametrize("error,kind", [
        (SessionExpiredError(), ErrorKind.SESSION_EXPIRED),
        (RateLimitedError(retry_after=5), ErrorKind.RATE_LIMITED),
        (RateLimitGateBlockedError(retry_after=5), ErrorKind.RATE_LIMIT_GATE_BLOCKED),
        (RequestFailedError("boom", status_code=500), ErrorKind.REQUEST_FAILED),
        (LoginResponseError(), ErrorKind.REQUEST_FAILED),
        (TokenStoreError(), ErrorKind.STORAGE),
    ])
    def test_kinds(self, error, kind):
        """Test every error carries its kind."""
        assert error.kind is kind

    def test_session_expired_redirect(self):
        """Test session expired redirect."""
        error = SessionExpiredError(reason="token_revoked")
        assert error.login_redirect == "/login?reason=token_revoked"
        assert error.details["reason"] == "token_revoked"

    def test_rate_limited_payload_markers(self):
        """Test rate limited payload markers."""
        error = RateLimitedError(retry_after=10, payload={"message": "slow down"})
        assert error.payload == {"message": "slow down", "rateLimited": True, "retryAfter": 10}

    def test_to_response(self):
        """Test conversion to ErrorResponse."""
        response = RequestFailedError("boom", status_code=502, trace_id="t-1").to_response()
        assert response.kind is ErrorKind.REQUEST_FAILED
        assert response.code == "REQUEST_FAILED"
        assert response.trace_id == "t-1"
        assert response.details["status_code"] == 502

    def test_login_response_code(self):
        """Test login response code."""
        assert LoginResponseError().code == "LOGIN_RESPONSE_INVALID"


class TestConfig:
    """Test cases for ClientConfig."""

    def test_defaults(self, monkeypatch):
        """Test default configuration values."""
        monkeypatch.delenv("PORTAL_API_BASE_URL", raising=False)
        config = ClientConfig()
        assert config.api_base_url == "http://localhost:5000/api"
        assert config.refresh_buffer_seconds == 300
        assert config.rate_limit_max_backoff_seconds == 30
        assert config.perf_diagnostics is False

    def test_environment(self, monkeypatch):
        """Test PORTAL_ environment variables are read."""
        monkeypatch.setenv("PORTAL_API_BASE_URL", "https://portal.example.com/api")
        monkeypatch.setenv("PORTAL_PERF_DIAGNOSTICS", "true")
        config = get_config()
        assert config.api_base_url == "https://portal.example.com/api"
        assert config.perf_diagnostics is True

    def test_overrides_win(self, monkeypatch):
        """Test explicit overrides win over the environment."""
        monkeypatch.setenv("PORTAL_TOKEN_STORE_BACKEND", "redis")
        assert get_config(token_store_backend="memory").token_store_backend == "memory"


class TestLoggingContext:
    """Test cases for the structlog processors."""

    def test_correlation_ids_added(self):
        """Test correlation ids added."""
        tokens = set_request_context("trace-1", "action-1")
        try:
            event = add_correlation_context(None, "info", {"event": "x"})
        finally:
            reset_request_context(tokens)

        assert event["trace_id"] == "trace-1"
        assert event["action_id"] == "action-1"

    def test_context_restored(self):
        """Test the previous request context is restored."""
        tokens = set_request_context("trace-1")
        reset_request_context(tokens)
        assert "trace_id" not in add_correlation_context(None, "info", {"event": "x"})

    def test_user_context(self):
        """Test the signed-in user is added to log events."""
        set_user_context("7")
        try:
            assert add_correlation_context(None, "info", {})["user_id"] == "7"
        finally:
            clear_context()

    def test_service_context(self):
        """Test the service name is added to log events."""
        assert add_service_context("portal_client")(None, "info", {})["service"] == "portal_client"


class TestMetrics:
    """Test cases for MetricsCollector and PerfLog."""

    def test_http_request_counted(self):
        """Test http request counted."""
        metrics = MetricsCollector("portal_client")
        metrics.record_http_request("GET", "/properties", 200, 0.02)
        metrics.record_http_request("GET", "/properties", None, 0.5)

        assert metrics.sample_value(
            "portal_client_http_requests_total",
            {"method": "GET", "endpoint": "/properties", "status_code": "200"}
        ) == 1.0
        assert metrics.sample_value(
            "portal_client_http_requests_total",
            {"method": "GET", "endpoint": "/properties", "status_code": "none"}
        ) == 1.0

    def test_collectors_are_independent(self):
        """Test collectors are independent."""
        first = MetricsCollector("portal_client")
        second = MetricsCollector("portal_client")
        first.record_refresh("reactive", "success")

        labels = {"trigger": "reactive", "outcome": "success"}
        assert first.sample_value("portal_client_token_refresh_total", labels) == 1.0
        assert second.sample_value("portal_client_token_refresh_total", labels) is None

    def test_perf_log_disabled_by_default(self):
        """Test perf log disabled by default."""
        metrics = MetricsCollector("portal_client")
        metrics.record_http_request("GET", "/tenants", 200, 0.01, trace_id="t-1")
        assert metrics.perf_log.http_entries() == []

    def test_perf_log_records_when_enabled(self):
        """Test perf log records when enabled."""
        perf_log = PerfLog(enabled=True)
        metrics = MetricsCollector("portal_client", perf_log=perf_log)
        metrics.record_http_request("POST", "/payments", 500, 0.25, trace_id="t-1", action_id="pay")

        entry = perf_log.http_entries()[0]
        assert entry["ok"] is False
        assert entry["status"] == 500
        assert entry["duration_ms"] == pytest.approx(250.0)
        assert entry["trace_id"] == "t-1"
        assert entry["action_id"] == "pay"

    def test_perf_log_is_bounded(self):
        """Test perf log is bounded."""
        perf_log = PerfLog(enabled=True, max_entries=3)
        for n in range(5):
            perf_log.record_action(name=f"a{n}", duration_ms=1.0)

        assert [e["name"] for e in perf_log.action_entries()] == ["a2", "a3", "a4"]
        perf_log.clear()
        assert perf_log.action_entries() == []
