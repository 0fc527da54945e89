"""
Request gateway: the single path every outbound API call goes through.

Stages, in order:

1. gate check      - reject locally while a 429 backoff window is active
2. header injection - bearer token plus X-Trace-Id / X-Action-Id
3. dispatch        - httpx transport call, latency recorded on the side
4. classification  - ok / 401 / revoked 401 / 429 / other error

A 401 triggers one single-flight token refresh and one retry of the original
request. A revoked token skips the refresh and ends the session. A 429 arms
the backoff gate and is raised to the caller without retrying.
"""

import time
from typing import Any, Dict, Iterable, Optional, TYPE_CHECKING

import httpx

from shared.errors import (
    PortalClientException,
    RateLimitedError,
    RateLimitGateBlockedError,
    RequestFailedError,
    SessionExpiredError,
)
from shared.logging import get_logger, set_request_context, reset_request_context
from shared.metrics import MetricsCollector
from shared.tracing import ACTION_HEADER, TRACE_HEADER, TraceContext, trace_operation
from ..ratelimit.backoff_gate import AUTH_BYPASS_PATHS, RateLimitGate
from ..session.token_store import TokenStore
from .pipeline import (
    RequestConfig,
    ResponseClass,
    classify_response,
    endpoint_label,
    parse_retry_after,
    response_payload,
)

if TYPE_CHECKING:
    from ..session.manager import SessionManager


class RequestGateway:
    """Interceptor pipeline around an httpx.AsyncClient."""

    def __init__(self,
                 client: httpx.AsyncClient,
                 token_store: TokenStore,
                 gate: RateLimitGate,
                 trace_context: TraceContext,
                 metrics: Optional[MetricsCollector] = None,
                 bypass_paths: Iterable[str] = AUTH_BYPASS_PATHS,
                 default_retry_after_seconds: int = 60):
        self.client = client
        self.token_store = token_store
        self.gate = gate
        self.trace_context = trace_context
        self.metrics = metrics
        self.bypass_paths = tuple(bypass_paths)
        self.default_retry_after_seconds = default_retry_after_seconds
        self.session: Optional["SessionManager"] = None
        self.logger = get_logger("portal_client.gateway")

    def attach_session(self, session: "SessionManager") -> None:
        """Wire the session manager used for refresh and forced logout."""
        self.session = session

    async def request(self, method: str, path: str, *,
                      params: Optional[Dict[str, Any]] = None,
                      json: Any = None,
                      data: Any = None,
                      files: Any = None,
                      headers: Optional[Dict[str, str]] = None,
                      timeout: Optional[float] = None,
                      allow_refresh: bool = True) -> httpx.Response:
        """Send a request through the pipeline and return the 2xx response."""
        config = RequestConfig(
            method=method.upper(),
            path=path,
            params=params,
            json=json,
            data=data,
            files=files,
            headers=dict(headers or {}),
            timeout=timeout,
            allow_refresh=allow_refresh,
        )
        return await self.send(config)

    async def get(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("DELETE", path, **kwargs)

    async def send(self, config: RequestConfig) -> httpx.Response:
        try:
            return await self._send(config, token=None, retried=False)
        except PortalClientException as e:
            if self.metrics:
                self.metrics.record_error(e.kind.value)
            raise

    async def _send(self, config: RequestConfig, token: Optional[str], retried: bool) -> httpx.Response:
        self.check_gate(config)
        headers = self.build_headers(config, token)
        sent_token = _bearer_token(headers)
        trace_id = headers[TRACE_HEADER]

        context_tokens = set_request_context(trace_id, headers.get(ACTION_HEADER))
        try:
            response = await self.dispatch(config, headers)
            outcome = classify_response(response)

            if outcome is ResponseClass.OK:
                return response

            if outcome is ResponseClass.TOKEN_REVOKED and config.allow_refresh:
                await self._handle_revoked(config)

            if outcome is ResponseClass.UNAUTHORIZED and config.allow_refresh and not retried:
                new_token = await self._recover_token(sent_token)
                self.logger.info("Retrying request with refreshed token", path=config.path)
                # Keep the trace id so the retry is correlated with the original call.
                return await self._send(config.with_headers(headers), token=new_token, retried=True)

            if outcome is ResponseClass.RATE_LIMITED:
                self._handle_rate_limited(config, response, trace_id)

            raise RequestFailedError(
                f"Request failed with status {response.status_code}",
                status_code=response.status_code,
                payload=response_payload(response),
                trace_id=trace_id
            )
        finally:
            reset_request_context(context_tokens)

    def check_gate(self, config: RequestConfig) -> None:
        """Stage 1: refuse business traffic during a backoff window."""
        try:
            self.gate.check(config.path, self.bypass_paths)
        except RateLimitGateBlockedError as e:
            self.logger.info("Request suppressed by rate limit gate",
                             path=config.path, retry_after=e.retry_after)
            if self.metrics:
                self.metrics.record_gate_rejection(endpoint_label(config.path))
            raise

    def build_headers(self, config: RequestConfig, token: Optional[str] = None) -> Dict[str, str]:
        """Stage 2: bearer token and correlation headers.

        An explicit token (a refreshed one, on retry) wins over the stored one.
        """
        headers = {k: v for k, v in config.headers.items() if k.lower() != "authorization"}
        if token is None:
            credential = self.token_store.get()
            token = credential.access_token if credential else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return self.trace_context.ensure_headers(headers)

    async def dispatch(self, config: RequestConfig, headers: Dict[str, str]) -> httpx.Response:
        """Stage 3: send over the transport and record latency."""
        label = endpoint_label(config.path)
        kwargs: Dict[str, Any] = {"params": config.params, "headers": headers}
        if config.json is not None:
            kwargs["json"] = config.json
        if config.data is not None:
            kwargs["data"] = config.data
        if config.files is not None:
            kwargs["files"] = config.files
        if config.timeout is not None:
            kwargs["timeout"] = config.timeout

        with trace_operation(
            "portal_client.request",
            **{
                "http.method": config.method,
                "http.route": label,
                "portal.trace_id": headers.get(TRACE_HEADER),
                "portal.action_id": headers.get(ACTION_HEADER),
            }
        ) as span:
            started = time.perf_counter()
            try:
                response = await self.client.request(config.method, config.path, **kwargs)
            except httpx.HTTPError as e:
                self._observe(config.method, label, None, started, headers)
                self.logger.error("Transport error", method=config.method, path=config.path, error=str(e))
                raise RequestFailedError(
                    f"Network error: {e}",
                    payload={"error": type(e).__name__},
                    trace_id=headers.get(TRACE_HEADER)
                ) from e
            except RuntimeError as e:
                if not self.client.is_closed:
                    raise
                self._observe(config.method, label, None, started, headers)
                self.logger.warning("Request sent on a closed client", method=config.method, path=config.path)
                raise RequestFailedError(
                    "Client has been closed",
                    payload={"error": "ClientClosed"},
                    trace_id=headers.get(TRACE_HEADER)
                ) from e

            span.set_attribute("http.status_code", response.status_code)
            self._observe(config.method, label, response.status_code, started, headers)
            return response

    def _observe(self, method: str, label: str, status_code: Optional[int], started: float,
                 headers: Dict[str, str]) -> None:
        if self.metrics is None:
            return
        self.metrics.record_http_request(
            method,
            label,
            status_code,
            time.perf_counter() - started,
            trace_id=headers.get(TRACE_HEADER),
            action_id=headers.get(ACTION_HEADER),
        )

    async def _recover_token(self, sent_token: Optional[str]) -> str:
        """Get a token to retry a 401 with, refreshing at most once across callers."""
        credential = self.token_store.get()
        current = credential.access_token if credential else None
        if current and sent_token and current != sent_token:
            # Someone refreshed while this request was in flight.
            return current

        if self.session is None:
            raise SessionExpiredError("No session available to refresh the token")
        return await self.session.refresh(trigger="reactive")

    async def _handle_revoked(self, config: RequestConfig) -> None:
        self.logger.warning("Token revoked by server, ending session", path=config.path)
        if self.session is not None:
            await self.session.force_logout(reason="token_revoked")
        else:
            self.token_store.clear()
        raise SessionExpiredError("Token has been revoked", reason="token_revoked")

    def _handle_rate_limited(self, config: RequestConfig, response: httpx.Response, trace_id: str) -> None:
        retry_after = parse_retry_after(response, self.default_retry_after_seconds)
        self.gate.arm(retry_after)
        if self.metrics:
            self.metrics.record_rate_limited(endpoint_label(config.path))
        payload = response_payload(response)
        raise RateLimitedError(
            retry_after=retry_after,
            payload=payload if isinstance(payload, dict) else {"body": payload},
            trace_id=trace_id
        )


def _bearer_token(headers: Dict[str, str]) -> Optional[str]:
    value = headers.get("Authorization")
    if value and value.startswith("Bearer "):
        return value[len("Bearer "):]
    return None


def response_json(response: httpx.Response) -> Any:
    """Decode a successful response body, failing loudly on non-JSON."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as e:
        raise RequestFailedError(
            "Expected a JSON response body",
            status_code=response.status_code,
            payload=response.text
        ) from e
