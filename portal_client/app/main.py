"""
Tenant Portal client wiring.
"""

from typing import Optional

import httpx
from prometheus_client import CollectorRegistry

from shared.config import ClientConfig, get_config
from shared.logging import configure_logging, get_logger
from shared.metrics import PerfLog, get_metrics_collector
from shared.tracing import TraceContext
from .adapters import (
    AuthAPI,
    DocumentClient,
    MaintenanceClient,
    PaymentClient,
    PropertyClient,
    TenantClient,
)
from .gateway import RequestGateway
from .ratelimit import AUTH_BYPASS_PATHS, RateLimitGate
from .session import RefreshCoordinator, SessionManager, TokenStore, create_token_store


class PortalClient:
    """Authenticated client for the tenant portal API.

    Usage::

        async with PortalClient() as client:
            await client.session.login("admin@example.com", "secret")
            properties = await client.properties.list(page=1)
    """

    def __init__(self,
                 config: Optional[ClientConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 token_store: Optional[TokenStore] = None,
                 registry: Optional[CollectorRegistry] = None,
                 configure_logs: bool = False):
        self.config = config or get_config()
        if configure_logs:
            configure_logging(self.config.service_name, self.config.log_level)
        self.logger = get_logger("portal_client")

        self.perf_log = PerfLog(enabled=self.config.perf_diagnostics, max_entries=self.config.perf_log_size)
        self.metrics = get_metrics_collector(self.config.service_name, registry, self.perf_log)
        self.trace = TraceContext(perf_log=self.perf_log)
        self.gate = RateLimitGate(max_backoff_seconds=self.config.rate_limit_max_backoff_seconds)
        self.coordinator = RefreshCoordinator()
        self.token_store = token_store or create_token_store(
            self.config.token_store_backend,
            path=self.config.token_store_path,
            redis_url=self.config.redis_url,
            token_key=self.config.token_key,
            user_key=self.config.user_key,
        )

        self.http = httpx.AsyncClient(
            base_url=self.config.api_base_url,
            timeout=self.config.request_timeout_seconds,
            transport=transport,
        )
        self.gateway = RequestGateway(
            self.http,
            self.token_store,
            self.gate,
            self.trace,
            metrics=self.metrics,
            bypass_paths=AUTH_BYPASS_PATHS,
            default_retry_after_seconds=self.config.default_retry_after_seconds,
        )
        self.auth = AuthAPI(self.gateway)
        self.session = SessionManager(
            self.auth,
            self.token_store,
            coordinator=self.coordinator,
            metrics=self.metrics,
            refresh_buffer_seconds=self.config.refresh_buffer_seconds,
        )
        self.gateway.attach_session(self.session)

        self.properties = PropertyClient(self.gateway)
        self.tenants = TenantClient(self.gateway)
        self.payments = PaymentClient(self.gateway)
        self.documents = DocumentClient(self.gateway)
        self.maintenance = MaintenanceClient(self.gateway)

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send an arbitrary request through the gateway."""
        return await self.gateway.request(method, path, **kwargs)

    async def close(self) -> None:
        await self.session.close()
        await self.http.aclose()

    async def __aenter__(self) -> "PortalClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def create_client(**overrides) -> PortalClient:
    """Build a client from the environment plus explicit config overrides."""
    return PortalClient(config=get_config(**overrides))
