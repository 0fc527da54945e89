"""
Shared metrics configuration for the Tenant Portal client.

Metrics and perf entries are a side channel: recording must never change
the outcome of the request being observed.
"""

from collections import deque
from typing import Dict, Any, Optional, List
import time

from prometheus_client import Counter, Histogram, CollectorRegistry, start_http_server

from shared.logging import get_logger


class PerfLog:
    """Bounded in-memory log of request and action timings.

    Entries are only recorded while ``enabled`` is true, so the log costs
    nothing in normal operation.
    """

    def __init__(self, enabled: bool = False, max_entries: int = 500):
        self.enabled = enabled
        self.http: deque = deque(maxlen=max_entries)
        self.actions: deque = deque(maxlen=max_entries)

    def record_http(self, *, ok: bool, method: str, url: str, status: Optional[int],
                    duration_ms: float, trace_id: Optional[str], action_id: Optional[str]) -> None:
        if not self.enabled:
            return
        self.http.append({
            "ok": ok,
            "method": method,
            "url": url,
            "status": status,
            "duration_ms": duration_ms,
            "trace_id": trace_id,
            "action_id": action_id,
        })

    def record_action(self, *, name: str, duration_ms: float) -> None:
        if not self.enabled:
            return
        self.actions.append({
            "name": name,
            "duration_ms": duration_ms,
            "timestamp": time.time(),
        })

    def http_entries(self) -> List[Dict[str, Any]]:
        return list(self.http)

    def action_entries(self) -> List[Dict[str, Any]]:
        return list(self.actions)

    def clear(self) -> None:
        self.http.clear()
        self.actions.clear()


class MetricsCollector:
    """Centralized metrics collector for the client."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None,
                 perf_log: Optional[PerfLog] = None):
        self.service_name = service_name
        # Separate registries keep several clients in one process from colliding.
        self.registry = registry if registry is not None else CollectorRegistry()
        self.perf_log = perf_log or PerfLog()
        self.logger = get_logger("shared.metrics")
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up client metrics."""

        self._metrics["http_requests_total"] = Counter(
            "portal_client_http_requests_total",
            "Total outbound HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "portal_client_http_request_duration_seconds",
            "Outbound HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        self._metrics["token_refresh_total"] = Counter(
            "portal_client_token_refresh_total",
            "Token refresh attempts",
            ["trigger", "outcome"],
            registry=self.registry
        )

        self._metrics["rate_limited_total"] = Counter(
            "portal_client_rate_limited_total",
            "Server 429 responses",
            ["endpoint"],
            registry=self.registry
        )

        self._metrics["rate_limit_gate_rejections_total"] = Counter(
            "portal_client_rate_limit_gate_rejections_total",
            "Requests rejected locally by the backoff gate",
            ["endpoint"],
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            "portal_client_errors_total",
            "Total errors surfaced to callers",
            ["error_type"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def start_metrics_server(self, port: int = 9090):
        """Start the Prometheus metrics server."""
        start_http_server(port, registry=self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: Optional[int], duration: float,
                            trace_id: Optional[str] = None, action_id: Optional[str] = None):
        """Record HTTP request metrics and the perf entry."""
        try:
            self._metrics["http_requests_total"].labels(
                method=method,
                endpoint=endpoint,
                status_code=str(status_code) if status_code is not None else "none"
            ).inc()

            self._metrics["http_request_duration_seconds"].labels(
                method=method,
                endpoint=endpoint
            ).observe(duration)

            self.perf_log.record_http(
                ok=status_code is not None and 200 <= status_code < 400,
                method=method,
                url=endpoint,
                status=status_code,
                duration_ms=duration * 1000.0,
                trace_id=trace_id,
                action_id=action_id,
            )
        except Exception as e:
            self.logger.debug("Failed to record request metrics", error=str(e))

    def record_refresh(self, trigger: str, outcome: str):
        """Record a token refresh outcome."""
        self.increment_counter("token_refresh_total", trigger=trigger, outcome=outcome)

    def record_rate_limited(self, endpoint: str):
        self.increment_counter("rate_limited_total", endpoint=endpoint)

    def record_gate_rejection(self, endpoint: str):
        self.increment_counter("rate_limit_gate_rejections_total", endpoint=endpoint)

    def record_error(self, error_type: str):
        """Record error metrics."""
        self.increment_counter("errors_total", error_type=error_type)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name not in self._metrics:
            return
        try:
            self._metrics[metric_name].labels(**labels).inc()
        except Exception as e:
            self.logger.debug("Failed to increment counter", metric=metric_name, error=str(e))

    def sample_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Read a sample from this collector's registry."""
        return self.registry.get_sample_value(name, labels or {})


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None,
                          perf_log: Optional[PerfLog] = None) -> MetricsCollector:
    """Get a metrics collector for the client."""
    return MetricsCollector(service_name, registry, perf_log)
