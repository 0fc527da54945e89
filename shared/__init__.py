"""
Shared utilities for the Tenant Portal client.

This package aggregates common building blocks consumed by the client:

- config: Client configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics and perf diagnostics helpers
- tracing: Trace/action identifiers and OpenTelemetry spans
- errors: Canonical error types and responses

Any cross-cutting logic should live here to avoid import cycles across
client packages. Do not import from portal_client into shared/.
"""
