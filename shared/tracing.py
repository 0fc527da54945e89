"""Trace and action identifiers with OpenTelemetry span helpers."""

import re
import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Mapping, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from shared.metrics import PerfLog

TRACE_HEADER = "X-Trace-Id"
ACTION_HEADER = "X-Action-Id"

MAX_ID_LENGTH = 128
SAFE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9._:\-]+$")


def create_id() -> str:
    """Return a fresh correlation identifier."""
    return str(uuid.uuid4())


def normalize_id(value: Any) -> Optional[str]:
    """Return the trimmed id if it is safe for headers and logs, otherwise None."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed or len(trimmed) > MAX_ID_LENGTH:
        return None
    if not SAFE_ID_PATTERN.match(trimmed):
        return None
    return trimmed


class TraceContext:
    """Correlation ids for outbound requests.

    Holds the single "current action" slot set by UI-level instrumentation.
    The slot lives on the instance and is never persisted.
    """

    def __init__(self, perf_log: Optional[PerfLog] = None):
        self._current_action_id: Optional[str] = None
        self.perf_log = perf_log

    create_id = staticmethod(create_id)
    normalize_id = staticmethod(normalize_id)

    def set_current_action_id(self, action_id: Any) -> Optional[str]:
        """Set the current action id; invalid values clear the slot."""
        self._current_action_id = normalize_id(action_id)
        return self._current_action_id

    def get_current_action_id(self) -> Optional[str]:
        return self._current_action_id

    def ensure_headers(self, headers: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Return a copy of headers with trace and action ids filled in.

        Header names match case-insensitively and are written back in their
        canonical form. A propagated X-Trace-Id is kept when it normalizes
        cleanly and replaced with a fresh id otherwise. A propagated
        X-Action-Id is kept when valid; the current action fills it in
        otherwise.
        """
        next_headers = dict(headers or {})
        trace_id = normalize_id(_pop_header(next_headers, TRACE_HEADER))
        action_id = normalize_id(_pop_header(next_headers, ACTION_HEADER)) or self.get_current_action_id()

        next_headers[TRACE_HEADER] = trace_id or create_id()
        if action_id:
            next_headers[ACTION_HEADER] = action_id
        return next_headers

    @contextmanager
    def action(self, name: str):
        """Mark a logical user action for the duration of the block.

        Requests issued inside the block carry X-Action-Id. When perf
        diagnostics are enabled the action duration is recorded.
        """
        previous = self._current_action_id
        action_id = self.set_current_action_id(name)
        started = time.perf_counter()
        try:
            yield action_id
        finally:
            self._current_action_id = previous
            if self.perf_log is not None and action_id:
                self.perf_log.record_action(
                    name=action_id,
                    duration_ms=(time.perf_counter() - started) * 1000.0,
                )


def get_tracer(name: str):
    """Get a tracer instance."""
    return trace.get_tracer(name)


@contextmanager
def trace_operation(operation_name: str, **attributes):
    """Context manager to trace an operation."""
    tracer = get_tracer(__name__)
    with tracer.start_as_current_span(operation_name) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, value)

        try:
            yield span
        except Exception as exc:
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.set_attribute("error", True)
            span.set_attribute("error.type", type(exc).__name__)
            raise


def _pop_header(headers: Dict[str, str], name: str) -> Optional[str]:
    """Remove every case variant of name and return the first non-empty value."""
    found = None
    for key in [k for k in headers if k.lower() == name.lower()]:
        value = headers.pop(key)
        if found is None and value:
            found = value
    return found
