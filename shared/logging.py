"""
Shared logging configuration for the Tenant Portal client.
"""

import sys
import structlog
import logging
import time
from typing import Any, Dict, Optional
from contextvars import ContextVar

# Context variables for correlation IDs of the request being processed
trace_id_var: ContextVar[Optional[str]] = ContextVar('trace_id', default=None)
action_id_var: ContextVar[Optional[str]] = ContextVar('action_id', default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar('user_id', default=None)


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured logging for the client."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context(service_name),
            add_correlation_context,
            add_timestamp,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )


def add_service_context(service_name: str):
    """Build a processor that stamps the service name on log events."""

    def processor(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    return processor


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add correlation context to log events."""
    trace_id = trace_id_var.get()
    if trace_id:
        event_dict.setdefault("trace_id", trace_id)

    action_id = action_id_var.get()
    if action_id:
        event_dict.setdefault("action_id", action_id)

    user_id = user_id_var.get()
    if user_id:
        event_dict["user_id"] = user_id

    return event_dict


def add_timestamp(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add high-precision timestamp to log events."""
    event_dict["timestamp"] = time.time()
    return event_dict


def set_request_context(trace_id: Optional[str], action_id: Optional[str] = None):
    """Set correlation ids for the request being processed.

    Returns the reset tokens so the caller can restore the previous values.
    """
    return trace_id_var.set(trace_id), action_id_var.set(action_id)


def reset_request_context(tokens) -> None:
    """Restore correlation ids saved by set_request_context."""
    trace_token, action_token = tokens
    trace_id_var.reset(trace_token)
    action_id_var.reset(action_token)


def set_user_context(user_id: Optional[str] = None):
    """Set the signed-in user for log correlation."""
    user_id_var.set(user_id)


def clear_context():
    """Clear all context variables."""
    trace_id_var.set(None)
    action_id_var.set(None)
    user_id_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
