"""
Shared error handling for the Tenant Portal client.

Every exception raised by the request layer carries an ``ErrorKind`` so
callers can match on the kind instead of probing attributes::

    try:
        await client.properties.list()
    except PortalClientException as exc:
        if exc.kind is ErrorKind.RATE_LIMITED:
            ...
"""

from enum import Enum
from typing import Dict, Any, Optional
from urllib.parse import urlencode

from pydantic import BaseModel


class ErrorKind(str, Enum):
    """Discriminator for client error types."""
    SESSION_EXPIRED = "session_expired"
    RATE_LIMITED = "rate_limited"
    RATE_LIMIT_GATE_BLOCKED = "rate_limit_gate_blocked"
    REQUEST_FAILED = "request_failed"
    STORAGE = "storage"


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    kind: ErrorKind
    code: str
    message: str
    details: Dict[str, Any] = {}


class PortalClientException(Exception):
    """Base exception for the Tenant Portal client."""

    kind: ErrorKind = ErrorKind.REQUEST_FAILED

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None,
                 trace_id: Optional[str] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        self.trace_id = trace_id
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            trace_id=self.trace_id,
            kind=self.kind,
            code=self.code,
            message=self.message,
            details=self.details
        )


class SessionExpiredError(PortalClientException):
    """The session could not be recovered; the local credential was cleared."""

    kind = ErrorKind.SESSION_EXPIRED

    def __init__(self, message: str = "Session expired", reason: str = "session_expired",
                 details: Optional[Dict[str, Any]] = None, trace_id: Optional[str] = None):
        self.reason = reason
        super().__init__("SESSION_EXPIRED", message, {"reason": reason, **(details or {})}, trace_id)

    @property
    def login_redirect(self) -> str:
        """Login route carrying the reason marker."""
        return f"/login?{urlencode({'reason': self.reason})}"


class RateLimitedError(PortalClientException):
    """The server answered 429; no automatic retry is attempted."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, retry_after: int, payload: Optional[Dict[str, Any]] = None,
                 trace_id: Optional[str] = None):
        self.retry_after = retry_after
        self.payload = {**(payload or {}), "rateLimited": True, "retryAfter": retry_after}
        super().__init__(
            "RATE_LIMITED",
            f"Rate limited by server. Retry in {retry_after}s",
            {"retry_after": retry_after, "status_code": 429},
            trace_id
        )


class RateLimitGateBlockedError(PortalClientException):
    """Rejected locally while the backoff window is active; never reached the network."""

    kind = ErrorKind.RATE_LIMIT_GATE_BLOCKED

    def __init__(self, retry_after: int, path: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(
            "RATE_LIMIT_GATE_BLOCKED",
            f"Rate limited. Retry in {retry_after}s",
            {"retry_after": retry_after, "path": path}
        )


class RequestFailedError(PortalClientException):
    """Network or server error, propagated unchanged to the caller."""

    kind = ErrorKind.REQUEST_FAILED

    def __init__(self, message: str, status_code: Optional[int] = None,
                 payload: Any = None, trace_id: Optional[str] = None):
        self.status_code = status_code
        self.payload = payload
        super().__init__(
            "REQUEST_FAILED",
            message,
            {"status_code": status_code, "payload": payload},
            trace_id
        )


class LoginResponseError(RequestFailedError):
    """Login succeeded at HTTP level but the body lacks a token or user."""

    def __init__(self, message: str = "Unexpected login response", payload: Any = None):
        super().__init__(message, status_code=None, payload=payload)
        self.code = "LOGIN_RESPONSE_INVALID"


class TokenStoreError(PortalClientException):
    """Credential persistence failed."""

    kind = ErrorKind.STORAGE

    def __init__(self, message: str = "Token store failure", details: Optional[Dict[str, Any]] = None):
        super().__init__("TOKEN_STORE_ERROR", message, details)
