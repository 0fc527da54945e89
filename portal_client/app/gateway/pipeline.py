"""
Stateless pipeline stages used by the request gateway.

Each helper works on plain values so it can be tested on its own: request
description, response classification and 429 parsing.
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional

import httpx

TOKEN_REVOKED_CODE = "TOKEN_REVOKED"

_ID_SEGMENT = re.compile(
    r"^(\d+|[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})$"
)


@dataclass(frozen=True)
class RequestConfig:
    """Description of one outbound call."""

    method: str
    path: str
    params: Optional[Dict[str, Any]] = None
    json: Any = None
    data: Any = None
    files: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: Optional[float] = None
    # Auth-management calls disable refresh so a 401 there cannot recurse.
    allow_refresh: bool = True

    def with_headers(self, headers: Dict[str, str]) -> "RequestConfig":
        return replace(self, headers=dict(headers))


class ResponseClass(str, Enum):
    OK = "ok"
    UNAUTHORIZED = "unauthorized"
    TOKEN_REVOKED = "token_revoked"
    RATE_LIMITED = "rate_limited"
    ERROR = "error"


def response_payload(response: httpx.Response) -> Any:
    """Return the decoded JSON body, the raw text, or None for an empty body."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def classify_response(response: httpx.Response) -> ResponseClass:
    status = response.status_code
    if 200 <= status < 300:
        return ResponseClass.OK
    if status == 401:
        payload = response_payload(response)
        if isinstance(payload, dict) and payload.get("code") == TOKEN_REVOKED_CODE:
            return ResponseClass.TOKEN_REVOKED
        return ResponseClass.UNAUTHORIZED
    if status == 429:
        return ResponseClass.RATE_LIMITED
    return ResponseClass.ERROR


def parse_retry_after(response: httpx.Response, default_seconds: int) -> int:
    """Seconds from the Retry-After header or a ``retryAfter`` body field."""
    candidates = [response.headers.get("retry-after")]
    payload = response_payload(response)
    if isinstance(payload, dict):
        candidates.append(payload.get("retryAfter"))

    for value in candidates:
        if value is None or isinstance(value, bool):
            continue
        try:
            seconds = int(float(value))
        except (TypeError, ValueError):
            continue
        if seconds >= 0:
            return seconds
    return default_seconds


def endpoint_label(path: str) -> str:
    """Collapse id segments so metrics labels stay bounded."""
    bare = path.split("?", 1)[0]
    segments = ["{id}" if _ID_SEGMENT.match(segment) else segment for segment in bare.split("/")]
    return "/".join(segments) or "/"
