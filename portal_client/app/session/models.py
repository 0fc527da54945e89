"""
Session data models.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from jose import jwt
from jose.exceptions import JOSEError
from pydantic import BaseModel, ConfigDict


class UserRecord(BaseModel):
    """User returned by the auth endpoints; unknown fields are preserved."""

    model_config = ConfigDict(extra="allow")

    id: Optional[Any] = None
    email: Optional[str] = None
    role: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESH_PENDING = "refresh_pending"


@dataclass(frozen=True)
class Credential:
    """Access token plus the user it belongs to."""

    access_token: str
    user: UserRecord
    expiry_epoch_ms: Optional[int] = None

    @classmethod
    def from_token(cls, access_token: str, user: UserRecord) -> "Credential":
        return cls(access_token=access_token, user=user, expiry_epoch_ms=decode_expiry_ms(access_token))


def decode_expiry_ms(token: str) -> Optional[int]:
    """Decode the JWT ``exp`` claim into epoch milliseconds.

    The signature is not verified; the server remains the authority. Returns
    None when the token cannot be decoded or carries no usable expiry.
    """
    try:
        claims: Dict[str, Any] = jwt.get_unverified_claims(token)
    except (JOSEError, ValueError, TypeError, AttributeError):
        return None
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)) or exp <= 0:
        return None
    return int(exp * 1000)


def parse_auth_payload(body: Any) -> Dict[str, Any]:
    """Normalize ``{data: {token, user}}`` and ``{token, user}`` response shapes."""
    payload = body.get("data") if isinstance(body, dict) and isinstance(body.get("data"), dict) else body
    if not isinstance(payload, dict):
        payload = {}
    return {"token": payload.get("token") or None, "user": payload.get("user") or None}
