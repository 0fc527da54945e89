"""
Session package: credential persistence, refresh coordination and the
session lifecycle.
"""

from .models import Credential, SessionState, UserRecord, decode_expiry_ms
from .refresh_coordinator import PROCEED, RefreshCoordinator
from .token_store import (
    FileTokenStore,
    MemoryTokenStore,
    RedisTokenStore,
    TokenStore,
    create_token_store,
)
from .manager import SessionManager

__all__ = [
    "Credential",
    "FileTokenStore",
    "MemoryTokenStore",
    "PROCEED",
    "RedisTokenStore",
    "RefreshCoordinator",
    "SessionManager",
    "SessionState",
    "TokenStore",
    "UserRecord",
    "create_token_store",
    "decode_expiry_ms",
]
