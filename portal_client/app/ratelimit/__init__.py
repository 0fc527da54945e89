"""
Rate limiting package for the client.

Holds the backoff gate that suppresses business traffic after a server 429
while leaving the auth endpoints reachable.
"""

from .backoff_gate import RateLimitGate, AUTH_BYPASS_PATHS

__all__ = ["RateLimitGate", "AUTH_BYPASS_PATHS"]
