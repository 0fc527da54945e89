"""
Tenant Portal API client.

Wraps every outbound call with bearer-token injection, single-flight token
refresh and a rate-limit backoff gate.
"""

__version__ = "1.0.0"
