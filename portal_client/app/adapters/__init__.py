"""
Adapters package for the portal client.

Contains thin wrappers over the API endpoints (auth and the business
resources). Every adapter depends on the single RequestGateway, which
carries token injection, refresh coordination and rate-limit backoff.

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .auth_api import AuthAPI
from .resources import (
    DocumentClient,
    MaintenanceClient,
    PaymentClient,
    PropertyClient,
    ResourceClient,
    StatsMixin,
    TenantClient,
)

__all__ = [
    "AuthAPI",
    "DocumentClient",
    "MaintenanceClient",
    "PaymentClient",
    "PropertyClient",
    "ResourceClient",
    "StatsMixin",
    "TenantClient",
]
