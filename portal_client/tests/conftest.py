"""
Shared fixtures for the portal client unit tests.
"""

import pytest

from portal_client.app.main import PortalClient
from shared.config import ClientConfig
from shared.test_helpers import BASE_URL, FakePortalServer


@pytest.fixture
def server():
    return FakePortalServer()


@pytest.fixture
def make_client(server):
    """Factory for clients wired to the fake server through httpx.MockTransport."""

    def factory(**overrides) -> PortalClient:
        settings = {"api_base_url": BASE_URL, "token_store_backend": "memory"}
        settings.update(overrides)
        return PortalClient(config=ClientConfig(**settings), transport=server.transport())

    return factory
