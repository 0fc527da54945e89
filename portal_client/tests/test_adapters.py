"""
Unit tests for the auth and resource adapters.
"""

import httpx
import pytest

from portal_client.app.adapters.resources import StatsMixin
from portal_client.app.main import PortalClient
from shared.config import ClientConfig
from shared.errors import RequestFailedError
from shared.test_helpers import BASE_URL


class TestResourceClients:
    """Test cases for the business resource clients."""

    @pytest.mark.parametrize("attr,base", [
        ("properties", "/properties"),
        ("tenants", "/tenants"),
        ("payments", "/payments"),
        ("documents", "/documents"),
        ("maintenance", "/maintenance"),
    ])
    @pytest.mark.asyncio
    async def test_crud_routes(self, server, make_client, attr, base):
        """Test every CRUD operation hits the expected method and path."""
        async with make_client() as client:
            await client.session.login("jane.admin@example.com", "secret")
            resource = getattr(client, attr)

            await resource.create({"name": "x"})
            await resource.get(3)
            await resource.update(3, {"name": "y"})
            await resource.archive(3)
            await resource.restore(3)
            await resource.delete(3)
            await resource.permanent_delete(3)

            routes = [(c.method, c.path) for c in server.calls if c.path.startswith(base)]
            assert routes == [
                ("POST", base),
                ("GET", f"{base}/3"),
                ("PUT", f"{base}/3"),
                ("PUT", f"{base}/3/archive"),
                ("PUT", f"{base}/3/restore"),
                ("DELETE", f"{base}/3"),
                ("DELETE", f"{base}/3/permanent"),
            ]

    @pytest.mark.asyncio
    async def test_list_variants_send_query(self, make_client):
        """Test list variants send query."""
        seen = []

        async with make_client() as client:
            await client.session.login("jane.admin@example.com", "secret")
            client.http.event_hooks["request"].append(_capture(seen))

            await client.tenants.list(page=2)
            await client.tenants.list_archived()
            await client.tenants.list_with_archived()

        assert seen == ["page=2", "onlyArchived=true", "includeArchived=true"]

    @pytest.mark.asyncio
    async def test_stats_and_search(self, server, make_client):
        """Test stats and search."""
        async with make_client() as client:
            await client.session.login("jane.admin@example.com", "secret")

            stats = await client.properties.stats()
            await client.properties.search("oak")
            await client.payments.update_status(9, "paid")

            assert stats["path"] == "/properties/stats"
            assert server.calls_to("/properties/search")[0].method == "GET"
            assert server.calls_to("/payments/9/status")[0].body == {"status": "paid"}

    @pytest.mark.parametrize("attr,has_stats", [
        ("properties", True),
        ("tenants", True),
        ("payments", True),
        ("documents", False),
        ("maintenance", False),
    ])
    def test_stats_only_where_offered(self, make_client, attr, has_stats):
        """Test only collections with a stats endpoint expose stats()."""
        client = make_client()
        resource = getattr(client, attr)

        assert isinstance(resource, StatsMixin) is has_stats
        assert hasattr(resource, "stats") is has_stats

    @pytest.mark.asyncio
    async def test_document_upload_is_multipart(self, server, make_client):
        """Test document upload is multipart."""
        async with make_client() as client:
            await client.session.login("jane.admin@example.com", "secret")
            await client.documents.upload("lease.pdf", b"%PDF-1.4", "application/pdf", {"tenantId": "4"})

            call = server.calls_to("/documents/upload")[0]
            assert call.headers["content-type"].startswith("multipart/form-data")
            assert call.headers["authorization"].startswith("Bearer ")

    @pytest.mark.asyncio
    async def test_document_download_returns_bytes(self):
        """Test document download returns bytes."""
        async def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"%PDF-1.4 binary")

        config = ClientConfig(api_base_url=BASE_URL, token_store_backend="memory")
        async with PortalClient(config=config, transport=httpx.MockTransport(handler)) as client:
            assert await client.documents.download(5) == b"%PDF-1.4 binary"

    @pytest.mark.asyncio
    async def test_non_json_success_body(self):
        """Test non json success body."""
        async def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>proxy page</html>")

        config = ClientConfig(api_base_url=BASE_URL, token_store_backend="memory")
        async with PortalClient(config=config, transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(RequestFailedError):
                await client.properties.list()


class TestAuthAPI:
    """Test cases for the auth adapter."""

    @pytest.mark.asyncio
    async def test_change_password_payload(self, server, make_client):
        """Test change password payload."""
        async with make_client() as client:
            await client.session.login("jane.admin@example.com", "secret")
            await client.session.change_password("old-pass", "new-pass")

            call = server.calls_to("/auth/change-password")[0]
            assert call.body == {"currentPassword": "old-pass", "newPassword": "new-pass"}

    @pytest.mark.asyncio
    async def test_register_routes(self, server, make_client):
        """Test registration calls reach their endpoints."""
        async with make_client() as client:
            await client.session.login("jane.admin@example.com", "secret")
            await client.session.register_admin({"email": "a@example.com"})
            await client.session.register_tenant({"email": "t@example.com"})

            assert server.calls_to("/auth/register-admin", "POST")
            assert server.calls_to("/auth/register-tenant", "POST")


def _capture(seen):
    async def hook(request: httpx.Request) -> None:
        seen.append(request.url.query.decode())
    return hook
