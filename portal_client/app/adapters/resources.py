"""
Business resource clients.

Every resource shares the same CRUD and soft-delete surface; all of them
talk to the API through the one request gateway.
"""

from typing import Any, Dict, Optional

from ..gateway.request_gateway import RequestGateway, response_json


class ResourceClient:
    """CRUD plus archive/restore/permanent delete for one collection."""

    base_path: str = ""

    def __init__(self, gateway: RequestGateway):
        self.gateway = gateway

    def _item(self, item_id: Any, suffix: str = "") -> str:
        return f"{self.base_path}/{item_id}{suffix}"

    async def list(self, **params) -> Any:
        response = await self.gateway.get(self.base_path, params=params or None)
        return response_json(response)

    async def get(self, item_id: Any) -> Any:
        return response_json(await self.gateway.get(self._item(item_id)))

    async def create(self, data: Dict[str, Any]) -> Any:
        return response_json(await self.gateway.post(self.base_path, json=data))

    async def update(self, item_id: Any, data: Dict[str, Any]) -> Any:
        return response_json(await self.gateway.put(self._item(item_id), json=data))

    async def delete(self, item_id: Any) -> Any:
        return response_json(await self.gateway.delete(self._item(item_id)))

    async def archive(self, item_id: Any) -> Any:
        return response_json(await self.gateway.put(self._item(item_id, "/archive")))

    async def restore(self, item_id: Any) -> Any:
        return response_json(await self.gateway.put(self._item(item_id, "/restore")))

    async def permanent_delete(self, item_id: Any) -> Any:
        return response_json(await self.gateway.delete(self._item(item_id, "/permanent")))

    async def list_archived(self) -> Any:
        return await self.list(onlyArchived="true")

    async def list_with_archived(self) -> Any:
        return await self.list(includeArchived="true")


class StatsMixin:
    """Adds the ``/stats`` endpoint to collections that offer one."""

    async def stats(self) -> Any:
        return response_json(await self.gateway.get(f"{self.base_path}/stats"))


class PropertyClient(StatsMixin, ResourceClient):
    base_path = "/properties"

    async def search(self, query: str) -> Any:
        return response_json(await self.gateway.get(f"{self.base_path}/search", params={"q": query}))


class TenantClient(StatsMixin, ResourceClient):
    base_path = "/tenants"


class PaymentClient(StatsMixin, ResourceClient):
    base_path = "/payments"

    async def update_status(self, payment_id: Any, status: str) -> Any:
        return response_json(
            await self.gateway.put(self._item(payment_id, "/status"), json={"status": status})
        )


class DocumentClient(ResourceClient):
    base_path = "/documents"

    async def upload(self, filename: str, content: bytes, content_type: str = "application/octet-stream",
                     fields: Optional[Dict[str, Any]] = None) -> Any:
        response = await self.gateway.post(
            f"{self.base_path}/upload",
            files={"file": (filename, content, content_type)},
            data=fields or None
        )
        return response_json(response)

    async def download(self, document_id: Any) -> bytes:
        response = await self.gateway.get(self._item(document_id, "/download"))
        return response.content


class MaintenanceClient(ResourceClient):
    base_path = "/maintenance"
