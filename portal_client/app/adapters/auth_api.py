"""
Auth endpoints client.
"""

from typing import Any, Dict

from shared.logging import get_logger
from ..gateway.request_gateway import RequestGateway, response_json


class AuthAPI:
    """Client for the /auth endpoints.

    Login, refresh and logout run with refresh disabled: a 401 from any of
    them is a plain failure, never a trigger for another refresh.
    """

    def __init__(self, gateway: RequestGateway):
        self.gateway = gateway
        self.logger = get_logger("portal_client.auth_api")

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        response = await self.gateway.post(
            "/auth/login",
            json={"email": email, "password": password},
            allow_refresh=False
        )
        return response_json(response)

    async def refresh_token(self, token: str) -> Dict[str, Any]:
        response = await self.gateway.post(
            "/auth/refresh-token",
            json={"token": token},
            allow_refresh=False
        )
        return response_json(response)

    async def logout(self) -> None:
        await self.gateway.post("/auth/logout", allow_refresh=False)

    async def logout_all(self) -> None:
        await self.gateway.post("/auth/logout-all", allow_refresh=False)

    async def get_profile(self) -> Dict[str, Any]:
        response = await self.gateway.get("/auth/profile")
        return response_json(response)

    async def change_password(self, current_password: str, new_password: str) -> Dict[str, Any]:
        response = await self.gateway.post(
            "/auth/change-password",
            json={"currentPassword": current_password, "newPassword": new_password}
        )
        return response_json(response)

    async def register_admin(self, data: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.gateway.post("/auth/register-admin", json=data)
        return response_json(response)

    async def register_tenant(self, data: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.gateway.post("/auth/register-tenant", json=data)
        return response_json(response)
