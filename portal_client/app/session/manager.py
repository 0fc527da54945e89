"""
Session manager: owns the credential lifecycle.

login -> AUTHENTICATED, refresh (proactive from a timer or reactive from a
401) -> REFRESH_PENDING -> AUTHENTICATED, logout or unrecoverable refresh
failure -> UNAUTHENTICATED. Every mutation is persisted through the token
store before it becomes visible.
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from pydantic import ValidationError as PydanticValidationError

from shared.errors import (
    LoginResponseError,
    PortalClientException,
    RequestFailedError,
    SessionExpiredError,
)
from shared.logging import get_logger, set_user_context
from shared.metrics import MetricsCollector
from .models import Credential, SessionState, UserRecord, parse_auth_payload
from .refresh_coordinator import RefreshCoordinator
from .token_store import TokenStore

if TYPE_CHECKING:
    from ..adapters.auth_api import AuthAPI

REFRESH_BUFFER_SECONDS = 5 * 60

ROLE_REDIRECTS = {
    "super_admin": "/super-admin",
    "admin": "/admin",
    "tenant": "/tenant",
}
LOGIN_ROUTE = "/login"


class SessionManager:
    """Login, logout and refresh scheduling for the current user."""

    def __init__(self,
                 auth_api: "AuthAPI",
                 token_store: TokenStore,
                 coordinator: Optional[RefreshCoordinator] = None,
                 metrics: Optional[MetricsCollector] = None,
                 refresh_buffer_seconds: int = REFRESH_BUFFER_SECONDS,
                 clock: Optional[Callable[[], float]] = None):
        self.auth_api = auth_api
        self.token_store = token_store
        self.coordinator = coordinator or RefreshCoordinator()
        self.metrics = metrics
        self.refresh_buffer_seconds = refresh_buffer_seconds
        self.clock = clock or time.time
        self.logger = get_logger("portal_client.session")

        self.state = SessionState.UNAUTHENTICATED
        self.credential: Optional[Credential] = None
        # Bumped on every login/logout so a refresh that outlives its session is discarded.
        self._generation = 0
        self._refresh_handle: Optional[asyncio.TimerHandle] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._expired_listeners: List[Callable[[str], Any]] = []

    @property
    def token(self) -> Optional[str]:
        return self.credential.access_token if self.credential else None

    @property
    def user(self) -> Optional[UserRecord]:
        return self.credential.user if self.credential else None

    @property
    def is_authenticated(self) -> bool:
        return self.credential is not None

    @property
    def refresh_in_progress(self) -> bool:
        return self.coordinator.in_flight

    @property
    def refresh_scheduled(self) -> bool:
        return self._refresh_handle is not None

    def _persist(self, credential: Credential) -> None:
        self.token_store.set(credential)
        self.credential = credential
        set_user_context(str(credential.user.id) if credential.user.id is not None else None)

    # ------------------------------------------------------------------
    # Login / restore
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> UserRecord:
        """Authenticate and persist the credential. Token and user are both required."""
        previous_state = self.state
        self.state = SessionState.AUTHENTICATING
        try:
            body = await self.auth_api.login(email.strip().lower(), password)
            payload = parse_auth_payload(body)
            if not payload["token"] or not payload["user"]:
                raise LoginResponseError(payload={"has_token": bool(payload["token"]),
                                                  "has_user": bool(payload["user"])})
            try:
                user = UserRecord.model_validate(payload["user"])
            except PydanticValidationError as e:
                raise LoginResponseError("Login response contains an invalid user record") from e
        except BaseException:
            self.state = previous_state if self.credential else SessionState.UNAUTHENTICATED
            raise

        credential = Credential.from_token(payload["token"], user)
        self._generation += 1
        self._persist(credential)
        self.state = SessionState.AUTHENTICATED
        self.schedule_refresh(credential.expiry_epoch_ms)
        self.logger.info("Logged in", role=user.role, proactive_refresh=self.refresh_scheduled)
        return user

    async def restore(self) -> Optional[UserRecord]:
        """Revalidate a persisted credential against the profile endpoint.

        Returns the refreshed user, or None when there is no usable session.
        """
        stored = self.token_store.get()
        if stored is None:
            self.state = SessionState.UNAUTHENTICATED
            return None

        self.credential = stored
        self.state = SessionState.AUTHENTICATING
        try:
            body = await self.auth_api.get_profile()
        except SessionExpiredError:
            return None
        except PortalClientException as e:
            self.logger.warning("Stored session validation failed", error=e.message)
            await self.logout()
            return None

        user_data = parse_auth_payload(body)["user"]
        if not user_data:
            await self.logout()
            return None

        # A reactive refresh during the profile call may have replaced the token.
        current = self.credential or stored
        credential = Credential.from_token(current.access_token, UserRecord.model_validate(user_data))
        self._persist(credential)
        self.state = SessionState.AUTHENTICATED
        self.schedule_refresh(credential.expiry_epoch_ms)
        return credential.user

    def update_token(self, token: str) -> None:
        """Replace the access token of the current session."""
        if self.credential is None:
            raise SessionExpiredError("No active session to update", reason="no_session")
        credential = Credential.from_token(token, self.credential.user)
        self._persist(credential)
        self.schedule_refresh(credential.expiry_epoch_ms)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def schedule_refresh(self, expiry_epoch_ms: Optional[int]) -> Optional[float]:
        """Arm a one-shot refresh at expiry minus the buffer.

        Returns the delay in seconds, or None if nothing was armed (unknown or
        too-close expiry leaves refresh to the reactive 401 path).
        """
        self._cancel_refresh_timer()
        if not expiry_epoch_ms:
            return None

        delay = (expiry_epoch_ms - self.refresh_buffer_seconds * 1000 - self.clock() * 1000) / 1000.0
        if delay <= 0:
            return None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.debug("No running event loop, proactive refresh not scheduled")
            return None

        self._refresh_handle = loop.call_later(delay, self._on_refresh_timer)
        self.logger.debug("Proactive refresh scheduled", delay_seconds=round(delay, 1))
        return delay

    def _cancel_refresh_timer(self) -> None:
        if self._refresh_handle is not None:
            self._refresh_handle.cancel()
            self._refresh_handle = None

    def _on_refresh_timer(self) -> None:
        self._refresh_handle = None
        self._timer_task = asyncio.ensure_future(self._refresh_from_timer())

    async def _refresh_from_timer(self) -> None:
        try:
            await self.refresh(trigger="proactive")
        except PortalClientException as e:
            self.logger.warning("Proactive token refresh failed", code=e.code, error=e.message)

    async def refresh(self, trigger: str = "reactive") -> str:
        """Refresh the token, sharing one network call among concurrent callers."""
        return await self.coordinator.run(lambda: self._perform_refresh(trigger))

    async def _perform_refresh(self, trigger: str) -> str:
        credential = self.credential
        if credential is None:
            self._record_refresh(trigger, "no_session")
            raise SessionExpiredError("No active session to refresh")

        generation = self._generation
        self.state = SessionState.REFRESH_PENDING
        try:
            body = await self.auth_api.refresh_token(credential.access_token)
            payload = parse_auth_payload(body)
            if not payload["token"]:
                raise RequestFailedError("No token in refresh response")
            user = UserRecord.model_validate(payload["user"]) if payload["user"] else credential.user
        except (PortalClientException, PydanticValidationError) as e:
            self._record_refresh(trigger, "failure")
            self.logger.warning("Token refresh failed", trigger=trigger, error=str(e))
            if generation == self._generation:
                await self.force_logout(reason="session_expired")
            raise SessionExpiredError("Token refresh failed", reason="session_expired") from e

        if generation != self._generation:
            self._record_refresh(trigger, "discarded")
            raise SessionExpiredError("Session ended while the token was refreshing", reason="logged_out")

        refreshed = Credential.from_token(payload["token"], user)
        self._persist(refreshed)
        self.state = SessionState.AUTHENTICATED
        self.schedule_refresh(refreshed.expiry_epoch_ms)
        self._record_refresh(trigger, "success")
        self.logger.info("Token refreshed", trigger=trigger)
        return refreshed.access_token

    def _record_refresh(self, trigger: str, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_refresh(trigger, outcome)

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    async def logout(self, notify_server: bool = True) -> None:
        """End the session locally; tell the server on a best-effort basis.

        Local cleanup always happens, whatever the server call does.
        """
        had_session = self.credential is not None
        self._generation += 1
        self._cancel_refresh_timer()
        try:
            if notify_server and had_session:
                try:
                    await self.auth_api.logout()
                except PortalClientException as e:
                    self.logger.warning("Logout API call failed", code=e.code, error=e.message)
        finally:
            self.credential = None
            self.state = SessionState.UNAUTHENTICATED
            set_user_context(None)
            self.token_store.clear()

        if had_session:
            self.logger.info("Logged out", notified_server=notify_server)

    async def force_logout(self, reason: str = "session_expired") -> None:
        """Local-only logout for a session the server no longer accepts."""
        had_session = self.credential is not None
        await self.logout(notify_server=False)
        if had_session:
            self._notify_expired(reason)

    async def logout_all(self) -> None:
        """Revoke every session of the user, then log out locally."""
        try:
            await self.auth_api.logout_all()
        except PortalClientException as e:
            self.logger.warning("Logout-all API call failed", code=e.code, error=e.message)
        finally:
            await self.logout()

    def add_session_expired_listener(self, callback: Callable[[str], Any]) -> Callable[[], None]:
        """Register callback(reason) for forced logouts; returns an unsubscribe function."""
        self._expired_listeners.append(callback)

        def remove() -> None:
            if callback in self._expired_listeners:
                self._expired_listeners.remove(callback)

        return remove

    def _notify_expired(self, reason: str) -> None:
        for callback in list(self._expired_listeners):
            try:
                callback(reason)
            except Exception:
                self.logger.exception("Session expired listener failed", reason=reason)

    async def close(self) -> None:
        """Teardown: stop the proactive timer. An in-flight refresh still completes."""
        self._cancel_refresh_timer()

    # ------------------------------------------------------------------
    # Account operations
    # ------------------------------------------------------------------

    async def change_password(self, current_password: str, new_password: str) -> Dict[str, Any]:
        return await self.auth_api.change_password(current_password, new_password)

    async def register_admin(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.auth_api.register_admin(data)

    async def register_tenant(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.auth_api.register_tenant(data)

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    @property
    def role(self) -> Optional[str]:
        return self.user.role if self.user else None

    def is_super_admin(self) -> bool:
        return self.role == "super_admin"

    def is_admin(self) -> bool:
        return self.role == "admin"

    def is_tenant(self) -> bool:
        return self.role == "tenant"

    def can_register_users(self) -> bool:
        return self.is_super_admin() or self.is_admin()

    def can_register_admins(self) -> bool:
        return self.is_super_admin()

    def get_role_redirect(self) -> str:
        """Landing route for the current user's role."""
        if self.user is None:
            return LOGIN_ROUTE
        return ROLE_REDIRECTS.get(self.role, LOGIN_ROUTE)
