"""Session manager: bearer credentials, coalesced refresh, single retry.

The manager is the only component that reads or writes tokens. Every
authenticated call goes through `authorized_send`; a 401 on such a call
triggers at most one refresh and at most one retried attempt.
"""

import asyncio
from typing import Any, Callable

from swiftline.common.config import settings
from swiftline.common.logging import logger
from swiftline.common.metrics import session_expired_total, token_refresh_total
from swiftline.common.phone import mask
from swiftline.services.session.models import CredentialStore, MemoryCredentialStore, Session
from swiftline.services.transport.schemas import Envelope, ErrorCode
from swiftline.services.transport.service import Transport

REFRESH_ENDPOINT = "/api/v1/auth/refresh"


def _bearer(token: str | None) -> str | None:
    return f"Bearer {token}" if token else None


class SessionManager:
    """Owns the token pair and funnels authenticated traffic through one path."""

    def __init__(
        self,
        transport: Transport,
        store: CredentialStore | None = None,
        session: Session | None = None,
        on_session_expired: Callable[[], None] | None = None,
        service_name: str | None = None,
    ) -> None:
        self.transport = transport
        self.store = store if store is not None else MemoryCredentialStore()
        self.session = session or self.store.load() or Session()
        self.on_session_expired = on_session_expired
        self.service_name = service_name or settings.service_name
        self._refresh_task: asyncio.Task | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.session.is_authenticated

    async def authorized_send(
        self,
        endpoint: str,
        method: str = "GET",
        body: Any = None,
        require_auth: bool = True,
    ) -> Envelope:
        """Send with the current bearer token, recovering once from a 401.

        Returns the original envelope, the retried envelope, or a
        `SESSION_EXPIRED` failure when the session could not be recovered.
        """

        token_used = self.session.access_token if require_auth else None
        response = await self.transport.send(endpoint, method, body, _bearer(token_used))
        if not (require_auth and response.unauthorized):
            return response

        current = self.session.access_token
        if current and current != token_used:
            # A concurrent caller already refreshed while this request was in flight.
            refreshed = True
        else:
            refreshed = await self._refresh()
        if not refreshed:
            return self._expire(endpoint)

        retried = await self.transport.send(endpoint, method, body, _bearer(self.session.access_token))
        if retried.unauthorized:
            return self._expire(endpoint)
        return retried

    async def _refresh(self) -> bool:
        """Share one in-flight refresh between every caller that needs it."""

        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._do_refresh())
            self._refresh_task.add_done_callback(self._forget_refresh)
        # Shielded so a cancelled caller does not cancel the refresh others await.
        return await asyncio.shield(self._refresh_task)

    def _forget_refresh(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _do_refresh(self) -> bool:
        refresh_token = self.session.refresh_token
        if not refresh_token:
            token_refresh_total.labels(service=self.service_name, result="missing").inc()
            return False

        response = await self.transport.send(REFRESH_ENDPOINT, "POST", {"refreshToken": refresh_token})
        data = response.data if isinstance(response.data, dict) else {}
        access_token = data.get("accessToken")
        if not (response.success and access_token):
            token_refresh_total.labels(service=self.service_name, result="failed").inc()
            logger.warning("token_refresh_failed code=%s status=%s", response.code, response.http_status)
            return False

        self.session.access_token = access_token
        if data.get("refreshToken"):
            self.session.refresh_token = data["refreshToken"]
        self.store.save(self.session)
        token_refresh_total.labels(service=self.service_name, result="success").inc()
        logger.info("token_refreshed")
        return True

    def _expire(self, endpoint: str) -> Envelope:
        had_credentials = bool(self.session.access_token or self.session.refresh_token)
        self.destroy()
        if had_credentials:
            session_expired_total.labels(service=self.service_name).inc()
            logger.warning("session_expired endpoint=%s", endpoint)
            if self.on_session_expired is not None:
                self.on_session_expired()
        return Envelope.failure("Session expired", ErrorCode.SESSION_EXPIRED, http_status=401)

    def destroy(self) -> None:
        """Clear both tokens and the cached profile, in memory and on disk."""

        self.session.clear()
        self.store.clear()

    def _start_session(self, response: Envelope) -> None:
        data = response.data if isinstance(response.data, dict) else {}
        if not (response.success and data.get("accessToken")):
            return
        self.session.access_token = data["accessToken"]
        self.session.refresh_token = data.get("refreshToken")
        self.session.user = data.get("user")
        self.store.save(self.session)

    async def request_otp(self, phone: str, purpose: str = "LOGIN") -> Envelope:
        """Ask the server to text a one-time password (LOGIN or REGISTRATION)."""

        return await self.authorized_send(
            "/api/v1/auth/otp/request",
            "POST",
            {"phone": phone, "purpose": purpose},
            require_auth=False,
        )

    async def register(
        self,
        phone: str,
        name: str,
        otp: str,
        email: str | None = None,
        role: str | None = None,
    ) -> Envelope:
        body: dict[str, Any] = {"phone": phone, "name": name, "otp": otp}
        if email:
            body["email"] = email
        if role:
            body["role"] = role
        response = await self.authorized_send("/api/v1/auth/register", "POST", body, require_auth=False)
        self._start_session(response)
        return response

    async def login(self, phone: str, otp: str) -> Envelope:
        response = await self.authorized_send(
            "/api/v1/auth/login",
            "POST",
            {"phone": phone, "otp": otp},
            require_auth=False,
        )
        self._start_session(response)
        if response.success:
            logger.info("login_succeeded phone=%s", mask(phone))
        return response

    async def logout(self) -> Envelope:
        """Revoke the refresh token server-side, then always clear locally."""

        try:
            return await self.authorized_send(
                "/api/v1/auth/logout",
                "POST",
                {"refreshToken": self.session.refresh_token},
            )
        finally:
            self.destroy()

    async def get_profile(self) -> Envelope:
        return await self.authorized_send("/api/v1/auth/profile")
