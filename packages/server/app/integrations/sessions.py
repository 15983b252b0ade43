"""
Per-user vendor sessions.

Logs a CRM user into an external project with their own credentials,
caches the bearer token on the project membership until it expires, and
calls a vendor endpoint with it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import recover_password
from app.core.config import get_settings
from app.integrations.decoders import VendorDecoder, first_present, token_expiry
from app.integrations.registrar import describe_exception, open_client, response_json
from app.models.base import as_utc, utcnow
from app.models.project_membership import ProjectMembership
from app.models.user import User

log = structlog.get_logger()

INVALID_LOGIN_RESPONSE = "Invalid response from login endpoint"


class VendorLoginError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class VendorLogin:
    token: str
    user_id: Optional[str]


class VendorSession:
    """Base class. Subclasses provide ``base_url`` and ``fetch``."""

    slug: str = ""
    decoder: VendorDecoder = VendorDecoder()
    # Vendor signals login success with a top-level ``success`` flag
    require_success_flag: bool = False

    def __init__(self, *, client: httpx.AsyncClient | None = None, timeout: float | None = None):
        self._client = client
        self._timeout = timeout or get_settings().external_timeout_seconds

    @property
    def base_url(self) -> str:
        raise NotImplementedError

    @property
    def login_url(self) -> str:
        return f"{self.base_url}/auth/login"

    async def fetch(
        self, client: httpx.AsyncClient, token: str, membership: ProjectMembership
    ) -> dict:
        raise NotImplementedError

    async def login(self, client: httpx.AsyncClient, email: str, password: str) -> VendorLogin:
        response = await client.post(
            self.login_url,
            json={"email": email, "password": password},
            headers={"Accept": "application/json"},
        )
        payload = response_json(response)
        if not response.is_success:
            message, _ = self.decoder.error(payload, response.text)
            raise VendorLoginError(message, status_code=response.status_code)
        if self.require_success_flag and not (isinstance(payload, dict) and payload.get("success")):
            raise VendorLoginError(INVALID_LOGIN_RESPONSE)

        token = self.decoder.token(payload)
        if not token:
            raise VendorLoginError(INVALID_LOGIN_RESPONSE)
        user_id = first_present(payload, self.decoder.login_user_id_paths)
        return VendorLogin(token=token, user_id=str(user_id) if user_id is not None else None)

    async def ensure_token(
        self,
        client: httpx.AsyncClient,
        membership: ProjectMembership,
        user: User,
        session: AsyncSession,
        *,
        force: bool = False,
    ) -> str:
        """Cached token while unexpired, otherwise a fresh login stored on the membership."""
        now = utcnow()
        expires_at = as_utc(membership.token_expires_at)
        if not force and membership.external_token and expires_at and expires_at > now:
            log.info("vendor_session.token_reused", project=self.slug, membership_id=str(membership.id))
            return membership.external_token

        password = recover_password(user)
        if not password:
            raise VendorLoginError("Password not available for external login")

        login = await self.login(client, user.email, password)
        membership.external_token = login.token
        membership.token_expires_at = token_expiry(
            login.token, get_settings().token_fallback_days, now=now
        )
        if login.user_id:
            membership.external_user_id = login.user_id
        membership.last_sso_at = now
        session.add(membership)
        await session.flush()

        log.info(
            "vendor_session.logged_in",
            project=self.slug,
            membership_id=str(membership.id),
            expires_at=membership.token_expires_at.isoformat(),
        )
        return login.token

    async def login_and_fetch(
        self, membership: ProjectMembership, user: User, session: AsyncSession
    ) -> dict:
        """Log in (or reuse the cached token) and fetch the vendor's landing data."""

        async def action(client: httpx.AsyncClient) -> dict:
            token = await self.ensure_token(client, membership, user, session)
            return await self.fetch(client, token, membership)

        return await self._run(user, action)

    async def login_member(
        self, membership: ProjectMembership, user: User, session: AsyncSession
    ) -> dict:
        """Force a fresh login and store the token on the membership."""

        async def action(client: httpx.AsyncClient) -> dict:
            await self.ensure_token(client, membership, user, session, force=True)
            return {
                "success": True,
                "message": "Logged in successfully",
                "external_user_id": membership.external_user_id,
                "token_expires_at": membership.token_expires_at.isoformat(),
            }

        return await self._run(user, action)

    async def _run(
        self, user: User, action: Callable[[httpx.AsyncClient], Awaitable[dict]]
    ) -> dict:
        async with open_client(self._client, self._timeout) as client:
            try:
                return await action(client)
            except VendorLoginError as exc:
                log.warning(
                    "vendor_session.login_failed",
                    project=self.slug,
                    user_id=str(user.id),
                    error=str(exc),
                )
                result: dict[str, Any] = {"success": False, "message": str(exc)}
                if exc.status_code:
                    result["status_code"] = exc.status_code
                return result
            except httpx.HTTPError as exc:
                log.error(
                    "vendor_session.request_failed",
                    project=self.slug,
                    user_id=str(user.id),
                    error=describe_exception(exc),
                )
                return {"success": False, "message": f"Connection error: {describe_exception(exc)}"}

    def _bearer(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Accept": "application/json"}

    def _result(self, response: httpx.Response, default_message: str) -> dict:
        payload = response_json(response)
        if response.is_success:
            data = payload.get("data", payload) if isinstance(payload, dict) else payload
            message = payload.get("message") if isinstance(payload, dict) else None
            return {"success": True, "data": data, "message": message or default_message}
        message, _ = self.decoder.error(payload, response.text)
        return {"success": False, "message": message, "status_code": response.status_code}
