"""
TG Calabria integration.

Registration runs under a platform service account: one login per batch,
then each user is created as an editor of the company's newsroom. The
per-user session additionally proxies the newsroom API (categories, news,
article creation and stats).
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
import structlog

from app.core.config import get_settings
from app.integrations.decoders import TGCalabriaDecoder
from app.integrations.registrar import (
    BatchContext,
    ExternalRegistrar,
    RegistrationAuthError,
    describe_exception,
    open_client,
    response_json,
)
from app.integrations.sessions import VendorSession
from app.models.project_membership import ProjectMembership
from app.models.user import User

log = structlog.get_logger()

SLUG = "tg-calabria"
EDITOR_ROLE = "EDITOR"
AUTH_FAILED_MESSAGE = "Failed to authenticate with TG Calabria API"


def _base_url() -> str:
    return get_settings().tg_calabria_base_url.rstrip("/")


class TGCalabriaRegistrar(ExternalRegistrar):
    slug = SLUG
    decoder = TGCalabriaDecoder()
    name_required_message = "User name is required"

    @property
    def register_url(self) -> str:
        return f"{_base_url()}/crm/users/register"

    async def authenticate(self, client: httpx.AsyncClient, ctx: BatchContext) -> None:
        settings = get_settings()
        try:
            response = await client.post(
                f"{_base_url()}/auth/login",
                json={
                    "email": settings.tg_calabria_service_email,
                    "password": settings.tg_calabria_service_password,
                },
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            log.error("tg_calabria.service_login_failed", error=describe_exception(exc))
            raise RegistrationAuthError(AUTH_FAILED_MESSAGE) from exc

        token = self.decoder.token(response_json(response)) if response.is_success else None
        if not token:
            log.error("tg_calabria.service_login_failed", status=response.status_code)
            raise RegistrationAuthError(AUTH_FAILED_MESSAGE)
        ctx.headers["Authorization"] = f"Bearer {token}"

    def build_payload(self, ctx: BatchContext, user: User, password: str) -> dict:
        return {
            "email": user.email.strip(),
            "password": password,
            "name": user.name.strip(),
            "role": EDITOR_ROLE,
            "companyName": ctx.company.name if ctx.company else None,
        }

    def decode_success(self, payload: Any) -> tuple[Optional[str], Optional[str], Optional[str]]:
        return self.decoder.account(payload)


class TGCalabriaSession(VendorSession):
    slug = SLUG
    decoder = TGCalabriaDecoder()

    @property
    def base_url(self) -> str:
        return _base_url()

    async def fetch(
        self, client: httpx.AsyncClient, token: str, membership: ProjectMembership
    ) -> dict:
        if not membership.external_user_id:
            return {"success": False, "message": "Missing TG Calabria user ID"}
        response = await client.get(
            f"{self.base_url}/crm/news/stats/user/{membership.external_user_id}",
            headers=self._bearer(token),
        )
        return self._result(response, "Stats retrieved successfully")

    async def relay(
        self,
        method: str,
        path: str,
        token: str,
        *,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> tuple[int, Any]:
        """Forward a newsroom call with the user's token. Returns (status, body)."""
        request_timeout = timeout or self._timeout
        async with open_client(self._client, request_timeout) as client:
            try:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    json=json,
                    params=params,
                    headers=self._bearer(token),
                    timeout=request_timeout,
                )
            except httpx.HTTPError as exc:
                log.error("tg_calabria.relay_failed", path=path, error=describe_exception(exc))
                return 502, {"message": f"TG Calabria API unreachable: {describe_exception(exc)}"}

        body = response_json(response)
        if body is None:
            body = {"message": response.text}
        return response.status_code, body

