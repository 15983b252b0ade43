"""
MyDoctor integration.

Registration creates a doctor account on the vendor with the user's own
credentials. The grant's ``api_key``, or else the project's, is sent as the
bearer when one is configured.
"""

from __future__ import annotations

import httpx

from app.core.config import get_settings
from app.core.crypto import decrypt
from app.integrations.decoders import DoctorDecoder
from app.integrations.registrar import BatchContext, ExternalRegistrar
from app.integrations.sessions import VendorSession
from app.models.project_membership import ProjectMembership
from app.models.user import User

SLUG = "mydoctor"
DOCTOR_ROLE = "DOCTOR"


def _base_url() -> str:
    return get_settings().mydoctor_base_url.rstrip("/")


class MyDoctorRegistrar(ExternalRegistrar):
    slug = SLUG
    decoder = DoctorDecoder()
    name_required_message = "User fullName is required"

    @property
    def register_url(self) -> str:
        return f"{_base_url()}/auth/register"

    async def authenticate(self, client: httpx.AsyncClient, ctx: BatchContext) -> None:
        api_key = ctx.credentials.get("api_key")
        if not api_key and ctx.project is not None:
            api_key = decrypt(ctx.project.api_key, purpose="project_api_key")
        if api_key:
            ctx.headers["Authorization"] = f"Bearer {api_key}"

    def build_payload(self, ctx: BatchContext, user: User, password: str) -> dict:
        return {
            "fullName": user.name.strip(),
            "email": user.email.strip(),
            "password": password,
            "confirm_password": password,
            "role": DOCTOR_ROLE,
        }


class MyDoctorSession(VendorSession):
    slug = SLUG
    decoder = DoctorDecoder()
    require_success_flag = True

    @property
    def base_url(self) -> str:
        return _base_url()

    async def fetch(
        self, client: httpx.AsyncClient, token: str, membership: ProjectMembership
    ) -> dict:
        response = await client.get(
            f"{self.base_url}/doctor-test/test-data", headers=self._bearer(token)
        )
        return self._result(response, "Data retrieved successfully")
