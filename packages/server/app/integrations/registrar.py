"""
External registration batch runner.

A registrar pushes every active member of an access grant into the
external project's user base. Vendors differ only in how the batch
authenticates, what the registration payload looks like and how replies
are decoded; subclasses supply those hooks.

Batch semantics:
- members without a recoverable password fail immediately, no network call
- network calls run concurrently, bounded by a semaphore, each with its own
  timeout; an error or timeout fails that member only
- membership rows are updated sequentially once every call has finished,
  because the database session must not be shared between tasks
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

import httpx
import structlog
from email_validator import EmailNotValidError, validate_email
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import recover_password
from app.core.config import get_settings
from app.core.crypto import decrypt_json
from app.integrations.decoders import VendorDecoder
from app.models.access_grant import AccessGrant
from app.models.company import Company
from app.models.project import Project
from app.models.project_membership import ProjectMembership
from app.models.user import User
from crm_hub_shared.schemas.access import (
    RegistrationFailure,
    RegistrationResult,
    RegistrationResults,
    RegistrationSuccess,
)

log = structlog.get_logger()

NO_USERS_MESSAGE = "No users found for registration"
PASSWORD_UNAVAILABLE = "User password not available for external registration"
MIN_PASSWORD_LENGTH = 6


class RegistrationAuthError(Exception):
    """The batch could not authenticate against the external project."""


@dataclass
class Registrant:
    membership: ProjectMembership
    user: User
    password: Optional[str]


@dataclass
class RegistrationOutcome:
    registrant: Registrant
    success: bool
    external_user_id: Optional[str] = None
    external_username: Optional[str] = None
    external_role: Optional[str] = None
    error: Optional[str] = None
    error_details: Any = None


@dataclass
class BatchContext:
    grant: AccessGrant
    project: Optional[Project]
    company: Optional[Company]
    credentials: dict
    headers: dict[str, str] = field(default_factory=dict)


def response_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def describe_exception(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


@asynccontextmanager
async def open_client(
    client: httpx.AsyncClient | None, timeout: float
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client, or a short-lived one owned by this block."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=httpx.Timeout(timeout)) as owned:
        yield owned


class ExternalRegistrar:
    """Base registrar. Subclasses set ``slug``/``decoder`` and the hooks below."""

    slug: str = ""
    decoder: VendorDecoder = VendorDecoder()
    name_required_message = "User name is required"

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        concurrency: int | None = None,
        timeout: float | None = None,
    ):
        settings = get_settings()
        self._client = client
        self._concurrency = max(1, concurrency or settings.registration_concurrency)
        self._timeout = timeout or settings.external_timeout_seconds

    # --- Variant hooks ---

    @property
    def register_url(self) -> str:
        raise NotImplementedError

    async def authenticate(self, client: httpx.AsyncClient, ctx: BatchContext) -> None:
        """Prepare ``ctx.headers`` for the batch. Raise RegistrationAuthError on failure."""

    def build_payload(self, ctx: BatchContext, user: User, password: str) -> dict:
        raise NotImplementedError

    def decode_success(self, payload: Any) -> tuple[Optional[str], Optional[str], Optional[str]]:
        """(external_user_id, external_username, external_role) from a 2xx reply."""
        return self.decoder.external_id(payload), None, None

    def validate(self, user: User, password: str) -> Optional[str]:
        """Local checks run before any network call. Returns an error or None."""
        if not (user.name or "").strip():
            return self.name_required_message
        email = (user.email or "").strip()
        if not email:
            return "Valid email is required"
        try:
            validate_email(email, check_deliverability=False)
        except EmailNotValidError:
            return "Valid email is required"
        if len(password) < MIN_PASSWORD_LENGTH:
            return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        return None

    # --- Batch ---

    async def register_grant(self, grant: AccessGrant, session: AsyncSession) -> RegistrationResult:
        """Register every active member of ``grant`` with the external project."""
        registrants = await self._load_registrants(grant, session)
        if not registrants:
            log.warning(
                "registration.no_users",
                grant_id=str(grant.id),
                company_id=str(grant.company_id),
                project=self.slug,
            )
            return RegistrationResult(success=False, message=NO_USERS_MESSAGE)

        ctx = BatchContext(
            grant=grant,
            project=await session.get(Project, grant.project_id),
            company=await session.get(Company, grant.company_id),
            credentials=decrypt_json(grant.encrypted_credentials, purpose="grant_credentials") or {},
        )

        log.info(
            "registration.batch_started",
            grant_id=str(grant.id),
            project=self.slug,
            users=len(registrants),
            concurrency=self._concurrency,
        )

        async with open_client(self._client, self._timeout) as client:
            try:
                await self.authenticate(client, ctx)
            except RegistrationAuthError as exc:
                log.error("registration.auth_failed", grant_id=str(grant.id), project=self.slug)
                return RegistrationResult(success=False, message=str(exc))

            semaphore = asyncio.Semaphore(self._concurrency)
            outcomes = await asyncio.gather(
                *(self._register_guarded(client, ctx, r, semaphore) for r in registrants)
            )

        for outcome in outcomes:
            self._apply(outcome, session)
        await session.flush()

        result = self._aggregate(outcomes)
        log.info(
            "registration.batch_completed",
            grant_id=str(grant.id),
            project=self.slug,
            succeeded=len(result.results.success),
            failed=len(result.results.failed),
        )
        return result

    async def _load_registrants(self, grant: AccessGrant, session: AsyncSession) -> list[Registrant]:
        result = await session.execute(
            select(ProjectMembership, User)
            .join(User, User.id == ProjectMembership.user_id)
            .where(
                ProjectMembership.grant_id == grant.id,
                ProjectMembership.status == "active",
            )
            .order_by(User.email)
        )
        return [
            Registrant(membership=membership, user=user, password=recover_password(user))
            for membership, user in result.all()
        ]

    async def _register_guarded(
        self,
        client: httpx.AsyncClient,
        ctx: BatchContext,
        registrant: Registrant,
        semaphore: asyncio.Semaphore,
    ) -> RegistrationOutcome:
        user = registrant.user
        if not registrant.password:
            log.warning("registration.password_unavailable", user_id=str(user.id), project=self.slug)
            return RegistrationOutcome(registrant, False, error=PASSWORD_UNAVAILABLE)

        problem = self.validate(user, registrant.password)
        if problem:
            log.warning("registration.invalid_user", user_id=str(user.id), project=self.slug, error=problem)
            return RegistrationOutcome(registrant, False, error=problem)

        async with semaphore:
            try:
                return await asyncio.wait_for(
                    self._register_one(client, ctx, registrant), timeout=self._timeout
                )
            except asyncio.TimeoutError:
                log.error("registration.user_timeout", user_id=str(user.id), project=self.slug)
                return RegistrationOutcome(
                    registrant, False, error=f"Registration timed out after {self._timeout:g} seconds"
                )
            except Exception as exc:
                log.error(
                    "registration.user_failed",
                    user_id=str(user.id),
                    project=self.slug,
                    error=describe_exception(exc),
                )
                return RegistrationOutcome(registrant, False, error=describe_exception(exc))

    async def _register_one(
        self, client: httpx.AsyncClient, ctx: BatchContext, registrant: Registrant
    ) -> RegistrationOutcome:
        user = registrant.user
        response = await client.post(
            self.register_url,
            json=self.build_payload(ctx, user, registrant.password or ""),
            headers={"Accept": "application/json", **ctx.headers},
        )
        payload = response_json(response)

        if response.is_success:
            external_id, username, role = self.decode_success(payload)
            log.info(
                "registration.user_registered",
                user_id=str(user.id),
                project=self.slug,
                external_user_id=external_id,
            )
            return RegistrationOutcome(
                registrant,
                True,
                external_user_id=external_id,
                external_username=username,
                external_role=role,
            )

        message, details = self.decoder.error(payload, response.text)
        log.warning(
            "registration.user_rejected",
            user_id=str(user.id),
            project=self.slug,
            status=response.status_code,
            error=message,
        )
        return RegistrationOutcome(registrant, False, error=message, error_details=details)

    @staticmethod
    def _apply(outcome: RegistrationOutcome, session: AsyncSession) -> None:
        if not outcome.success:
            return
        membership = outcome.registrant.membership
        if outcome.external_user_id:
            membership.external_user_id = outcome.external_user_id
        if outcome.external_username:
            membership.external_username = outcome.external_username
        if outcome.external_role:
            membership.external_role = outcome.external_role
        session.add(membership)

    @staticmethod
    def _aggregate(outcomes: list[RegistrationOutcome]) -> RegistrationResult:
        succeeded = [
            RegistrationSuccess(
                user_id=o.registrant.user.id,
                name=o.registrant.user.name,
                email=o.registrant.user.email,
                external_user_id=o.external_user_id,
            )
            for o in outcomes
            if o.success
        ]
        failed = [
            RegistrationFailure(
                user_id=o.registrant.user.id,
                name=o.registrant.user.name,
                email=o.registrant.user.email,
                error=o.error or "Unknown error",
                error_details=o.error_details,
            )
            for o in outcomes
            if not o.success
        ]
        return RegistrationResult(
            success=len(succeeded) > 0,
            results=RegistrationResults(success=succeeded, failed=failed, total=len(outcomes)),
        )
