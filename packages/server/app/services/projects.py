"""
Project catalog service: CRUD, tenant visibility, SSO hand-off and iframe
embedding.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Optional
from urllib.parse import urlencode

import jwt
import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser
from app.core.config import get_settings
from app.core.crypto import decrypt, encrypt
from app.core.redis import hit_rate_limit
from app.integrations.registry import get_vendor_session
from app.integrations.sessions import VendorSession
from app.models.access_grant import AccessGrant
from app.models.base import utcnow
from app.models.project import Project
from app.services.provisioning import ensure_membership
from crm_hub_shared.schemas.projects import (
    IframeResponse,
    ProjectCreateRequest,
    ProjectResponse,
    ProjectUpdateRequest,
    PublicProjectResponse,
)

log = structlog.get_logger()

SSO_ISSUER = "crm-hub"
# Projects whose SSO entry point is a vendor login rather than a signed redirect
VENDOR_LOGIN_SLUGS = ("mydoctor",)


def project_response(project: Project) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        name=project.name,
        slug=project.slug,
        description=project.description,
        integration_type=project.integration_type,
        api_base_url=project.api_base_url,
        api_auth_type=project.api_auth_type,
        has_api_key=project.api_key is not None,
        endpoints=project.endpoints or {},
        admin_panel_url=project.admin_panel_url,
        sso_enabled=project.sso_enabled,
        sso_method=project.sso_method,
        sso_token_expiry=project.sso_token_expiry,
        is_active=project.is_active,
    )


# ---------------------------------------------------------------------------
# Lookups and visibility
# ---------------------------------------------------------------------------

async def _get_project(project_id: uuid.UUID, session: AsyncSession) -> Project:
    project = await session.get(Project, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


async def get_project_by_slug(slug: str, session: AsyncSession) -> Project:
    result = await session.execute(select(Project).where(Project.slug == slug))
    project = result.scalar_one_or_none()
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


async def active_grant_for(
    company_id: Optional[uuid.UUID], project_id: uuid.UUID, session: AsyncSession
) -> Optional[AccessGrant]:
    if company_id is None:
        return None
    result = await session.execute(
        select(AccessGrant).where(
            AccessGrant.company_id == company_id,
            AccessGrant.project_id == project_id,
            AccessGrant.status == "active",
        )
    )
    return result.scalar_one_or_none()


async def require_company_grant(
    project: Project, auth: AuthenticatedUser, session: AsyncSession
) -> AccessGrant:
    grant = await active_grant_for(auth.company_id, project.id, session)
    if grant is None:
        raise HTTPException(status_code=403, detail="Your company does not have access to this project")
    return grant


async def list_public_projects(session: AsyncSession) -> list[PublicProjectResponse]:
    result = await session.execute(
        select(Project).where(Project.is_active == True).order_by(Project.name)  # noqa: E712
    )
    return [PublicProjectResponse.model_validate(p) for p in result.scalars().all()]


async def list_projects(auth: AuthenticatedUser, session: AsyncSession) -> list[Project]:
    """Super admins see the whole catalog; companies see projects they hold an active grant for."""
    query = select(Project).order_by(Project.name)
    if not auth.is_super_admin:
        query = query.join(AccessGrant, AccessGrant.project_id == Project.id).where(
            AccessGrant.company_id == auth.company_id,
            AccessGrant.status == "active",
            Project.is_active == True,  # noqa: E712
        )
    result = await session.execute(query)
    return list(result.scalars().all())


async def get_project(
    project_id: uuid.UUID, auth: AuthenticatedUser, session: AsyncSession
) -> Project:
    project = await _get_project(project_id, session)
    if not auth.is_super_admin:
        await require_company_grant(project, auth, session)
    return project


# ---------------------------------------------------------------------------
# CRUD (super admin)
# ---------------------------------------------------------------------------

def _encrypt_optional(value: Optional[str]) -> Optional[str]:
    return encrypt(value) if value else None


async def create_project(req: ProjectCreateRequest, session: AsyncSession) -> Project:
    data = req.model_dump(mode="json")
    data["api_key"] = _encrypt_optional(data.get("api_key"))
    data["api_secret"] = _encrypt_optional(data.get("api_secret"))
    data["endpoints"] = data.get("endpoints") or {}

    project = Project(**data)
    session.add(project)
    await session.flush()
    log.info("project.created", project_id=str(project.id), slug=project.slug)
    return project


async def update_project(
    project_id: uuid.UUID, req: ProjectUpdateRequest, session: AsyncSession
) -> Project:
    project = await _get_project(project_id, session)
    updates = req.model_dump(mode="json", exclude_unset=True)
    for secret_field in ("api_key", "api_secret"):
        if secret_field in updates:
            updates[secret_field] = _encrypt_optional(updates[secret_field])
    if "endpoints" in updates and updates["endpoints"] is None:
        updates["endpoints"] = {}

    for field, value in updates.items():
        setattr(project, field, value)
    session.add(project)
    await session.flush()
    log.info("project.updated", project_id=str(project.id), fields=sorted(updates))
    return project


async def delete_project(project_id: uuid.UUID, session: AsyncSession) -> None:
    project = await _get_project(project_id, session)
    await session.delete(project)
    await session.flush()
    log.info("project.deleted", project_id=str(project_id))


# ---------------------------------------------------------------------------
# SSO and iframe
# ---------------------------------------------------------------------------

def _sso_secret(project: Project) -> str:
    return decrypt(project.api_secret, purpose="project_api_secret") or get_settings().secret_key


def _append_query(url: str, params: dict) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params)}"


async def sso_redirect(
    project_id: uuid.UUID,
    auth: AuthenticatedUser,
    session: AsyncSession,
    *,
    vendor_session: Optional[VendorSession] = None,
) -> dict:
    """Hand the user over to a project: vendor login for API vendors, else a signed redirect."""
    project = await _get_project(project_id, session)
    if auth.company_id is None:
        raise HTTPException(status_code=400, detail="SSO requires a company account")
    grant = await require_company_grant(project, auth, session)
    membership, _ = await ensure_membership(grant, auth.user, session)

    if project.slug in VENDOR_LOGIN_SLUGS:
        vendor = vendor_session or get_vendor_session(project.slug)
        result = await vendor.login_and_fetch(membership, auth.user, session)
        log.info("sso.vendor_login", project=project.slug, user_id=str(auth.user_id), success=result.get("success"))
        return {"type": "data", "project": project.slug, **result}

    if not project.sso_enabled or not project.sso_redirect_url:
        raise HTTPException(status_code=400, detail="SSO is not enabled for this project")

    if await hit_rate_limit(f"sso:{grant.id}", get_settings().sso_rate_limit_per_minute):
        log.warning("sso.rate_limited", grant_id=str(grant.id))
        raise HTTPException(status_code=429, detail="Too many SSO requests, please retry shortly")

    now = utcnow()
    claims = {
        "iss": SSO_ISSUER,
        "sub": str(auth.user_id),
        "aud": project.slug,
        "email": auth.user.email,
        "name": auth.user.name,
        "company_id": str(auth.company_id),
        "external_company_id": grant.external_company_id,
        "external_user_id": membership.external_user_id,
        "role": auth.role,
        "iat": now,
        "exp": now + timedelta(seconds=project.sso_token_expiry),
        "jti": str(uuid.uuid4()),
    }
    token = jwt.encode(claims, _sso_secret(project), algorithm="HS256")

    membership.last_sso_at = now
    session.add(membership)
    await session.flush()

    log.info("sso.redirect_issued", project=project.slug, user_id=str(auth.user_id))
    return {
        "type": "redirect",
        "project": project.slug,
        "redirect_url": _append_query(project.sso_redirect_url, {"token": token}),
        "expires_in": project.sso_token_expiry,
    }


async def verify_sso_token(project_id: uuid.UUID, token: str, session: AsyncSession) -> dict:
    """Validate an SSO token presented back by an embedded project."""
    project = await _get_project(project_id, session)
    try:
        claims = jwt.decode(
            token,
            _sso_secret(project),
            algorithms=["HS256"],
            audience=project.slug,
            issuer=SSO_ISSUER,
        )
    except jwt.PyJWTError as exc:
        log.warning("sso.callback_rejected", project=project.slug, error=str(exc))
        raise HTTPException(status_code=401, detail="Invalid or expired SSO token")

    return {
        "valid": True,
        "user_id": claims["sub"],
        "email": claims.get("email"),
        "name": claims.get("name"),
        "company_id": claims.get("company_id"),
        "external_user_id": claims.get("external_user_id"),
        "role": claims.get("role"),
    }


async def iframe_config(
    project_id: uuid.UUID, auth: AuthenticatedUser, session: AsyncSession
) -> IframeResponse:
    project = await get_project(project_id, auth, session)
    if project.integration_type not in ("iframe", "hybrid"):
        raise HTTPException(status_code=400, detail="Project does not support iframe embedding")
    return IframeResponse(
        project=PublicProjectResponse.model_validate(project),
        iframe_url=project.admin_panel_url,
        iframe_width=project.iframe_width,
        iframe_height=project.iframe_height,
        iframe_sandbox=project.iframe_sandbox,
    )
