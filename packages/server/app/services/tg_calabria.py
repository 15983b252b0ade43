"""
TG Calabria newsroom proxy.

Company users with an active membership log in once through the CRM; the
vendor token is kept on their membership and forwarded on every call.
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser
from app.core.config import get_settings
from app.integrations.tg_calabria import SLUG, TGCalabriaSession
from app.models.base import as_utc, utcnow
from app.models.project_membership import ProjectMembership
from app.services.projects import get_project_by_slug, require_company_grant
from crm_hub_shared.schemas.projects import ArticleCreateRequest

log = structlog.get_logger()

LOGIN_FIRST_MESSAGE = "Please login first to TG Calabria"


async def get_membership(auth: AuthenticatedUser, session: AsyncSession) -> ProjectMembership:
    project = await get_project_by_slug(SLUG, session)
    grant = await require_company_grant(project, auth, session)
    result = await session.execute(
        select(ProjectMembership).where(
            ProjectMembership.grant_id == grant.id,
            ProjectMembership.user_id == auth.user_id,
            ProjectMembership.status == "active",
        )
    )
    membership = result.scalar_one_or_none()
    if membership is None:
        raise HTTPException(status_code=403, detail="You do not have an active TG Calabria membership")
    return membership


def _stored_token(membership: ProjectMembership) -> str:
    expires_at = as_utc(membership.token_expires_at)
    if not membership.external_token or (expires_at is not None and expires_at <= utcnow()):
        raise HTTPException(status_code=401, detail=LOGIN_FIRST_MESSAGE)
    return membership.external_token


async def login(
    auth: AuthenticatedUser,
    session: AsyncSession,
    *,
    vendor: Optional[TGCalabriaSession] = None,
) -> dict:
    membership = await get_membership(auth, session)
    vendor = vendor or TGCalabriaSession()
    result = await vendor.login_member(membership, auth.user, session)
    if not result["success"]:
        raise HTTPException(status_code=401, detail=result["message"])
    return result


async def relay(
    auth: AuthenticatedUser,
    session: AsyncSession,
    method: str,
    path: str,
    *,
    json: Optional[dict] = None,
    params: Optional[dict] = None,
    timeout: Optional[float] = None,
    vendor: Optional[TGCalabriaSession] = None,
) -> tuple[int, Any]:
    membership = await get_membership(auth, session)
    token = _stored_token(membership)
    vendor = vendor or TGCalabriaSession()
    status_code, body = await vendor.relay(
        method, path, token, json=json, params=params, timeout=timeout
    )
    log.info("tg_calabria.relayed", method=method, path=path, status=status_code)
    return status_code, body


async def stats(
    auth: AuthenticatedUser,
    session: AsyncSession,
    *,
    vendor: Optional[TGCalabriaSession] = None,
) -> tuple[int, Any]:
    membership = await get_membership(auth, session)
    if not membership.external_user_id:
        raise HTTPException(status_code=400, detail="Missing TG Calabria user ID")
    return await relay(
        auth,
        session,
        "GET",
        f"/crm/news/stats/user/{membership.external_user_id}",
        vendor=vendor,
    )


async def create_article(
    auth: AuthenticatedUser,
    req: ArticleCreateRequest,
    session: AsyncSession,
    *,
    vendor: Optional[TGCalabriaSession] = None,
) -> tuple[int, Any]:
    return await relay(
        auth,
        session,
        "POST",
        "/crm/news",
        json=req.model_dump(exclude_none=True),
        timeout=get_settings().article_timeout_seconds,
        vendor=vendor,
    )
