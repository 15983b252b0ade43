"""
TG Calabria newsroom proxy.

POST /api/v1/tg-calabria/login        - Log in with the caller's CRM credentials
GET  /api/v1/tg-calabria/categories   - News categories
GET  /api/v1/tg-calabria/news         - News list (query parameters forwarded)
POST /api/v1/tg-calabria/news         - Create an article
GET  /api/v1/tg-calabria/stats        - The caller's publishing stats

Vendor status codes and bodies are relayed unchanged.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_authenticated_user
from app.core.database import get_session
from app.services import tg_calabria as tg_service
from crm_hub_shared.schemas.projects import ArticleCreateRequest

router = APIRouter()


@router.post("/login")
async def login(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    return await tg_service.login(auth, session)


@router.get("/categories")
async def categories(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    status_code, body = await tg_service.relay(auth, session, "GET", "/crm/categories")
    return JSONResponse(status_code=status_code, content=body)


@router.get("/news")
async def list_news(
    request: Request,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    status_code, body = await tg_service.relay(
        auth, session, "GET", "/crm/news", params=dict(request.query_params)
    )
    return JSONResponse(status_code=status_code, content=body)


@router.post("/news")
async def create_article(
    body: ArticleCreateRequest,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    status_code, payload = await tg_service.create_article(auth, body, session)
    return JSONResponse(status_code=status_code, content=payload)


@router.get("/stats")
async def stats(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    status_code, body = await tg_service.stats(auth, session)
    return JSONResponse(status_code=status_code, content=body)
