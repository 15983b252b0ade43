"""
Project catalog API endpoints.

Public:
GET    /api/v1/public/projects                       - Active projects (minimal fields)
POST   /api/v1/public/projects/{projectId}/iframe-callback - Validate an SSO token

Tenant (subscription gated):
GET    /api/v1/projects                              - Projects visible to the caller
POST   /api/v1/projects                              - Create project (super admin)
GET    /api/v1/projects/{projectId}                  - Get project
PATCH  /api/v1/projects/{projectId}                  - Update project (super admin)
DELETE /api/v1/projects/{projectId}                  - Delete project (super admin)
GET    /api/v1/projects/{projectId}/sso              - SSO hand-off (redirect or vendor data)
GET    /api/v1/projects/{projectId}/iframe           - Iframe embedding settings
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_authenticated_user, require_super_admin
from app.core.database import get_session
from app.services import projects as project_service
from crm_hub_shared.schemas.projects import (
    IframeResponse,
    ProjectCreateRequest,
    ProjectListResponse,
    ProjectResponse,
    ProjectUpdateRequest,
    PublicProjectResponse,
)

router = APIRouter()
public_router = APIRouter()


class SsoCallbackRequest(BaseModel):
    token: str


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------

@public_router.get("", response_model=list[PublicProjectResponse])
async def list_public_projects(session: AsyncSession = Depends(get_session)):
    """Active projects, for the signup form."""
    return await project_service.list_public_projects(session)


@public_router.post("/{projectId}/iframe-callback")
async def iframe_callback(
    projectId: uuid.UUID,
    body: SsoCallbackRequest,
    session: AsyncSession = Depends(get_session),
):
    """Called by an embedded project to validate the SSO token it received."""
    return await project_service.verify_sso_token(projectId, body.token, session)


# ---------------------------------------------------------------------------
# Tenant
# ---------------------------------------------------------------------------

@router.get("", response_model=ProjectListResponse)
async def list_projects(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    projects = await project_service.list_projects(auth, session)
    return ProjectListResponse(data=[project_service.project_response(p) for p in projects])


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(
    body: ProjectCreateRequest,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    project = await project_service.create_project(body, session)
    return project_service.project_response(project)


@router.get("/{projectId}", response_model=ProjectResponse)
async def get_project(
    projectId: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    project = await project_service.get_project(projectId, auth, session)
    return project_service.project_response(project)


@router.patch("/{projectId}", response_model=ProjectResponse)
async def update_project(
    projectId: uuid.UUID,
    body: ProjectUpdateRequest,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    project = await project_service.update_project(projectId, body, session)
    return project_service.project_response(project)


@router.delete("/{projectId}", status_code=204)
async def delete_project(
    projectId: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    await project_service.delete_project(projectId, session)


@router.get("/{projectId}/sso")
async def sso_redirect(
    projectId: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Signed redirect URL, or vendor data for projects entered through a vendor login."""
    return await project_service.sso_redirect(projectId, auth, session)


@router.get("/{projectId}/iframe", response_model=IframeResponse)
async def iframe(
    projectId: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    return await project_service.iframe_config(projectId, auth, session)
