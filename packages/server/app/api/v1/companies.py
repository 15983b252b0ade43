"""
Company and project-access endpoints.

GET    /api/v1/companies                                            - List companies (super admin)
POST   /api/v1/companies                                            - Create company (super admin)
GET    /api/v1/companies/{companyId}                                - Get company (own company or super admin)
PATCH  /api/v1/companies/{companyId}                                - Update company (super admin)
DELETE /api/v1/companies/{companyId}                                - Delete company (super admin)
GET    /api/v1/companies/{companyId}/projects                       - List access grants
POST   /api/v1/companies/{companyId}/projects                       - Grant project access
PATCH  /api/v1/companies/{companyId}/projects/{projectId}/status    - Change grant status
DELETE /api/v1/companies/{companyId}/projects/{projectId}           - Revoke project access
POST   /api/v1/companies/{companyId}/projects/{projectId}/register  - Re-run external registration
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_authenticated_user, require_super_admin
from app.core.database import get_session
from app.services import access as access_service
from app.services import companies as company_service
from crm_hub_shared.schemas.access import (
    GrantAccessRequest,
    GrantListResponse,
    GrantResponse,
    ReregisterResponse,
    UpdateAccessStatusRequest,
)
from crm_hub_shared.schemas.companies import (
    CompanyCreateRequest,
    CompanyListResponse,
    CompanyResponse,
    CompanyUpdateRequest,
)

router = APIRouter()


@router.get("", response_model=CompanyListResponse)
async def list_companies(
    status: Optional[str] = Query(None),
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    """List all companies, optionally filtered by status."""
    companies = await company_service.list_companies(session, status=status)
    return CompanyListResponse(data=[CompanyResponse.model_validate(c) for c in companies])


@router.post("", response_model=CompanyResponse, status_code=201)
async def create_company(
    body: CompanyCreateRequest,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    company = await company_service.create_company(body, session)
    return CompanyResponse.model_validate(company)


@router.get("/{companyId}", response_model=CompanyResponse)
async def get_company(
    companyId: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    company = await company_service.get_company(companyId, auth, session)
    return CompanyResponse.model_validate(company)


@router.patch("/{companyId}", response_model=CompanyResponse)
async def update_company(
    companyId: uuid.UUID,
    body: CompanyUpdateRequest,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    company = await company_service.update_company(companyId, body, session)
    return CompanyResponse.model_validate(company)


@router.delete("/{companyId}", status_code=204)
async def delete_company(
    companyId: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    await company_service.delete_company(companyId, session)


# ---------------------------------------------------------------------------
# Project access
# ---------------------------------------------------------------------------

@router.get("/{companyId}/projects", response_model=GrantListResponse)
async def list_grants(
    companyId: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    """Access grants of a company with their memberships."""
    grants = await access_service.list_company_grants(companyId, session)
    return GrantListResponse(data=grants)


@router.post("/{companyId}/projects", response_model=GrantResponse)
async def grant_access(
    companyId: uuid.UUID,
    body: GrantAccessRequest,
    response: Response,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    """Grant (or re-grant) project access. 201 when created, 200 when updated.

    Active grants on external projects also register the company's users
    there; the outcome is returned as ``registration_result``.
    """
    grant, created = await access_service.grant_access(companyId, body, auth.user_id, session)
    response.status_code = 201 if created else 200
    return grant


@router.patch("/{companyId}/projects/{projectId}/status", response_model=GrantResponse)
async def update_access_status(
    companyId: uuid.UUID,
    projectId: uuid.UUID,
    body: UpdateAccessStatusRequest,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    return await access_service.update_access_status(companyId, projectId, body.status, session)


@router.delete("/{companyId}/projects/{projectId}", response_model=GrantResponse)
async def revoke_access(
    companyId: uuid.UUID,
    projectId: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    """Revoke access. Memberships and external accounts are untouched."""
    return await access_service.revoke_access(companyId, projectId, session)


@router.post("/{companyId}/projects/{projectId}/register", response_model=ReregisterResponse)
async def reregister(
    companyId: uuid.UUID,
    projectId: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    """Provision memberships again and retry external registration."""
    return await access_service.reregister(companyId, projectId, session)
