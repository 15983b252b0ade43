"""
Access registry: company x project grants.

Granting access provisions memberships for the company's active users and,
for projects with an external user base, registers those users there. A
registration failure is reported in the response and never undoes the grant.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.crypto import encrypt_json
from app.integrations.registrar import describe_exception
from app.integrations.registry import get_registrar
from app.models.access_grant import AccessGrant
from app.models.base import utcnow
from app.models.company import Company
from app.models.project import Project
from app.models.project_membership import ProjectMembership
from app.services.provisioning import provision
from crm_hub_shared.schemas.access import (
    GrantAccessRequest,
    GrantResponse,
    MembershipResponse,
    ProjectSummary,
    RegistrationResult,
    ReregisterResponse,
)
from crm_hub_shared.schemas.common import GrantStatus

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def _get_company(company_id: uuid.UUID, session: AsyncSession) -> Company:
    company = await session.get(Company, company_id)
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    return company


async def _get_project(project_id: uuid.UUID, session: AsyncSession) -> Project:
    project = await session.get(Project, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


async def find_grant(
    company_id: uuid.UUID, project_id: uuid.UUID, session: AsyncSession
) -> Optional[AccessGrant]:
    result = await session.execute(
        select(AccessGrant).where(
            AccessGrant.company_id == company_id,
            AccessGrant.project_id == project_id,
        )
    )
    return result.scalar_one_or_none()


async def _require_grant(
    company_id: uuid.UUID, project_id: uuid.UUID, session: AsyncSession
) -> AccessGrant:
    grant = await find_grant(company_id, project_id, session)
    if not grant:
        raise HTTPException(status_code=404, detail="Access grant not found")
    return grant


async def serialize_grant(
    grant: AccessGrant, session: AsyncSession, project: Optional[Project] = None
) -> GrantResponse:
    project = project or await session.get(Project, grant.project_id)
    result = await session.execute(
        select(ProjectMembership)
        .where(ProjectMembership.grant_id == grant.id)
        .order_by(ProjectMembership.created_at)
    )
    return GrantResponse(
        id=grant.id,
        company_id=grant.company_id,
        project_id=grant.project_id,
        status=grant.status,
        external_company_id=grant.external_company_id,
        approved_at=grant.approved_at,
        approved_by=grant.approved_by,
        has_credentials=grant.encrypted_credentials is not None,
        project=ProjectSummary.model_validate(project) if project else None,
        memberships=[MembershipResponse.model_validate(m) for m in result.scalars().all()],
    )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

async def _run_registration(
    grant: AccessGrant, project: Project, session: AsyncSession
) -> Optional[RegistrationResult]:
    registrar = get_registrar(project.slug)
    if registrar is None:
        return None
    try:
        return await registrar.register_grant(grant, session)
    except Exception as exc:
        log.error(
            "access.registration_failed",
            grant_id=str(grant.id),
            project=project.slug,
            error=describe_exception(exc),
        )
        return RegistrationResult(
            success=False, message=f"Registration failed: {describe_exception(exc)}"
        )


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

async def grant_access(
    company_id: uuid.UUID,
    req: GrantAccessRequest,
    actor_id: uuid.UUID,
    session: AsyncSession,
) -> tuple[GrantResponse, bool]:
    """Create or update the grant, provision members, register them externally.

    Returns (grant, created).
    """
    await _get_company(company_id, session)
    project = await _get_project(req.project_id, session)

    grant = await find_grant(company_id, project.id, session)
    created = grant is None
    now = utcnow()

    if grant is None:
        grant = AccessGrant(
            company_id=company_id,
            project_id=project.id,
            status=req.status.value,
            external_company_id=req.external_company_id,
            approved_at=now,
            approved_by=actor_id,
        )
    else:
        grant.status = req.status.value
        if req.external_company_id is not None:
            grant.external_company_id = req.external_company_id
        grant.approved_at = now
        grant.approved_by = actor_id

    if req.api_credentials is not None:
        grant.encrypted_credentials = encrypt_json(req.api_credentials.model_dump(exclude_none=True))

    session.add(grant)
    await session.flush()

    log.info(
        "access.granted",
        grant_id=str(grant.id),
        company_id=str(company_id),
        project=project.slug,
        status=grant.status,
        created=created,
    )

    await provision(grant, session)

    registration_result = None
    if grant.status == GrantStatus.ACTIVE.value:
        registration_result = await _run_registration(grant, project, session)

    response = await serialize_grant(grant, session, project=project)
    response.registration_result = registration_result
    return response, created


async def revoke_access(
    company_id: uuid.UUID, project_id: uuid.UUID, session: AsyncSession
) -> GrantResponse:
    """Mark the grant revoked. Memberships and external accounts are left as they are."""
    grant = await _require_grant(company_id, project_id, session)
    grant.status = GrantStatus.REVOKED.value
    session.add(grant)
    await session.flush()
    log.info("access.revoked", grant_id=str(grant.id), company_id=str(company_id))
    return await serialize_grant(grant, session)


async def update_access_status(
    company_id: uuid.UUID,
    project_id: uuid.UUID,
    status: GrantStatus,
    session: AsyncSession,
) -> GrantResponse:
    grant = await _require_grant(company_id, project_id, session)
    previous = grant.status
    grant.status = status.value
    session.add(grant)
    await session.flush()
    log.info(
        "access.status_updated",
        grant_id=str(grant.id),
        previous=previous,
        status=grant.status,
    )
    return await serialize_grant(grant, session)


async def list_company_grants(
    company_id: uuid.UUID, session: AsyncSession
) -> list[GrantResponse]:
    await _get_company(company_id, session)
    result = await session.execute(
        select(AccessGrant)
        .where(AccessGrant.company_id == company_id)
        .order_by(AccessGrant.created_at)
    )
    return [await serialize_grant(grant, session) for grant in result.scalars().all()]


async def reregister(
    company_id: uuid.UUID, project_id: uuid.UUID, session: AsyncSession
) -> ReregisterResponse:
    """Re-run provisioning and external registration for an existing grant."""
    grant = await _require_grant(company_id, project_id, session)
    project = await _get_project(project_id, session)
    if get_registrar(project.slug) is None:
        raise HTTPException(
            status_code=400, detail="Project does not support external registration"
        )

    counts = await provision(grant, session)
    result = await _run_registration(grant, project, session)
    log.info("access.reregistered", grant_id=str(grant.id), project=project.slug)
    return ReregisterResponse(provisioning=counts, registration_result=result)
