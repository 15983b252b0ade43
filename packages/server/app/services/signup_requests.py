"""
Public company signup and operator review.

A signup creates a pending company, its pending company admin and the
request itself in one transaction. Approval unlocks checkout for the company
and opens pending grants for the selected projects.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import set_user_password
from app.models.access_grant import AccessGrant
from app.models.base import utcnow
from app.models.company import Company
from app.models.project import Project
from app.models.signup_request import SignupRequest
from app.models.user import User
from app.services.access import find_grant
from crm_hub_shared.schemas.signup_requests import (
    SignupApproveRequest,
    SignupRejectRequest,
    SignupRequestCreate,
)

log = structlog.get_logger()


def _validation_error(errors: dict[str, list[str]]) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={"message": "The given data was invalid.", "errors": errors},
    )


async def create_signup_request(req: SignupRequestCreate, session: AsyncSession) -> SignupRequest:
    errors: dict[str, list[str]] = {}
    email_taken = await session.execute(select(User.id).where(User.email == req.contact_person.email))
    if email_taken.first() is not None:
        errors["contact_person.email"] = ["The email has already been taken."]
    if req.company_data.vat:
        vat_taken = await session.execute(select(Company.id).where(Company.vat == req.company_data.vat))
        if vat_taken.first() is not None:
            errors["company_data.vat"] = ["The VAT number has already been taken."]
    if errors:
        raise _validation_error(errors)

    company = Company(
        name=req.company_data.name,
        vat=req.company_data.vat,
        address=req.company_data.address,
        status="pending",
        subscription_status="none",
    )
    session.add(company)
    await session.flush()

    admin = User(
        company_id=company.id,
        name=req.contact_person.name,
        email=req.contact_person.email,
        password_hash="",
        role="company_admin",
        status="pending",
    )
    set_user_password(admin, req.contact_person.password)
    session.add(admin)

    signup = SignupRequest(
        company_id=company.id,
        requested_projects=[str(p) for p in req.requested_projects],
        company_data=req.company_data.model_dump(),
        contact_person=req.contact_person.model_dump(exclude={"password"}),
        status="pending",
    )
    session.add(signup)
    await session.flush()

    log.info(
        "signup.requested",
        signup_id=str(signup.id),
        company_id=str(company.id),
        projects=len(signup.requested_projects),
    )
    return signup


async def list_signup_requests(
    session: AsyncSession, *, status: Optional[str] = None
) -> list[SignupRequest]:
    query = select(SignupRequest).order_by(SignupRequest.created_at.desc())
    if status:
        query = query.where(SignupRequest.status == status)
    result = await session.execute(query)
    return list(result.scalars().all())


async def _pending_request(signup_id: uuid.UUID, session: AsyncSession) -> SignupRequest:
    signup = await session.get(SignupRequest, signup_id)
    if not signup:
        raise HTTPException(status_code=404, detail="Signup request not found")
    if signup.status != "pending":
        raise HTTPException(status_code=400, detail="Signup request has already been processed")
    return signup


async def approve_signup_request(
    signup_id: uuid.UUID,
    req: SignupApproveRequest,
    actor_id: uuid.UUID,
    session: AsyncSession,
) -> SignupRequest:
    signup = await _pending_request(signup_id, session)
    company = await session.get(Company, signup.company_id)
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")

    company.status = "approved"
    company.subscription_status = "approved"
    session.add(company)

    if req.selected_projects is not None:
        selected = list(req.selected_projects)
    else:
        selected = [uuid.UUID(p) for p in signup.requested_projects]

    opened = 0
    for project_id in selected:
        if not await session.get(Project, project_id):
            log.warning("signup.unknown_project", signup_id=str(signup.id), project_id=str(project_id))
            continue
        if await find_grant(company.id, project_id, session):
            continue
        session.add(AccessGrant(company_id=company.id, project_id=project_id, status="pending"))
        opened += 1

    signup.status = "approved"
    signup.reviewed_by = actor_id
    signup.reviewed_at = utcnow()
    session.add(signup)
    await session.flush()

    log.info(
        "signup.approved",
        signup_id=str(signup.id),
        company_id=str(company.id),
        pending_grants=opened,
    )
    return signup


async def reject_signup_request(
    signup_id: uuid.UUID,
    req: SignupRejectRequest,
    actor_id: uuid.UUID,
    session: AsyncSession,
) -> SignupRequest:
    signup = await _pending_request(signup_id, session)
    signup.status = "rejected"
    signup.rejection_reason = req.rejection_reason
    signup.reviewed_by = actor_id
    signup.reviewed_at = utcnow()
    session.add(signup)
    await session.flush()

    log.info("signup.rejected", signup_id=str(signup.id), company_id=str(signup.company_id))
    return signup
