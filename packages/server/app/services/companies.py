"""
Company management service.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser
from app.models.company import Company
from crm_hub_shared.schemas.companies import CompanyCreateRequest, CompanyUpdateRequest

log = structlog.get_logger()


async def list_companies(
    session: AsyncSession, *, status: Optional[str] = None
) -> list[Company]:
    query = select(Company).order_by(Company.name)
    if status:
        query = query.where(Company.status == status)
    result = await session.execute(query)
    return list(result.scalars().all())


async def get_company(
    company_id: uuid.UUID, auth: AuthenticatedUser, session: AsyncSession
) -> Company:
    """Super admins read any company; everyone else only their own."""
    if not auth.is_super_admin and auth.company_id != company_id:
        raise HTTPException(status_code=403, detail="Access denied to this company")
    company = await session.get(Company, company_id)
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    return company


async def create_company(req: CompanyCreateRequest, session: AsyncSession) -> Company:
    company = Company(
        name=req.name,
        vat=req.vat,
        address=req.address,
        status=req.status.value,
        settings=req.settings or {},
    )
    session.add(company)
    await session.flush()
    log.info("company.created", company_id=str(company.id), name=company.name)
    return company


async def update_company(
    company_id: uuid.UUID, req: CompanyUpdateRequest, session: AsyncSession
) -> Company:
    company = await session.get(Company, company_id)
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")

    updates = req.model_dump(mode="json", exclude_unset=True)
    if "settings" in updates and updates["settings"] is None:
        updates["settings"] = {}
    for field, value in updates.items():
        setattr(company, field, value)

    session.add(company)
    await session.flush()
    log.info("company.updated", company_id=str(company.id), fields=sorted(updates))
    return company


async def delete_company(company_id: uuid.UUID, session: AsyncSession) -> None:
    """Hard delete. Blocked by foreign keys while users or grants reference it."""
    company = await session.get(Company, company_id)
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    await session.delete(company)
    await session.flush()
    log.info("company.deleted", company_id=str(company_id))
