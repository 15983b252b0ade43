"""
User management service: company-scoped CRUD with role guards.
"""

from __future__ import annotations

import math
import uuid
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser, set_user_password
from app.models.company import Company
from app.models.user import User
from crm_hub_shared.schemas.common import Pagination, UserRole
from crm_hub_shared.schemas.users import UserCreateRequest, UserUpdateRequest

log = structlog.get_logger()


def _scoped(query, auth: AuthenticatedUser):
    if auth.is_super_admin:
        return query
    return query.where(User.company_id == auth.company_id)


async def list_users(
    auth: AuthenticatedUser,
    session: AsyncSession,
    *,
    page: int = 1,
    per_page: int = 15,
    company_id: Optional[uuid.UUID] = None,
    role: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
) -> tuple[list[User], Pagination]:
    """Paginated users. Non super admins only see their own company."""
    query = _scoped(select(User), auth)
    if company_id and auth.is_super_admin:
        query = query.where(User.company_id == company_id)
    if role:
        query = query.where(User.role == role)
    if status:
        query = query.where(User.status == status)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

    total = (await session.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await session.execute(
        query.order_by(User.created_at.desc()).offset((page - 1) * per_page).limit(per_page)
    )
    pagination = Pagination(
        page=page,
        per_page=per_page,
        total=total,
        total_pages=max(1, math.ceil(total / per_page)),
    )
    return list(result.scalars().all()), pagination


async def get_user(user_id: uuid.UUID, auth: AuthenticatedUser, session: AsyncSession) -> User:
    result = await session.execute(_scoped(select(User).where(User.id == user_id), auth))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def _ensure_email_free(
    email: str, session: AsyncSession, *, exclude: Optional[uuid.UUID] = None
) -> None:
    query = select(User.id).where(User.email == email)
    if exclude is not None:
        query = query.where(User.id != exclude)
    if (await session.execute(query)).first() is not None:
        raise HTTPException(status_code=409, detail="Email already registered")


def _guard_role(role: Optional[UserRole], auth: AuthenticatedUser) -> None:
    if role == UserRole.SUPER_ADMIN and not auth.is_super_admin:
        raise HTTPException(status_code=403, detail="Only super admins can assign the super admin role")


async def create_user(
    req: UserCreateRequest, auth: AuthenticatedUser, session: AsyncSession
) -> User:
    _guard_role(req.role, auth)
    await _ensure_email_free(req.email, session)

    company_id = req.company_id if auth.is_super_admin else auth.company_id
    if company_id is not None and not await session.get(Company, company_id):
        raise HTTPException(status_code=404, detail="Company not found")

    user = User(
        company_id=company_id,
        name=req.name,
        email=req.email,
        password_hash="",
        role=req.role.value,
        status=req.status.value,
        permissions=req.permissions,
    )
    set_user_password(user, req.password)
    session.add(user)
    await session.flush()

    log.info(
        "user.created",
        user_id=str(user.id),
        company_id=str(company_id) if company_id else None,
        role=user.role,
        created_by=str(auth.user_id),
    )
    return user


async def update_user(
    user_id: uuid.UUID,
    req: UserUpdateRequest,
    auth: AuthenticatedUser,
    session: AsyncSession,
) -> User:
    user = await get_user(user_id, auth, session)
    _guard_role(req.role, auth)
    if user.is_super_admin and not auth.is_super_admin:
        raise HTTPException(status_code=403, detail="Cannot modify a super admin")

    updates = req.model_dump(exclude_unset=True)
    password = updates.pop("password", None)
    if "email" in updates and updates["email"] != user.email:
        await _ensure_email_free(updates["email"], session, exclude=user.id)
    if "company_id" in updates and not auth.is_super_admin:
        updates.pop("company_id")

    for field, value in updates.items():
        if field in ("role", "status") and value is not None:
            value = value.value
        setattr(user, field, value)
    if password:
        set_user_password(user, password)

    session.add(user)
    await session.flush()
    log.info(
        "user.updated",
        user_id=str(user.id),
        fields=sorted(updates) + (["password"] if password else []),
    )
    return user


async def delete_user(user_id: uuid.UUID, auth: AuthenticatedUser, session: AsyncSession) -> None:
    if user_id == auth.user_id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    user = await get_user(user_id, auth, session)
    if user.is_super_admin and not auth.is_super_admin:
        raise HTTPException(status_code=403, detail="Cannot delete a super admin")

    await session.delete(user)
    await session.flush()
    log.info("user.deleted", user_id=str(user_id), deleted_by=str(auth.user_id))
