"""
Authentication endpoints.

POST /auth/login   - Email/password login, returns a bearer JWT
POST /auth/logout  - Revoke the current JWT
GET  /auth/me      - Current user, company and permissions
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import (
    AuthenticatedUser,
    create_jwt,
    get_authenticated_user,
    revoke_jwt,
    verify_password,
)
from app.core.database import get_session
from app.models.company import Company
from app.models.user import User
from crm_hub_shared.schemas.companies import CompanyResponse
from crm_hub_shared.schemas.users import UserResponse

log = structlog.get_logger()
router = APIRouter()

LOGIN_COMPANY_STATUSES = ("active", "approved")


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserResponse


class MeResponse(BaseModel):
    user: UserResponse
    company: Optional[CompanyResponse] = None
    permissions: list[str]
    is_super_admin: bool


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    session: AsyncSession = Depends(get_session),
):
    """Authenticate with email/password and receive a bearer JWT."""
    result = await session.execute(select(User).where(User.email == body.email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(body.password, user.password_hash):
        log.warning("auth.login_failure", email=body.email, reason="bad_credentials")
        raise HTTPException(status_code=401, detail="Invalid email or password")

    company = await session.get(Company, user.company_id) if user.company_id else None

    if not user.is_super_admin:
        if company is None or company.status not in LOGIN_COMPANY_STATUSES:
            log.warning("auth.login_failure", user_id=str(user.id), reason="company_inactive")
            raise HTTPException(status_code=403, detail="Your company account is not active")
        if user.status == "pending":
            user.status = "active"
            session.add(user)
            await session.flush()
            log.info("auth.user_auto_activated", user_id=str(user.id))

    if user.status != "active":
        log.warning("auth.login_failure", user_id=str(user.id), reason=f"user_{user.status}")
        raise HTTPException(status_code=403, detail="Your account is not active")

    token, _jti = create_jwt(user.id, user.company_id, user.role)
    log.info("auth.login_success", user_id=str(user.id))
    return LoginResponse(token=token, user=UserResponse.model_validate(user))


@router.post("/logout")
async def logout(auth: AuthenticatedUser = Depends(get_authenticated_user)):
    """Invalidate the current session."""
    if auth.jti:
        ttl = 3600
        if auth.expires_at:
            ttl = int((auth.expires_at - datetime.now(timezone.utc)).total_seconds())
        await revoke_jwt(auth.jti, ttl_seconds=ttl)
    log.info("auth.logout", user_id=str(auth.user_id))
    return {"message": "Logged out"}


@router.get("/me", response_model=MeResponse)
async def me(auth: AuthenticatedUser = Depends(get_authenticated_user)):
    """Current user profile."""
    return MeResponse(
        user=UserResponse.model_validate(auth.user),
        company=CompanyResponse.model_validate(auth.company) if auth.company else None,
        permissions=auth.user.permissions or [],
        is_super_admin=auth.is_super_admin,
    )
