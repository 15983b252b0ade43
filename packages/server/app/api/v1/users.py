"""
User Management API endpoints.

GET    /api/v1/users            - List users (own company unless super admin)
POST   /api/v1/users            - Create user (company admin)
GET    /api/v1/users/{userId}   - Get user
PATCH  /api/v1/users/{userId}   - Update user (company admin)
DELETE /api/v1/users/{userId}   - Delete user (company admin)
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_authenticated_user, require_company_admin
from app.core.database import get_session
from app.services import users as user_service
from crm_hub_shared.schemas.users import (
    UserCreateRequest,
    UserListResponse,
    UserResponse,
    UserUpdateRequest,
)

router = APIRouter()


@router.get("", response_model=UserListResponse)
async def list_users(
    page: int = Query(1, ge=1),
    per_page: int = Query(15, ge=1, le=100),
    company_id: Optional[uuid.UUID] = Query(None),
    role: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    users, pagination = await user_service.list_users(
        auth,
        session,
        page=page,
        per_page=per_page,
        company_id=company_id,
        role=role,
        status=status,
        search=search,
    )
    return UserListResponse(
        data=[UserResponse.model_validate(u) for u in users],
        pagination=pagination,
    )


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    body: UserCreateRequest,
    auth: AuthenticatedUser = Depends(require_company_admin),
    session: AsyncSession = Depends(get_session),
):
    user = await user_service.create_user(body, auth, session)
    return UserResponse.model_validate(user)


@router.get("/{userId}", response_model=UserResponse)
async def get_user(
    userId: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    user = await user_service.get_user(userId, auth, session)
    return UserResponse.model_validate(user)


@router.patch("/{userId}", response_model=UserResponse)
async def update_user(
    userId: uuid.UUID,
    body: UserUpdateRequest,
    auth: AuthenticatedUser = Depends(require_company_admin),
    session: AsyncSession = Depends(get_session),
):
    user = await user_service.update_user(userId, body, auth, session)
    return UserResponse.model_validate(user)


@router.delete("/{userId}", status_code=204)
async def delete_user(
    userId: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_company_admin),
    session: AsyncSession = Depends(get_session),
):
    await user_service.delete_user(userId, auth, session)
