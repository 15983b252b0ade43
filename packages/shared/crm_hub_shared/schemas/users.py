"""
User management schemas.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from .common import Pagination, UserRole, UserStatus


class UserCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: UserRole
    permissions: Optional[list[str]] = None
    status: UserStatus = UserStatus.ACTIVE
    company_id: Optional[uuid.UUID] = Field(
        None, description="Only honoured for super admins"
    )


class UserUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=8)
    role: Optional[UserRole] = None
    permissions: Optional[list[str]] = None
    status: Optional[UserStatus] = None
    company_id: Optional[uuid.UUID] = None


class UserResponse(BaseModel):
    id: uuid.UUID
    company_id: Optional[uuid.UUID] = None
    name: str
    email: str
    role: UserRole
    status: UserStatus
    permissions: Optional[list[str]] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class UserListResponse(BaseModel):
    data: list[UserResponse]
    pagination: Pagination
