"""
Public signup request schemas.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from .common import SignupStatus


class SignupCompanyData(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    vat: Optional[str] = Field(None, max_length=64)
    address: Optional[str] = None


class SignupContactPerson(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8)


class SignupRequestCreate(BaseModel):
    company_data: SignupCompanyData
    contact_person: SignupContactPerson
    requested_projects: list[uuid.UUID] = Field(default_factory=list)


class SignupApproveRequest(BaseModel):
    selected_projects: Optional[list[uuid.UUID]] = None


class SignupRejectRequest(BaseModel):
    rejection_reason: Optional[str] = None


class SignupRequestResponse(BaseModel):
    id: uuid.UUID
    company_id: uuid.UUID
    requested_projects: list[str]
    company_data: dict
    contact_person: dict
    status: SignupStatus
    reviewed_by: Optional[uuid.UUID] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class SignupRequestListResponse(BaseModel):
    data: list[SignupRequestResponse]
