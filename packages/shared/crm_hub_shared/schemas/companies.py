"""
Company schemas.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import CompanyStatus


class CompanyCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    vat: Optional[str] = Field(None, max_length=64)
    address: Optional[str] = None
    status: CompanyStatus = CompanyStatus.PENDING
    settings: Optional[dict] = None


class CompanyUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    vat: Optional[str] = Field(None, max_length=64)
    address: Optional[str] = None
    status: Optional[CompanyStatus] = None
    settings: Optional[dict] = None


class CompanyResponse(BaseModel):
    id: uuid.UUID
    name: str
    vat: Optional[str] = None
    address: Optional[str] = None
    status: CompanyStatus
    subscription_status: str
    settings: dict
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CompanyListResponse(BaseModel):
    data: list[CompanyResponse]
