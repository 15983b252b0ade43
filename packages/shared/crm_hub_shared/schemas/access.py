"""
Project access schemas: grants, memberships and external registration results.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from .common import GrantStatus, IntegrationType


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class ApiCredentials(BaseModel):
    api_key: Optional[str] = None
    api_secret: Optional[str] = None


class GrantAccessRequest(BaseModel):
    project_id: uuid.UUID
    status: GrantStatus = GrantStatus.ACTIVE
    api_credentials: Optional[ApiCredentials] = None
    external_company_id: Optional[str] = Field(None, max_length=255)


class UpdateAccessStatusRequest(BaseModel):
    status: GrantStatus


# ---------------------------------------------------------------------------
# Registration results
# ---------------------------------------------------------------------------

class RegistrationSuccess(BaseModel):
    user_id: uuid.UUID
    name: str
    email: str
    external_user_id: Optional[str] = None


class RegistrationFailure(BaseModel):
    user_id: uuid.UUID
    name: str
    email: str
    error: str
    error_details: Optional[Any] = None


class RegistrationResults(BaseModel):
    success: list[RegistrationSuccess] = Field(default_factory=list)
    failed: list[RegistrationFailure] = Field(default_factory=list)
    total: int = 0


class RegistrationResult(BaseModel):
    """Outcome of pushing a grant's members into an external project."""

    success: bool
    message: Optional[str] = None
    results: Optional[RegistrationResults] = None


class ProvisioningCounts(BaseModel):
    users_found: int
    newly_created: int
    already_existed: int


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class ProjectSummary(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    integration_type: IntegrationType

    model_config = {"from_attributes": True}


class MembershipResponse(BaseModel):
    id: uuid.UUID
    grant_id: uuid.UUID
    user_id: uuid.UUID
    status: str
    external_user_id: Optional[str] = None
    external_username: Optional[str] = None
    external_role: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    last_sso_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class GrantResponse(BaseModel):
    id: uuid.UUID
    company_id: uuid.UUID
    project_id: uuid.UUID
    status: GrantStatus
    external_company_id: Optional[str] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[uuid.UUID] = None
    has_credentials: bool = False
    project: Optional[ProjectSummary] = None
    memberships: list[MembershipResponse] = Field(default_factory=list)
    registration_result: Optional[RegistrationResult] = None


class GrantListResponse(BaseModel):
    data: list[GrantResponse]


class ReregisterResponse(BaseModel):
    provisioning: ProvisioningCounts
    registration_result: RegistrationResult
