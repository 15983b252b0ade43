"""
Company signup requests.

POST /api/v1/signup-requests                        - Submit a signup (public)
GET  /api/v1/signup-requests                        - List requests (super admin)
POST /api/v1/signup-requests/{requestId}/approve    - Approve (super admin)
POST /api/v1/signup-requests/{requestId}/reject     - Reject (super admin)
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, require_super_admin
from app.core.database import get_session
from app.services import signup_requests as signup_service
from crm_hub_shared.schemas.signup_requests import (
    SignupApproveRequest,
    SignupRejectRequest,
    SignupRequestCreate,
    SignupRequestListResponse,
    SignupRequestResponse,
)

router = APIRouter()


@router.post("", response_model=SignupRequestResponse, status_code=201)
async def submit(
    body: SignupRequestCreate,
    session: AsyncSession = Depends(get_session),
):
    """Create a pending company, its admin and the request."""
    signup = await signup_service.create_signup_request(body, session)
    return SignupRequestResponse.model_validate(signup)


@router.get("", response_model=SignupRequestListResponse)
async def list_requests(
    status: Optional[str] = Query(None),
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    requests = await signup_service.list_signup_requests(session, status=status)
    return SignupRequestListResponse(
        data=[SignupRequestResponse.model_validate(r) for r in requests]
    )


@router.post("/{requestId}/approve", response_model=SignupRequestResponse)
async def approve(
    requestId: uuid.UUID,
    body: SignupApproveRequest,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    signup = await signup_service.approve_signup_request(requestId, body, auth.user_id, session)
    return SignupRequestResponse.model_validate(signup)


@router.post("/{requestId}/reject", response_model=SignupRequestResponse)
async def reject(
    requestId: uuid.UUID,
    body: SignupRejectRequest,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    signup = await signup_service.reject_signup_request(requestId, body, auth.user_id, session)
    return SignupRequestResponse.model_validate(signup)
