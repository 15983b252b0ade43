"""
Subscription plan catalog.

GET    /api/v1/subscription-plans           - Active plans (public)
GET    /api/v1/subscription-plans/all       - All plans (super admin)
POST   /api/v1/subscription-plans           - Create plan (super admin)
PATCH  /api/v1/subscription-plans/{planId}  - Update plan (super admin)
DELETE /api/v1/subscription-plans/{planId}  - Delete plan unless in use (super admin)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, require_super_admin
from app.core.database import get_session
from app.services import subscriptions as subscription_service
from crm_hub_shared.schemas.subscriptions import (
    PlanCreateRequest,
    PlanListResponse,
    PlanResponse,
    PlanUpdateRequest,
)

router = APIRouter()


@router.get("", response_model=PlanListResponse)
async def list_active_plans(session: AsyncSession = Depends(get_session)):
    plans = await subscription_service.list_plans(session, active_only=True)
    return PlanListResponse(data=[PlanResponse.model_validate(p) for p in plans])


@router.get("/all", response_model=PlanListResponse)
async def list_all_plans(
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    plans = await subscription_service.list_plans(session)
    return PlanListResponse(data=[PlanResponse.model_validate(p) for p in plans])


@router.post("", response_model=PlanResponse, status_code=201)
async def create_plan(
    body: PlanCreateRequest,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    plan = await subscription_service.create_plan(body, session)
    return PlanResponse.model_validate(plan)


@router.patch("/{planId}", response_model=PlanResponse)
async def update_plan(
    planId: uuid.UUID,
    body: PlanUpdateRequest,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    plan = await subscription_service.update_plan(planId, body, session)
    return PlanResponse.model_validate(plan)


@router.delete("/{planId}", status_code=204)
async def delete_plan(
    planId: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    """Blocked with 400 while an active or trialing subscription uses the plan."""
    await subscription_service.delete_plan(planId, session)
