"""
Subscription and plan schemas.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .common import PlanInterval, SubscriptionStatus


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

class PlanCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    amount: int = Field(..., ge=0, description="Price in minor currency units")
    currency: str = Field(..., min_length=3, max_length=3)
    interval: PlanInterval = PlanInterval.MONTH
    features: Optional[list[str]] = None
    is_active: bool = True

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()


class PlanUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    amount: Optional[int] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    interval: Optional[PlanInterval] = None
    features: Optional[list[str]] = None
    is_active: Optional[bool] = None

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value


class PlanResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    amount: int
    currency: str
    interval: PlanInterval
    features: Optional[list[str]] = None
    is_active: bool

    model_config = {"from_attributes": True}


class PlanListResponse(BaseModel):
    data: list[PlanResponse]


# ---------------------------------------------------------------------------
# Checkout & activation
# ---------------------------------------------------------------------------

class CheckoutRequest(BaseModel):
    plan_id: Optional[uuid.UUID] = None


class CheckoutResponse(BaseModel):
    checkout_url: str
    session_id: str


class ActivateRequest(BaseModel):
    session_id: str
    company_id: uuid.UUID
    plan_id: uuid.UUID
    payment_intent_id: Optional[str] = None


class CancelSubscriptionRequest(BaseModel):
    at_period_end: bool = True


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class SubscriptionResponse(BaseModel):
    id: uuid.UUID
    company_id: uuid.UUID
    plan_id: uuid.UUID
    status: SubscriptionStatus
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool
    canceled_at: Optional[datetime] = None
    stripe_payment_intent_id: Optional[str] = None

    model_config = {"from_attributes": True}


class SubscriptionOverview(BaseModel):
    subscription: Optional[SubscriptionResponse] = None
    plan: Optional[PlanResponse] = None
    company_status: str
    subscription_status: str


class ActivationResponse(BaseModel):
    message: str
    subscription: SubscriptionResponse
