"""Company subscription (one row per company)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Subscription(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "subscriptions"

    company_id: uuid.UUID = Field(foreign_key="companies.id", unique=True, nullable=False, index=True)
    plan_id: uuid.UUID = Field(foreign_key="subscription_plans.id", nullable=False, index=True)
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    stripe_checkout_session_id: Optional[str] = None
    status: str = Field(default="incomplete", nullable=False)
    current_period_start: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    current_period_end: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    cancel_at_period_end: bool = Field(default=False, nullable=False)
    canceled_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
