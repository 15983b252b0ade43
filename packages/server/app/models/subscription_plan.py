"""Subscription plan catalog entry."""

from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class SubscriptionPlan(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "subscription_plans"

    name: str = Field(nullable=False)
    description: Optional[str] = None
    amount: int = Field(nullable=False)  # minor currency units
    currency: str = Field(default="EUR", nullable=False)
    interval: str = Field(default="month", nullable=False)  # month | year
    features: Optional[list] = Field(default=None, sa_type=sa.JSON)
    is_active: bool = Field(default=True, nullable=False)
    stripe_price_id: Optional[str] = None
