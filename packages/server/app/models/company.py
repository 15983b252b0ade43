"""Company (tenant root) model."""

from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Company(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "companies"

    name: str = Field(nullable=False, index=True)
    vat: Optional[str] = Field(default=None, unique=True)
    address: Optional[str] = None
    status: str = Field(default="pending", nullable=False)  # pending | approved | active | suspended
    subscription_status: str = Field(default="none", nullable=False)
    stripe_customer_id: Optional[str] = None
    settings: dict = Field(default_factory=dict, sa_type=sa.JSON, nullable=False)
