"""Public company signup request awaiting operator review."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class SignupRequest(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "signup_requests"

    company_id: uuid.UUID = Field(foreign_key="companies.id", nullable=False, index=True)
    requested_projects: list = Field(default_factory=list, sa_type=sa.JSON, nullable=False)
    company_data: dict = Field(default_factory=dict, sa_type=sa.JSON, nullable=False)
    contact_person: dict = Field(default_factory=dict, sa_type=sa.JSON, nullable=False)
    status: str = Field(default="pending", nullable=False)  # pending | approved | rejected
    reviewed_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    reviewed_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    rejection_reason: Optional[str] = None
