"""Company x project access grant."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class AccessGrant(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "access_grants"
    __table_args__ = (
        sa.UniqueConstraint("company_id", "project_id", name="uq_access_grants_company_project"),
    )

    company_id: uuid.UUID = Field(foreign_key="companies.id", nullable=False, index=True)
    project_id: uuid.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    status: str = Field(default="pending", nullable=False)  # pending | active | suspended | revoked
    # Fernet token of {"api_key": ..., "api_secret": ...}
    encrypted_credentials: Optional[str] = None
    external_company_id: Optional[str] = None
    approved_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    approved_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
