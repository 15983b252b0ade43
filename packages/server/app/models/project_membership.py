"""A company user's membership within an access grant."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class ProjectMembership(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "project_memberships"
    __table_args__ = (
        sa.UniqueConstraint("grant_id", "user_id", name="uq_project_memberships_grant_user"),
    )

    grant_id: uuid.UUID = Field(foreign_key="access_grants.id", nullable=False, index=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    status: str = Field(default="active", nullable=False)
    external_user_id: Optional[str] = None
    external_username: Optional[str] = None
    external_role: Optional[str] = None
    external_token: Optional[str] = Field(default=None, sa_type=sa.Text)
    token_expires_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    last_sso_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    revoked_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    revoked_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
