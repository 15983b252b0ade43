"""User model."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    company_id: Optional[uuid.UUID] = Field(default=None, foreign_key="companies.id", index=True)
    name: str = Field(nullable=False)
    email: str = Field(unique=True, index=True, nullable=False)
    password_hash: str = Field(nullable=False)  # bcrypt
    # Fernet token of the plaintext password, replayed to external vendors only
    encrypted_password: Optional[str] = None
    role: str = Field(default="staff", nullable=False)
    status: str = Field(default="active", nullable=False)
    permissions: Optional[list] = Field(default=None, sa_type=sa.JSON)

    @property
    def is_super_admin(self) -> bool:
        return self.role == "super_admin"

    @property
    def is_company_admin(self) -> bool:
        return self.role == "company_admin"
