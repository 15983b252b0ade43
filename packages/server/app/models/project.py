"""External project (third-party system) model."""

from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Project(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "projects"

    name: str = Field(nullable=False)
    slug: str = Field(unique=True, nullable=False, index=True)
    description: Optional[str] = None
    integration_type: str = Field(default="api", nullable=False)  # api | iframe | hybrid
    api_base_url: Optional[str] = None
    api_auth_type: Optional[str] = None
    # Both stored as Fernet tokens
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    endpoints: dict = Field(default_factory=dict, sa_type=sa.JSON, nullable=False)
    admin_panel_url: Optional[str] = None
    iframe_width: Optional[str] = None
    iframe_height: Optional[str] = None
    iframe_sandbox: Optional[str] = None
    sso_enabled: bool = Field(default=False, nullable=False)
    sso_method: Optional[str] = None
    sso_token_expiry: int = Field(default=300, nullable=False)  # seconds
    sso_redirect_url: Optional[str] = None
    sso_callback_url: Optional[str] = None
    is_active: bool = Field(default=True, nullable=False)
