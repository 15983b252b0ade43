"""
External project catalog and project-proxy schemas.
"""

from __future__ import annotations

import uuid
from typing import Literal, Optional

from pydantic import BaseModel, Field

from .common import IntegrationType


class ProjectCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(
        ...,
        min_length=2,
        max_length=100,
        pattern=r"^[a-z0-9][a-z0-9-]*[a-z0-9]$",
    )
    description: Optional[str] = None
    integration_type: IntegrationType = IntegrationType.API
    api_base_url: Optional[str] = None
    api_auth_type: Optional[str] = None
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    endpoints: Optional[dict] = None
    admin_panel_url: Optional[str] = None
    iframe_width: Optional[str] = None
    iframe_height: Optional[str] = None
    iframe_sandbox: Optional[str] = None
    sso_enabled: bool = False
    sso_method: Optional[str] = None
    sso_token_expiry: int = Field(300, ge=30, le=86400)
    sso_redirect_url: Optional[str] = None
    sso_callback_url: Optional[str] = None
    is_active: bool = True


class ProjectUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    integration_type: Optional[IntegrationType] = None
    api_base_url: Optional[str] = None
    api_auth_type: Optional[str] = None
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    endpoints: Optional[dict] = None
    admin_panel_url: Optional[str] = None
    iframe_width: Optional[str] = None
    iframe_height: Optional[str] = None
    iframe_sandbox: Optional[str] = None
    sso_enabled: Optional[bool] = None
    sso_method: Optional[str] = None
    sso_token_expiry: Optional[int] = Field(None, ge=30, le=86400)
    sso_redirect_url: Optional[str] = None
    sso_callback_url: Optional[str] = None
    is_active: Optional[bool] = None


class ProjectResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    description: Optional[str] = None
    integration_type: IntegrationType
    api_base_url: Optional[str] = None
    api_auth_type: Optional[str] = None
    has_api_key: bool = False
    endpoints: dict = Field(default_factory=dict)
    admin_panel_url: Optional[str] = None
    sso_enabled: bool
    sso_method: Optional[str] = None
    sso_token_expiry: int
    is_active: bool


class PublicProjectResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    description: Optional[str] = None

    model_config = {"from_attributes": True}


class ProjectListResponse(BaseModel):
    data: list[ProjectResponse]


class IframeResponse(BaseModel):
    project: PublicProjectResponse
    iframe_url: Optional[str] = None
    iframe_width: Optional[str] = None
    iframe_height: Optional[str] = None
    iframe_sandbox: Optional[str] = None


class ArticleCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    slug: Optional[str] = Field(None, max_length=500)
    summary: Optional[str] = Field(None, max_length=1000)
    content: str = Field(..., min_length=1)
    categoryId: str
    status: Literal["DRAFT", "PUBLISHED"] = "PUBLISHED"
    isFeatured: bool = False
    isBreaking: bool = False
    tags: list[str] = Field(default_factory=list)
    mainImage: Optional[str] = Field(None, description="Absolute URL of an already uploaded image")
