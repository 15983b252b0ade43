"""
Shared fixtures: in-memory SQLite database, API client bound to it, and
small factories for the core records.
"""

from __future__ import annotations

import os

os.environ.setdefault("CRM_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("CRM_SECRET_KEY", "test-secret-key-0123456789abcdef0123456789")
os.environ.setdefault("CRM_STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("CRM_FRONTEND_URL", "http://frontend.test")

from typing import Optional  # noqa: E402
from unittest.mock import AsyncMock, patch  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import app.models  # noqa: E402,F401
from app.core.auth import create_jwt, set_user_password  # noqa: E402
from app.core.crypto import encrypt_json  # noqa: E402
from app.core.database import get_session  # noqa: E402
from app.main import app as fastapi_app  # noqa: E402
from app.models.access_grant import AccessGrant  # noqa: E402
from app.models.company import Company  # noqa: E402
from app.models.project import Project  # noqa: E402
from app.models.subscription_plan import SubscriptionPlan  # noqa: E402
from app.models.user import User  # noqa: E402

DEFAULT_PASSWORD = "secret-pass-1"


@pytest.fixture(autouse=True)
def no_revoked_tokens():
    with patch("app.core.auth.is_jwt_revoked", AsyncMock(return_value=False)):
        yield


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
async def client(session_factory):
    async def _override_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    fastapi_app.dependency_overrides[get_session] = _override_session
    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as ac:
        yield ac
    fastapi_app.dependency_overrides.clear()


def auth_headers(user: User) -> dict[str, str]:
    token, _ = create_jwt(user.id, user.company_id, user.role)
    return {"Authorization": f"Bearer {token}"}


class Factory:
    """Creates committed records through the test session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _save(self, obj):
        self.session.add(obj)
        await self.session.commit()
        return obj

    async def company(
        self,
        name: str = "Acme Srl",
        *,
        status: str = "active",
        subscription_status: str = "active",
        **kwargs,
    ) -> Company:
        return await self._save(
            Company(name=name, status=status, subscription_status=subscription_status, **kwargs)
        )

    async def user(
        self,
        company: Optional[Company],
        email: str,
        *,
        name: str = "Mario Rossi",
        role: str = "staff",
        status: str = "active",
        password: Optional[str] = DEFAULT_PASSWORD,
    ) -> User:
        user = User(
            company_id=company.id if company else None,
            name=name,
            email=email,
            password_hash="",
            role=role,
            status=status,
        )
        if password is not None:
            set_user_password(user, password)
        else:
            # Hash only; no recoverable copy
            set_user_password(user, "unrecoverable-pass")
            user.encrypted_password = None
        return await self._save(user)

    async def super_admin(self, email: str = "root@example.com") -> User:
        return await self.user(None, email, name="Platform Admin", role="super_admin")

    async def project(self, slug: str = "crm-docs", *, name: Optional[str] = None, **kwargs) -> Project:
        return await self._save(Project(name=name or slug.title(), slug=slug, **kwargs))

    async def grant(
        self,
        company: Company,
        project: Project,
        *,
        status: str = "active",
        credentials: Optional[dict] = None,
    ) -> AccessGrant:
        return await self._save(
            AccessGrant(
                company_id=company.id,
                project_id=project.id,
                status=status,
                encrypted_credentials=encrypt_json(credentials) if credentials else None,
            )
        )

    async def plan(
        self, name: str = "Standard", *, amount: int = 4900, interval: str = "month", **kwargs
    ) -> SubscriptionPlan:
        return await self._save(
            SubscriptionPlan(name=name, amount=amount, currency="EUR", interval=interval, **kwargs)
        )


@pytest.fixture
def factory(session) -> Factory:
    return Factory(session)


@pytest.fixture
def headers_for():
    return auth_headers
