"""
Authentication and authorization for CRM Hub.

Supports:
- Email/password login with bcrypt hashes
- Bearer JWT sessions with a Redis revocation list
- Reversible password copy replayed to external projects
- Role dependencies (super admin, company admin)
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.crypto import decrypt, encrypt
from app.core.database import get_session
from app.core.redis import get_redis
from app.models.company import Company
from app.models.user import User

log = structlog.get_logger()
settings = get_settings()

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with cost factor 12."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return bcrypt.checkpw(password.encode(), hashed.encode())


def set_user_password(user: User, password: str) -> None:
    """Store the bcrypt hash plus the encrypted copy used for external registration."""
    user.password_hash = hash_password(password)
    user.encrypted_password = encrypt(password)


def recover_password(user: User) -> Optional[str]:
    """Plaintext password for replay to an external project, or None."""
    return decrypt(user.encrypted_password, purpose="user_password")


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: uuid.UUID,
    company_id: Optional[uuid.UUID],
    role: str,
    *,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed JWT. Returns (token, jti)."""
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user_id),
        "company_id": str(company_id) if company_id else None,
        "role": role,
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# JWT Revocation (Redis)
# ---------------------------------------------------------------------------

async def revoke_jwt(jti: str, ttl_seconds: int = 3600) -> None:
    """Add a JWT ID to the revocation list in Redis."""
    redis = await get_redis()
    await redis.setex(f"jwt:revoked:{jti}", max(ttl_seconds, 1), "1")


async def is_jwt_revoked(jti: str) -> bool:
    """Check if a JWT ID has been revoked."""
    redis = await get_redis()
    return await redis.exists(f"jwt:revoked:{jti}") > 0


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

class AuthenticatedUser:
    """Container for the authenticated user and their company (if any)."""

    def __init__(
        self,
        user: User,
        company: Optional[Company],
        *,
        jti: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ):
        self.user = user
        self.company = company
        self.user_id = user.id
        self.company_id = company.id if company else None
        self.role = user.role
        self.jti = jti
        self.expires_at = expires_at

    @property
    def is_super_admin(self) -> bool:
        return self.user.is_super_admin

    @property
    def is_company_admin(self) -> bool:
        return self.user.is_company_admin


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Authentication required")
    token = authorization[7:].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")
    return token


async def get_authenticated_user(
    request: Request,
    authorization: Optional[str] = Depends(api_key_header),
    session: AsyncSession = Depends(get_session),
) -> AuthenticatedUser:
    """Resolve the bearer JWT into a user and their company."""
    token = _bearer_token(authorization)
    try:
        payload = decode_jwt(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    jti = payload.get("jti")
    if jti and await is_jwt_revoked(jti):
        raise HTTPException(status_code=401, detail="Session has been revoked")

    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    user = await session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if user.status != "active":
        raise HTTPException(status_code=403, detail="Account is not active")

    company = await session.get(Company, user.company_id) if user.company_id else None
    expires_at = None
    if payload.get("exp"):
        expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)

    auth = AuthenticatedUser(user=user, company=company, jti=jti, expires_at=expires_at)
    request.state.auth = auth
    return auth


# ---------------------------------------------------------------------------
# Authorization dependencies (role checks)
# ---------------------------------------------------------------------------

async def require_super_admin(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    """Platform operators only."""
    if not auth.is_super_admin:
        raise HTTPException(status_code=403, detail="Super admin access required")
    return auth


async def require_company_admin(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    """Company administrators (or super admins)."""
    if not (auth.is_super_admin or auth.is_company_admin):
        raise HTTPException(status_code=403, detail="Company admin access required")
    return auth
