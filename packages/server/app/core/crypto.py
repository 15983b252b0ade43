"""
Reversible encryption for secrets the platform must replay to third parties:
per-grant API credentials, project API keys and the users' plaintext
passwords sent to external registration endpoints.

Decryption failures never raise; callers treat them as absent values.
"""

from __future__ import annotations

import base64
import hashlib
import json
from functools import lru_cache
from typing import Optional

import structlog
from cryptography.fernet import Fernet, InvalidToken

from app.core.config import get_settings

log = structlog.get_logger()


@lru_cache
def _fernet() -> Fernet:
    settings = get_settings()
    key = settings.encryption_key
    if not key:
        digest = hashlib.sha256(settings.secret_key.encode()).digest()
        key = base64.urlsafe_b64encode(digest).decode()
    return Fernet(key.encode() if isinstance(key, str) else key)


def encrypt(value: str) -> str:
    return _fernet().encrypt(value.encode()).decode()


def decrypt(token: Optional[str], *, purpose: str = "secret") -> Optional[str]:
    """Decrypt a Fernet token, returning None when it is missing or unreadable."""
    if not token:
        return None
    try:
        return _fernet().decrypt(token.encode()).decode()
    except (InvalidToken, ValueError):
        log.warning("crypto.decrypt_failed", purpose=purpose)
        return None


def encrypt_json(value: dict) -> str:
    return encrypt(json.dumps(value))


def decrypt_json(token: Optional[str], *, purpose: str = "credentials") -> Optional[dict]:
    raw = decrypt(token, purpose=purpose)
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        log.warning("crypto.decrypt_failed", purpose=purpose, reason="invalid_json")
        return None
    return data if isinstance(data, dict) else None
