"""
Typed response decoders for external project APIs.

Vendors disagree on where they put identifiers, tokens and error text. Each
vendor gets a ``VendorDecoder`` subclass declaring its key paths in
priority order; the first path present in a payload wins.

Error text is assembled in this order, later steps overriding earlier ones:

1. ``message``; otherwise ``error`` (a string, or JSON of a dict/list)
2. ``errors``: a field-keyed dict (``"Field: a, b"`` parts) or a list of
   strings / ``{field, message}`` objects, parts joined with ``"; "``
3. ``data.message``
4. the raw body, if nothing above produced text
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt

UNKNOWN_ERROR = "Unknown error"


def dig(payload: Any, path: str) -> Any:
    """Walk a dotted path through nested dicts. Missing keys yield None."""
    node = payload
    for key in path.split("."):
        if not isinstance(node, dict) or key not in node:
            return None
        node = node[key]
    return node


def first_present(payload: Any, paths: tuple[str, ...]) -> Any:
    for path in paths:
        value = dig(payload, path)
        if value not in (None, ""):
            return value
    return None


def _ucfirst(text: str) -> str:
    return text[:1].upper() + text[1:]


class VendorDecoder:
    """Generic decoder; subclasses prepend vendor-specific paths."""

    id_paths: tuple[str, ...] = ("data.user.id", "data.id", "user.id", "id")
    token_paths: tuple[str, ...] = ("data.token", "token", "data.access_token", "access_token")
    login_user_id_paths: tuple[str, ...] = ()

    def external_id(self, payload: Any) -> Optional[str]:
        value = first_present(payload, self.id_paths)
        return str(value) if value is not None else None

    def token(self, payload: Any) -> Optional[str]:
        value = first_present(payload, self.token_paths)
        return str(value) if value is not None else None

    def error(self, payload: Any, raw_body: str = "") -> tuple[str, Any]:
        """Return (message, structured_details) for a failed response."""
        message = UNKNOWN_ERROR
        details: Any = None

        if isinstance(payload, dict):
            if payload.get("message"):
                message = str(payload["message"])
            elif "error" in payload and payload["error"] is not None:
                err = payload["error"]
                message = err if isinstance(err, str) else json.dumps(err)

            if payload.get("errors") is not None:
                details = payload["errors"]
                message = self._format_errors(details)

            nested = dig(payload, "data.message")
            if nested:
                message = str(nested)

        if message == UNKNOWN_ERROR and raw_body:
            message = raw_body
        return message, details

    def _format_errors(self, errors: Any) -> str:
        parts: list[str] = []
        if isinstance(errors, dict):
            for field, messages in errors.items():
                if isinstance(messages, list):
                    parts.append(f"{_ucfirst(str(field))}: {', '.join(str(m) for m in messages)}")
                else:
                    parts.append(f"{_ucfirst(str(field))}: {messages}")
        elif isinstance(errors, list):
            for item in errors:
                if isinstance(item, dict) and "field" in item and "message" in item:
                    parts.append(f"{_ucfirst(str(item['field']))}: {item['message']}")
                elif isinstance(item, str):
                    parts.append(item)
        else:
            return f"Validation error: {errors}"

        if not parts:
            return f"Validation error: {json.dumps(errors)}"
        return "; ".join(parts)


class DoctorDecoder(VendorDecoder):
    """MyDoctor uses Mongo-style ``_id`` keys."""

    id_paths = ("data.user._id", "user._id", "user_id") + VendorDecoder.id_paths
    login_user_id_paths: tuple[str, ...] = ("data.user._id",)


class TGCalabriaDecoder(VendorDecoder):
    """TG Calabria returns the created user under ``data`` or at the top level."""

    login_user_id_paths: tuple[str, ...] = ("data.user.id", "user.id")
    default_role = "EDITOR"

    def account(self, payload: Any) -> tuple[Optional[str], Optional[str], str]:
        """(external_user_id, external_username, external_role) from a registration reply."""
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            node = payload["data"]
        elif isinstance(payload, dict) and payload.get("id") is not None:
            node = payload
        else:
            return self.external_id(payload), None, self.default_role
        user_id = node.get("id")
        username = node.get("email") or node.get("name")
        role = node.get("role") or self.default_role
        return (str(user_id) if user_id is not None else None), username, role


# ---------------------------------------------------------------------------
# Bearer token expiry
# ---------------------------------------------------------------------------

def decode_jwt_claims(token: str) -> Optional[dict]:
    """Read a JWT payload without verifying the signature."""
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    return claims if isinstance(claims, dict) else None


def token_expiry(token: str, fallback_days: int = 7, *, now: Optional[datetime] = None) -> datetime:
    """Expiry from the token's ``exp`` claim, else ``now + fallback_days``."""
    now = now or datetime.now(timezone.utc)
    claims = decode_jwt_claims(token)
    exp = claims.get("exp") if claims else None
    if isinstance(exp, (int, float)) and not isinstance(exp, bool):
        try:
            return datetime.fromtimestamp(exp, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            pass
    return now + timedelta(days=fallback_days)
