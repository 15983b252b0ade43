"""
Application errors and the exception handlers that render them.

Database integrity violations become 422s with a domain explanation;
billing failures become 500s whose details are only exposed in debug mode.
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request
from sqlalchemy.exc import IntegrityError
from starlette.responses import JSONResponse

from app.core.config import get_settings

log = structlog.get_logger()
settings = get_settings()

DUPLICATE_MESSAGE = "A record with this information already exists."
FOREIGN_KEY_MESSAGE = "Cannot perform this operation due to related records."


class BillingError(Exception):
    """A payment-provider call failed."""

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class SubscriptionRequired(Exception):
    """Raised by the subscription gate; rendered with its body as-is."""

    def __init__(self, status_code: int, body: dict):
        super().__init__(body.get("message", "Subscription required"))
        self.status_code = status_code
        self.body = body


def error_payload(message: str, exc: Optional[BaseException] = None, **context: Any) -> dict:
    """Error body with exception details attached only in debug mode."""
    payload: dict[str, Any] = {"message": message}
    if settings.debug and exc is not None:
        payload["error"] = str(exc)
        payload["exception"] = type(exc).__name__
        if context:
            payload["context"] = context
    return payload


def classify_integrity_error(exc: IntegrityError) -> str:
    text = str(exc.orig).lower() if exc.orig is not None else str(exc).lower()
    if "foreign key" in text:
        return FOREIGN_KEY_MESSAGE
    return DUPLICATE_MESSAGE


async def _integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    message = classify_integrity_error(exc)
    log.warning("db.integrity_error", path=request.url.path, message=message)
    return JSONResponse(status_code=422, content=error_payload(message, exc))


async def _billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    log.error("billing.error", path=request.url.path, code=exc.code, message=exc.message)
    return JSONResponse(
        status_code=500,
        content=error_payload("Payment provider error", exc, code=exc.code, **exc.details),
    )


async def _subscription_required_handler(request: Request, exc: SubscriptionRequired) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(IntegrityError, _integrity_error_handler)
    app.add_exception_handler(BillingError, _billing_error_handler)
    app.add_exception_handler(SubscriptionRequired, _subscription_required_handler)
