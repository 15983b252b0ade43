"""
Subscription gate: admits tenant traffic only for companies with an active
subscription.

``evaluate`` is a pure decision over (path, user, company); the
``require_active_subscription`` dependency applies it to a request and
raises ``SubscriptionRequired`` so the rejection body reaches the client
unchanged. Rejections use 402 (pay, then retry) rather than 403, except
for the missing-company case.
"""

from __future__ import annotations

from typing import NamedTuple, Optional

from fastapi import Depends, Request

from app.core.auth import AuthenticatedUser, get_authenticated_user
from app.core.errors import SubscriptionRequired
from app.models.company import Company
from app.models.user import User

SUBSCRIPTION_ALLOWED_PREFIXES: tuple[str, ...] = (
    "/api/v1/subscription",
    "/api/v1/subscription-plans",
    "/api/v1/subscription/checkout",
    "/api/v1/subscription/success",
    "/api/v1/subscription/cancel",
)


class GateRejection(NamedTuple):
    status_code: int
    body: dict


def evaluate(path: str, user: Optional[User], company: Optional[Company]) -> Optional[GateRejection]:
    """Return None to admit the request, or the rejection to send."""
    if user is not None and user.is_super_admin:
        return None

    if any(path.startswith(prefix) for prefix in SUBSCRIPTION_ALLOWED_PREFIXES):
        return None

    if user is None or company is None:
        return GateRejection(403, {"message": "Company not found"})

    status = company.subscription_status
    if status == "approved":
        return GateRejection(
            402,
            {
                "message": "Subscription required",
                "subscription_required": True,
                "company_status": status,
            },
        )

    if status == "active":
        return None

    if status == "past_due":
        return GateRejection(
            402,
            {
                "message": "Subscription payment failed. Please update your payment method.",
                "subscription_status": "past_due",
            },
        )

    return GateRejection(
        402,
        {
            "message": "Active subscription required",
            "subscription_required": True,
            "subscription_status": status,
        },
    )


async def require_active_subscription(
    request: Request,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    """Dependency form of ``evaluate`` for tenant routers."""
    rejection = evaluate(request.url.path, auth.user, auth.company)
    if rejection is not None:
        raise SubscriptionRequired(rejection.status_code, rejection.body)
    return auth
