"""
Subscription endpoints.

GET  /api/v1/subscription                      - Current subscription and plan
POST /api/v1/subscription/checkout             - Start Stripe checkout (company admin)
POST /api/v1/subscription/renewal-checkout     - Start renewal checkout (company admin)
POST /api/v1/subscription/activate             - Activate a paid checkout (public, idempotent)
GET  /api/v1/subscription/success              - Checkout success redirect (public)
GET  /api/v1/subscription/cancel               - Checkout cancel redirect (public)
POST /api/v1/subscription/cancel-subscription  - Cancel now or at period end (company admin)
POST /api/v1/subscription/webhook              - Stripe webhook (public, signed)
"""

from __future__ import annotations

import stripe
import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_authenticated_user, require_company_admin
from app.core.database import get_session
from app.services import subscriptions as subscription_service
from app.services.billing import StripeGateway, get_stripe_gateway
from crm_hub_shared.schemas.subscriptions import (
    ActivateRequest,
    ActivationResponse,
    CancelSubscriptionRequest,
    CheckoutRequest,
    CheckoutResponse,
    SubscriptionOverview,
    SubscriptionResponse,
)

log = structlog.get_logger()
router = APIRouter()


@router.get("", response_model=SubscriptionOverview)
async def get_subscription(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    if auth.company is None:
        raise HTTPException(status_code=404, detail="Company not found")
    return await subscription_service.overview(auth.company, session)


@router.post("/checkout", response_model=CheckoutResponse)
async def checkout(
    body: CheckoutRequest,
    auth: AuthenticatedUser = Depends(require_company_admin),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    session: AsyncSession = Depends(get_session),
):
    return await subscription_service.start_checkout(auth, body.plan_id, gateway, session)


@router.post("/renewal-checkout", response_model=CheckoutResponse)
async def renewal_checkout(
    body: CheckoutRequest,
    auth: AuthenticatedUser = Depends(require_company_admin),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    session: AsyncSession = Depends(get_session),
):
    return await subscription_service.start_checkout(
        auth, body.plan_id, gateway, session, is_renewal=True
    )


@router.post("/activate", response_model=ActivationResponse)
async def activate(
    body: ActivateRequest,
    gateway: StripeGateway = Depends(get_stripe_gateway),
    session: AsyncSession = Depends(get_session),
):
    """Activate after a paid checkout. Repeated calls return the active subscription."""
    subscription, changed = await subscription_service.activate_checkout(
        body.session_id,
        body.company_id,
        body.plan_id,
        gateway,
        session,
        payment_intent_id=body.payment_intent_id,
    )
    return ActivationResponse(
        message="Subscription activated successfully" if changed else "Subscription already active",
        subscription=SubscriptionResponse.model_validate(subscription),
    )


@router.get("/success")
async def success(
    session_id: str = Query(...),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    session: AsyncSession = Depends(get_session),
):
    return await subscription_service.complete_checkout(session_id, gateway, session)


@router.get("/cancel")
async def cancel_redirect():
    return {"success": False, "message": "Payment was cancelled. You can try again at any time."}


@router.post("/cancel-subscription", response_model=SubscriptionResponse)
async def cancel_subscription(
    body: CancelSubscriptionRequest,
    auth: AuthenticatedUser = Depends(require_company_admin),
    session: AsyncSession = Depends(get_session),
):
    if auth.company is None:
        raise HTTPException(status_code=404, detail="Company not found")
    subscription = await subscription_service.cancel(auth.company, body.at_period_end, session)
    return SubscriptionResponse.model_validate(subscription)


@router.post("/webhook")
async def webhook(
    request: Request,
    gateway: StripeGateway = Depends(get_stripe_gateway),
    session: AsyncSession = Depends(get_session),
):
    if not gateway.webhook_secret:
        log.error("stripe.webhook_secret_missing")
        return JSONResponse(status_code=500, content={"message": "Webhook secret not configured"})

    payload = await request.body()
    try:
        event = gateway.construct_event(payload, request.headers.get("stripe-signature"))
    except ValueError:
        log.warning("stripe.webhook_invalid_payload")
        return JSONResponse(status_code=400, content={"message": "Invalid payload"})
    except stripe.SignatureVerificationError:
        log.warning("stripe.webhook_invalid_signature")
        return JSONResponse(status_code=400, content={"message": "Invalid signature"})

    await subscription_service.handle_webhook_event(event, session)
    return {"received": True}
