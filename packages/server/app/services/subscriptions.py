"""
Subscription lifecycle: checkout, activation, renewal, cancellation, expiry
and the plan catalog.

A company has at most one subscription row. Activation is an idempotent
upsert keyed by company; the company's ``subscription_status`` mirrors the
row so the subscription gate can decide from the company alone.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

import stripe
import structlog
from dateutil.relativedelta import relativedelta
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser
from app.core.config import get_settings
from app.core.errors import BillingError
from app.models.base import utcnow
from app.models.company import Company
from app.models.subscription import Subscription
from app.models.subscription_plan import SubscriptionPlan
from app.models.user import User
from app.services.billing import StripeGateway
from crm_hub_shared.schemas.common import LIVE_SUBSCRIPTION_STATUSES
from crm_hub_shared.schemas.subscriptions import (
    CheckoutResponse,
    PlanCreateRequest,
    PlanResponse,
    PlanUpdateRequest,
    SubscriptionOverview,
    SubscriptionResponse,
)

log = structlog.get_logger()


def compute_period_end(start: datetime, interval: str) -> datetime:
    """End of a paid period. Month is the default interval."""
    if interval == "year":
        return start + relativedelta(years=1)
    return start + relativedelta(months=1)


def is_truthy_flag(value: Any) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes")


def checkout_metadata(obj: Any) -> dict:
    """The metadata of a Stripe object as a plain dict."""
    metadata = getattr(obj, "metadata", None)
    if metadata is None:
        return {}
    return {key: metadata[key] for key in metadata.keys()}


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_company_subscription(
    company_id: uuid.UUID, session: AsyncSession
) -> Optional[Subscription]:
    result = await session.execute(
        select(Subscription).where(Subscription.company_id == company_id)
    )
    return result.scalar_one_or_none()


async def _get_company(company_id: uuid.UUID, session: AsyncSession) -> Company:
    company = await session.get(Company, company_id)
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    return company


async def get_plan(plan_id: uuid.UUID, session: AsyncSession) -> SubscriptionPlan:
    plan = await session.get(SubscriptionPlan, plan_id)
    if not plan:
        raise HTTPException(status_code=404, detail="Subscription plan not found")
    return plan


async def overview(company: Company, session: AsyncSession) -> SubscriptionOverview:
    subscription = await get_company_subscription(company.id, session)
    plan = await session.get(SubscriptionPlan, subscription.plan_id) if subscription else None
    return SubscriptionOverview(
        subscription=SubscriptionResponse.model_validate(subscription) if subscription else None,
        plan=PlanResponse.model_validate(plan) if plan else None,
        company_status=company.status,
        subscription_status=company.subscription_status,
    )


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

async def _checkout_plan(plan_id: Optional[uuid.UUID], session: AsyncSession) -> SubscriptionPlan:
    if plan_id is not None:
        plan = await session.get(SubscriptionPlan, plan_id)
        if plan and plan.is_active:
            return plan
        raise HTTPException(status_code=404, detail="Subscription plan not found")

    result = await session.execute(
        select(SubscriptionPlan)
        .where(SubscriptionPlan.is_active == True)  # noqa: E712
        .order_by(SubscriptionPlan.amount)
    )
    plan = result.scalars().first()
    if not plan:
        raise HTTPException(status_code=404, detail="No active subscription plan available")
    return plan


async def start_checkout(
    auth: AuthenticatedUser,
    plan_id: Optional[uuid.UUID],
    gateway: StripeGateway,
    session: AsyncSession,
    *,
    is_renewal: bool = False,
) -> CheckoutResponse:
    """Create a Stripe Checkout Session for the caller's company."""
    company = auth.company
    if company is None:
        raise HTTPException(status_code=404, detail="Company not found")

    subscription = await get_company_subscription(company.id, session)
    if is_renewal:
        if subscription is None:
            raise HTTPException(status_code=400, detail="No subscription to renew")
    else:
        has_active = subscription is not None and subscription.status == "active"
        if company.status == "active" and has_active:
            raise HTTPException(status_code=400, detail="Company already has an active subscription")
        if company.status not in ("approved", "active"):
            raise HTTPException(
                status_code=403, detail="Company is not eligible for subscription checkout"
            )

    plan = await _checkout_plan(plan_id, session)

    if not company.stripe_customer_id:
        company.stripe_customer_id = await gateway.create_customer(
            email=auth.user.email, name=company.name, company_id=company.id
        )
        session.add(company)
        await session.flush()

    frontend = get_settings().frontend_url.rstrip("/")
    success_url = (
        f"{frontend}/subscription/success?session_id={{CHECKOUT_SESSION_ID}}"
        f"&company_id={company.id}&plan_id={plan.id}&is_renewal={int(is_renewal)}"
    )
    checkout_url, session_id = await gateway.create_checkout_session(
        customer_id=company.stripe_customer_id,
        plan=plan,
        company_id=company.id,
        is_renewal=is_renewal,
        success_url=success_url,
        cancel_url=f"{frontend}/subscription/cancel",
    )

    log.info(
        "subscription.checkout_started",
        company_id=str(company.id),
        plan_id=str(plan.id),
        kind="renewal" if is_renewal else "initial",
    )
    return CheckoutResponse(checkout_url=checkout_url, session_id=session_id)


# ---------------------------------------------------------------------------
# Activation / renewal
# ---------------------------------------------------------------------------

async def _mark_company_active(company: Company, session: AsyncSession) -> None:
    company.subscription_status = "active"
    company.status = "active"
    session.add(company)

    result = await session.execute(
        select(User).where(
            User.company_id == company.id,
            User.role == "company_admin",
            User.status == "pending",
        )
    )
    for admin in result.scalars().all():
        admin.status = "active"
        session.add(admin)


async def activate(
    company_id: uuid.UUID,
    plan_id: uuid.UUID,
    session: AsyncSession,
    *,
    checkout_session_id: Optional[str] = None,
    payment_intent_id: Optional[str] = None,
) -> tuple[Subscription, bool]:
    """Upsert the company's subscription as active. Returns (subscription, changed).

    A subscription that is already active is returned unchanged.
    """
    company = await _get_company(company_id, session)
    plan = await get_plan(plan_id, session)

    subscription = await get_company_subscription(company.id, session)
    if subscription is not None and subscription.status == "active":
        log.info("subscription.already_active", company_id=str(company.id))
        return subscription, False

    now = utcnow()
    if subscription is None:
        subscription = Subscription(company_id=company.id, plan_id=plan.id)

    subscription.plan_id = plan.id
    subscription.status = "active"
    subscription.stripe_customer_id = company.stripe_customer_id
    if checkout_session_id:
        subscription.stripe_checkout_session_id = checkout_session_id
    if payment_intent_id:
        subscription.stripe_payment_intent_id = payment_intent_id
    subscription.current_period_start = now
    subscription.current_period_end = compute_period_end(now, plan.interval)
    subscription.cancel_at_period_end = False
    subscription.canceled_at = None
    session.add(subscription)

    await _mark_company_active(company, session)
    await session.flush()

    log.info(
        "subscription.activated",
        company_id=str(company.id),
        plan_id=str(plan.id),
        period_end=subscription.current_period_end.isoformat(),
    )
    return subscription, True


async def renew(
    company_id: uuid.UUID,
    plan_id: uuid.UUID,
    session: AsyncSession,
    *,
    checkout_session_id: Optional[str] = None,
    payment_intent_id: Optional[str] = None,
) -> Subscription:
    """Start a new paid period from now. Falls back to activation without a row.

    A checkout session is applied once; replays return the subscription as is.
    """
    subscription = await get_company_subscription(company_id, session)
    if subscription is None:
        subscription, _ = await activate(
            company_id,
            plan_id,
            session,
            checkout_session_id=checkout_session_id,
            payment_intent_id=payment_intent_id,
        )
        return subscription

    if checkout_session_id and subscription.stripe_checkout_session_id == checkout_session_id:
        log.info(
            "subscription.renewal_already_applied",
            company_id=str(company_id),
            session_id=checkout_session_id,
        )
        return subscription

    company = await _get_company(company_id, session)
    plan = await get_plan(plan_id, session)
    now = utcnow()

    subscription.plan_id = plan.id
    subscription.status = "active"
    subscription.current_period_start = now
    subscription.current_period_end = compute_period_end(now, plan.interval)
    subscription.cancel_at_period_end = False
    subscription.canceled_at = None
    if checkout_session_id:
        subscription.stripe_checkout_session_id = checkout_session_id
    if payment_intent_id:
        subscription.stripe_payment_intent_id = payment_intent_id
    session.add(subscription)

    await _mark_company_active(company, session)
    await session.flush()

    log.info("subscription.renewed", company_id=str(company_id), plan_id=str(plan.id))
    return subscription


async def complete_checkout(
    session_id: str, gateway: StripeGateway, session: AsyncSession
) -> dict:
    """Handle the success redirect: activate when Stripe reports the session paid."""
    checkout = await gateway.retrieve_checkout_session(session_id)
    payment_status = getattr(checkout, "payment_status", None)
    if payment_status != "paid":
        log.info("subscription.checkout_unpaid", session_id=session_id, payment_status=payment_status)
        return {
            "success": False,
            "message": "Payment not completed",
            "payment_status": payment_status,
        }

    metadata = checkout_metadata(checkout)
    try:
        company_id = uuid.UUID(str(metadata.get("company_id")))
        plan_id = uuid.UUID(str(metadata.get("subscription_plan_id")))
    except ValueError:
        raise HTTPException(status_code=400, detail="Checkout session is missing subscription metadata")

    payment_intent = getattr(checkout, "payment_intent", None)
    if is_truthy_flag(metadata.get("is_renewal")):
        subscription = await renew(
            company_id, plan_id, session, checkout_session_id=session_id, payment_intent_id=payment_intent
        )
    else:
        subscription, _ = await activate(
            company_id, plan_id, session, checkout_session_id=session_id, payment_intent_id=payment_intent
        )
    return {
        "success": True,
        "message": "Subscription activated successfully",
        "subscription": SubscriptionResponse.model_validate(subscription).model_dump(mode="json"),
    }


async def activate_checkout(
    session_id: str,
    company_id: uuid.UUID,
    plan_id: uuid.UUID,
    gateway: StripeGateway,
    session: AsyncSession,
    *,
    payment_intent_id: Optional[str] = None,
) -> tuple[Subscription, bool]:
    """Activate from a client-reported checkout once Stripe confirms it was paid for this plan."""
    try:
        checkout = await gateway.retrieve_checkout_session(session_id)
    except BillingError as exc:
        if exc.code == "resource_missing":
            raise HTTPException(status_code=404, detail="Checkout session not found")
        raise

    payment_status = getattr(checkout, "payment_status", None)
    if payment_status != "paid":
        log.warning("subscription.activation_unpaid", session_id=session_id, payment_status=payment_status)
        raise HTTPException(status_code=400, detail="Payment not completed")

    metadata = checkout_metadata(checkout)
    if (
        metadata.get("company_id") != str(company_id)
        or metadata.get("subscription_plan_id") != str(plan_id)
    ):
        log.warning("subscription.activation_mismatch", session_id=session_id, company_id=str(company_id))
        raise HTTPException(status_code=400, detail="Checkout session does not match this subscription")

    return await activate(
        company_id,
        plan_id,
        session,
        checkout_session_id=session_id,
        payment_intent_id=payment_intent_id or getattr(checkout, "payment_intent", None),
    )


# ---------------------------------------------------------------------------
# Cancellation / payment failure / expiry
# ---------------------------------------------------------------------------

async def cancel(company: Company, at_period_end: bool, session: AsyncSession) -> Subscription:
    subscription = await get_company_subscription(company.id, session)
    if subscription is None:
        raise HTTPException(status_code=404, detail="No subscription found")

    if at_period_end:
        subscription.cancel_at_period_end = True
    else:
        subscription.status = "canceled"
        subscription.canceled_at = utcnow()
        company.subscription_status = "canceled"
        company.status = "suspended"
        session.add(company)

    session.add(subscription)
    await session.flush()
    log.info("subscription.canceled", company_id=str(company.id), at_period_end=at_period_end)
    return subscription


async def mark_past_due(company_id: uuid.UUID, session: AsyncSession) -> None:
    company = await session.get(Company, company_id)
    if not company:
        log.warning("subscription.past_due_unknown_company", company_id=str(company_id))
        return
    company.subscription_status = "past_due"
    session.add(company)

    subscription = await get_company_subscription(company_id, session)
    if subscription is not None:
        subscription.status = "past_due"
        session.add(subscription)
    await session.flush()
    log.warning("subscription.past_due", company_id=str(company_id))


async def expire_lapsed(session: AsyncSession, *, now: Optional[datetime] = None) -> int:
    """End active subscriptions whose paid period is over. Returns how many changed."""
    now = now or utcnow()
    result = await session.execute(
        select(Subscription).where(
            Subscription.status == "active",
            Subscription.current_period_end.is_not(None),
            Subscription.current_period_end < now,
        )
    )
    lapsed = result.scalars().all()
    for subscription in lapsed:
        if subscription.cancel_at_period_end:
            subscription.status = "canceled"
            subscription.canceled_at = now
        else:
            subscription.status = "expired"
        session.add(subscription)

        company = await session.get(Company, subscription.company_id)
        if company is not None:
            company.subscription_status = "canceled"
            session.add(company)
        log.info(
            "subscription.lapsed",
            company_id=str(subscription.company_id),
            status=subscription.status,
        )

    await session.flush()
    return len(lapsed)


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------

async def handle_webhook_event(event: stripe.Event, session: AsyncSession) -> None:
    event_type = event.type
    obj = event.data.object
    log.info("stripe.webhook_received", event_type=event_type, event_id=getattr(event, "id", None))

    if event_type == "checkout.session.completed":
        metadata = checkout_metadata(obj)
        try:
            company_id = uuid.UUID(str(metadata.get("company_id")))
            plan_id = uuid.UUID(str(metadata.get("subscription_plan_id")))
        except ValueError:
            log.warning("stripe.webhook_missing_metadata", event_type=event_type)
            return
        kwargs = {
            "checkout_session_id": getattr(obj, "id", None),
            "payment_intent_id": getattr(obj, "payment_intent", None),
        }
        if is_truthy_flag(metadata.get("is_renewal")):
            await renew(company_id, plan_id, session, **kwargs)
        else:
            await activate(company_id, plan_id, session, **kwargs)

    elif event_type == "payment_intent.succeeded":
        log.info("stripe.payment_succeeded", payment_intent=getattr(obj, "id", None))

    elif event_type == "payment_intent.payment_failed":
        log.warning("stripe.payment_failed", payment_intent=getattr(obj, "id", None))
        company_ref = checkout_metadata(obj).get("company_id")
        if company_ref:
            try:
                company_id = uuid.UUID(str(company_ref))
            except ValueError:
                return
            await mark_past_due(company_id, session)

    else:
        log.info("stripe.webhook_ignored", event_type=event_type)


# ---------------------------------------------------------------------------
# Plan catalog
# ---------------------------------------------------------------------------

async def list_plans(session: AsyncSession, *, active_only: bool = False) -> list[SubscriptionPlan]:
    query = select(SubscriptionPlan).order_by(SubscriptionPlan.amount)
    if active_only:
        query = query.where(SubscriptionPlan.is_active == True)  # noqa: E712
    result = await session.execute(query)
    return list(result.scalars().all())


async def create_plan(req: PlanCreateRequest, session: AsyncSession) -> SubscriptionPlan:
    plan = SubscriptionPlan(**req.model_dump(mode="json"))
    session.add(plan)
    await session.flush()
    log.info("subscription_plan.created", plan_id=str(plan.id), name=plan.name)
    return plan


async def update_plan(
    plan_id: uuid.UUID, req: PlanUpdateRequest, session: AsyncSession
) -> SubscriptionPlan:
    plan = await get_plan(plan_id, session)
    for field, value in req.model_dump(mode="json", exclude_unset=True).items():
        setattr(plan, field, value)
    session.add(plan)
    await session.flush()
    log.info("subscription_plan.updated", plan_id=str(plan.id))
    return plan


async def delete_plan(plan_id: uuid.UUID, session: AsyncSession) -> None:
    plan = await get_plan(plan_id, session)
    result = await session.execute(
        select(Subscription.id).where(
            Subscription.plan_id == plan.id,
            Subscription.status.in_([s.value for s in LIVE_SUBSCRIPTION_STATUSES]),
        )
    )
    if result.first() is not None:
        raise HTTPException(status_code=400, detail="Cannot delete plan with active subscriptions")

    await session.delete(plan)
    await session.flush()
    log.info("subscription_plan.deleted", plan_id=str(plan_id))
