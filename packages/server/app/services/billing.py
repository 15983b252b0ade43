"""
Stripe gateway: customers, one-off Checkout Sessions and webhook verification.

The Stripe SDK is synchronous; calls run in a worker thread. Provider
errors are logged and re-raised as ``BillingError``.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Callable, Optional

import stripe
import structlog

from app.core.config import get_settings
from app.core.errors import BillingError
from app.models.subscription_plan import SubscriptionPlan

log = structlog.get_logger()


class StripeGateway:
    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.stripe_secret_key
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.stripe_webhook_secret
        )

    async def _call(self, operation: str, fn: Callable[..., Any], **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, api_key=self.api_key, **kwargs)
        except stripe.StripeError as exc:
            log.error("stripe.request_failed", operation=operation, code=exc.code, error=str(exc))
            raise BillingError(
                exc.user_message or str(exc) or "Stripe request failed",
                code=exc.code,
                details={"operation": operation},
            ) from exc

    async def create_customer(self, *, email: str, name: str, company_id: uuid.UUID) -> str:
        customer = await self._call(
            "customer.create",
            stripe.Customer.create,
            email=email,
            name=name,
            metadata={"company_id": str(company_id)},
        )
        log.info("stripe.customer_created", company_id=str(company_id), customer_id=customer.id)
        return customer.id

    async def create_checkout_session(
        self,
        *,
        customer_id: str,
        plan: SubscriptionPlan,
        company_id: uuid.UUID,
        is_renewal: bool,
        success_url: str,
        cancel_url: str,
    ) -> tuple[str, str]:
        """One-off payment session for a plan. Returns (checkout_url, session_id)."""
        checkout = await self._call(
            "checkout.session.create",
            stripe.checkout.Session.create,
            customer=customer_id,
            mode="payment",
            payment_method_types=["card"],
            line_items=[
                {
                    "price_data": {
                        "currency": plan.currency.lower(),
                        "product_data": {
                            "name": plan.name,
                            "description": plan.description or f"{plan.name} subscription",
                        },
                        "unit_amount": plan.amount,
                    },
                    "quantity": 1,
                }
            ],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={
                "company_id": str(company_id),
                "subscription_plan_id": str(plan.id),
                "is_renewal": "1" if is_renewal else "0",
            },
        )
        log.info(
            "stripe.checkout_created",
            company_id=str(company_id),
            plan_id=str(plan.id),
            session_id=checkout.id,
            is_renewal=is_renewal,
        )
        return checkout.url, checkout.id

    async def retrieve_checkout_session(self, session_id: str) -> Any:
        return await self._call(
            "checkout.session.retrieve", stripe.checkout.Session.retrieve, id=session_id
        )

    def construct_event(self, payload: bytes, signature: Optional[str]) -> stripe.Event:
        """Verify a webhook signature and build the event.

        Raises SignatureVerificationError, or ValueError for a malformed body.
        """
        return stripe.Webhook.construct_event(payload, signature or "", self.webhook_secret)


def get_stripe_gateway() -> StripeGateway:
    """FastAPI dependency; tests override it with a fake gateway."""
    return StripeGateway()
