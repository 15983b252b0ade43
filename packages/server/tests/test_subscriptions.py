"""
Tests for the subscription lifecycle and the plan catalog.

Stripe is replaced by a fake gateway through the ``get_stripe_gateway``
dependency; webhook bodies are signed and verified with the real Stripe SDK.
"""

from __future__ import annotations

import json
import time
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
import stripe
from sqlmodel import select

from app.core.errors import BillingError
from app.main import app as fastapi_app
from app.models.base import as_utc
from app.models.subscription import Subscription
from app.services.billing import StripeGateway, get_stripe_gateway
from app.services.subscriptions import compute_period_end, expire_lapsed, renew


class FakeGateway(StripeGateway):
    """Records calls instead of talking to Stripe. Webhook verification is real."""

    def __init__(self, *, checkout=None):
        super().__init__(api_key="sk_test_fake", webhook_secret="whsec_test")
        self.checkout = checkout
        self.customers: list[dict] = []
        self.sessions: list[dict] = []

    async def create_customer(self, *, email, name, company_id):
        self.customers.append({"email": email, "name": name, "company_id": company_id})
        return "cus_fake"

    async def create_checkout_session(self, **kwargs):
        self.sessions.append(kwargs)
        return "https://checkout.stripe.test/cs_fake", "cs_fake"

    async def retrieve_checkout_session(self, session_id):
        if self.checkout is None:
            raise BillingError(f"No such checkout.session: '{session_id}'", code="resource_missing")
        return self.checkout


@pytest.fixture
def use_gateway():
    def _install(gateway):
        fastapi_app.dependency_overrides[get_stripe_gateway] = lambda: gateway
        return gateway

    return _install


def _checkout(company_id, plan_id, *, payment_status="paid", is_renewal="0", payment_intent=None):
    return SimpleNamespace(
        payment_status=payment_status,
        payment_intent=payment_intent,
        metadata={
            "company_id": str(company_id),
            "subscription_plan_id": str(plan_id),
            "is_renewal": is_renewal,
        },
    )


async def _activate(client, use_gateway, company, plan, session_id="cs_1"):
    use_gateway(FakeGateway(checkout=_checkout(company.id, plan.id)))
    return await client.post(
        "/api/v1/subscription/activate",
        json={"session_id": session_id, "company_id": str(company.id), "plan_id": str(plan.id)},
    )


async def _subscription(session, company):
    result = await session.execute(select(Subscription).where(Subscription.company_id == company.id))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Period arithmetic
# ---------------------------------------------------------------------------

class TestPeriod:
    def test_month(self):
        start = datetime(2026, 1, 31, tzinfo=timezone.utc)
        assert compute_period_end(start, "month") == datetime(2026, 2, 28, tzinfo=timezone.utc)

    def test_year(self):
        start = datetime(2024, 2, 29, tzinfo=timezone.utc)
        assert compute_period_end(start, "year") == datetime(2025, 2, 28, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Activation
# ---------------------------------------------------------------------------

class TestActivation:
    @pytest.mark.asyncio
    async def test_activate_is_idempotent(self, client, factory, session, use_gateway):
        company = await factory.company(status="approved", subscription_status="approved")
        admin = await factory.user(company, "admin@example.com", role="company_admin", status="pending")
        plan = await factory.plan()

        first = await _activate(client, use_gateway, company, plan)
        assert first.status_code == 200
        assert first.json()["message"] == "Subscription activated successfully"
        sub = first.json()["subscription"]
        assert sub["status"] == "active"

        second = await _activate(client, use_gateway, company, plan)
        assert second.status_code == 200
        assert second.json()["message"] == "Subscription already active"
        assert second.json()["subscription"]["id"] == sub["id"]

        await session.refresh(company)
        await session.refresh(admin)
        assert company.status == "active"
        assert company.subscription_status == "active"
        assert admin.status == "active"

        row = await _subscription(session, company)
        period = as_utc(row.current_period_end) - as_utc(row.current_period_start)
        assert timedelta(days=28) <= period <= timedelta(days=31)

    @pytest.mark.asyncio
    async def test_unknown_plan(self, client, factory, use_gateway):
        company = await factory.company(status="approved", subscription_status="approved")
        missing_plan = "00000000-0000-0000-0000-000000000000"
        use_gateway(FakeGateway(checkout=_checkout(company.id, missing_plan)))

        response = await client.post(
            "/api/v1/subscription/activate",
            json={"session_id": "cs_1", "company_id": str(company.id), "plan_id": missing_plan},
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unpaid_checkout_does_not_activate(self, client, factory, session, use_gateway):
        company = await factory.company(status="approved", subscription_status="approved")
        plan = await factory.plan()
        use_gateway(FakeGateway(checkout=_checkout(company.id, plan.id, payment_status="unpaid")))

        response = await client.post(
            "/api/v1/subscription/activate",
            json={"session_id": "cs_open", "company_id": str(company.id), "plan_id": str(plan.id)},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Payment not completed"
        assert await _subscription(session, company) is None

    @pytest.mark.asyncio
    async def test_checkout_for_another_company_rejected(self, client, factory, session, use_gateway):
        payer = await factory.company("Payer")
        other = await factory.company("Other", status="approved", subscription_status="approved")
        plan = await factory.plan()
        use_gateway(FakeGateway(checkout=_checkout(payer.id, plan.id)))

        response = await client.post(
            "/api/v1/subscription/activate",
            json={"session_id": "cs_payer", "company_id": str(other.id), "plan_id": str(plan.id)},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Checkout session does not match this subscription"
        assert await _subscription(session, other) is None

    @pytest.mark.asyncio
    async def test_unknown_checkout_session(self, client, factory, session, use_gateway):
        company = await factory.company(status="approved", subscription_status="approved")
        plan = await factory.plan()
        use_gateway(FakeGateway(checkout=None))

        response = await client.post(
            "/api/v1/subscription/activate",
            json={"session_id": "made_up", "company_id": str(company.id), "plan_id": str(plan.id)},
        )

        assert response.status_code == 404
        assert await _subscription(session, company) is None


# ---------------------------------------------------------------------------
# Renewal
# ---------------------------------------------------------------------------

class TestRenewal:
    @pytest.mark.asyncio
    async def test_same_checkout_session_renews_once(self, factory, session):
        company = await factory.company()
        plan = await factory.plan()
        session.add(
            Subscription(
                company_id=company.id,
                plan_id=plan.id,
                status="active",
                current_period_start=datetime(2026, 1, 1, tzinfo=timezone.utc),
                current_period_end=datetime(2026, 2, 1, tzinfo=timezone.utc),
            )
        )
        await session.commit()

        first = await renew(company.id, plan.id, session, checkout_session_id="cs_r")
        first_end = first.current_period_end
        second = await renew(company.id, plan.id, session, checkout_session_id="cs_r")

        assert second.id == first.id
        assert second.current_period_end == first_end
        assert second.stripe_checkout_session_id == "cs_r"

    @pytest.mark.asyncio
    async def test_new_checkout_session_renews_again(self, factory, session):
        company = await factory.company()
        plan = await factory.plan()
        await renew(company.id, plan.id, session, checkout_session_id="cs_a")
        row = await _subscription(session, company)
        row.current_period_end = datetime(2026, 1, 1, tzinfo=timezone.utc)
        session.add(row)
        await session.flush()

        renewed = await renew(company.id, plan.id, session, checkout_session_id="cs_b")

        assert as_utc(renewed.current_period_end) > datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert renewed.stripe_checkout_session_id == "cs_b"


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

class TestCheckout:
    @pytest.mark.asyncio
    async def test_checkout_creates_customer_and_session(self, client, factory, session, headers_for, use_gateway):
        company = await factory.company(status="approved", subscription_status="approved")
        admin = await factory.user(company, "admin@example.com", role="company_admin")
        plan = await factory.plan()
        gateway = use_gateway(FakeGateway())

        response = await client.post(
            "/api/v1/subscription/checkout", headers=headers_for(admin), json={"plan_id": str(plan.id)}
        )

        assert response.status_code == 200
        assert response.json() == {"checkout_url": "https://checkout.stripe.test/cs_fake", "session_id": "cs_fake"}
        assert gateway.customers[0]["email"] == "admin@example.com"
        assert gateway.sessions[0]["is_renewal"] is False
        assert gateway.sessions[0]["customer_id"] == "cus_fake"
        await session.refresh(company)
        assert company.stripe_customer_id == "cus_fake"

    @pytest.mark.asyncio
    async def test_checkout_rejected_when_already_active(self, client, factory, headers_for, use_gateway):
        company = await factory.company()
        admin = await factory.user(company, "admin@example.com", role="company_admin")
        plan = await factory.plan()
        await _activate(client, use_gateway, company, plan, session_id="cs_0")

        response = await client.post(
            "/api/v1/subscription/checkout", headers=headers_for(admin), json={"plan_id": str(plan.id)}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_renewal_needs_subscription(self, client, factory, headers_for, use_gateway):
        company = await factory.company(status="approved", subscription_status="approved")
        admin = await factory.user(company, "admin@example.com", role="company_admin")
        await factory.plan()
        use_gateway(FakeGateway())

        response = await client.post(
            "/api/v1/subscription/renewal-checkout", headers=headers_for(admin), json={}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_success_redirect_activates_paid_session(self, client, factory, session, use_gateway):
        company = await factory.company(status="approved", subscription_status="approved")
        plan = await factory.plan()
        use_gateway(FakeGateway(checkout=_checkout(company.id, plan.id, payment_intent="pi_1")))

        response = await client.get("/api/v1/subscription/success", params={"session_id": "cs_9"})

        assert response.status_code == 200
        assert response.json()["success"] is True
        row = await _subscription(session, company)
        assert row.stripe_payment_intent_id == "pi_1"
        assert row.stripe_checkout_session_id == "cs_9"

    @pytest.mark.asyncio
    async def test_success_redirect_unpaid(self, client, use_gateway):
        use_gateway(FakeGateway(checkout=SimpleNamespace(payment_status="unpaid", metadata={})))
        response = await client.get("/api/v1/subscription/success", params={"session_id": "cs_9"})
        assert response.json() == {"success": False, "message": "Payment not completed", "payment_status": "unpaid"}


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------

def _signed(payload: str, secret: str = "whsec_test") -> str:
    timestamp = int(time.time())
    signature = stripe.WebhookSignature._compute_signature(f"{timestamp}.{payload}", secret)
    return f"t={timestamp},v1={signature}"


async def _deliver(client, event: dict):
    body = json.dumps({"object": "event", **event})
    return await client.post(
        "/api/v1/subscription/webhook", content=body, headers={"Stripe-Signature": _signed(body)}
    )


class TestWebhook:
    @pytest.mark.asyncio
    async def test_bad_signature(self, client):
        response = await client.post(
            "/api/v1/subscription/webhook",
            content=json.dumps({"type": "ping"}),
            headers={"Stripe-Signature": "t=1,v1=deadbeef"},
        )
        assert response.status_code == 400
        assert response.json() == {"message": "Invalid signature"}

    @pytest.mark.asyncio
    async def test_invalid_payload(self, client):
        body = "not json"
        response = await client.post(
            "/api/v1/subscription/webhook", content=body, headers={"Stripe-Signature": _signed(body)}
        )
        assert response.status_code == 400
        assert response.json() == {"message": "Invalid payload"}

    @pytest.mark.asyncio
    async def test_missing_secret(self, client, use_gateway):
        gateway = use_gateway(FakeGateway())
        gateway.webhook_secret = ""
        response = await client.post("/api/v1/subscription/webhook", content="{}")
        assert response.status_code == 500

    @pytest.mark.asyncio
    async def test_signed_unhandled_event_is_acknowledged(self, client):
        response = await _deliver(client, {"id": "evt_1", "type": "customer.created", "data": {"object": {}}})
        assert response.status_code == 200
        assert response.json() == {"received": True}

    @pytest.mark.asyncio
    async def test_checkout_completed_activates(self, client, factory, session):
        company = await factory.company(status="approved", subscription_status="approved")
        plan = await factory.plan()
        event = {
            "id": "evt_2",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": "cs_2",
                    "payment_intent": "pi_2",
                    "metadata": {"company_id": str(company.id), "subscription_plan_id": str(plan.id)},
                }
            },
        }

        for _ in range(2):
            response = await _deliver(client, event)
            assert response.status_code == 200

        row = await _subscription(session, company)
        assert row.status == "active"
        assert row.stripe_checkout_session_id == "cs_2"
        assert row.stripe_payment_intent_id == "pi_2"
        await session.refresh(company)
        assert company.subscription_status == "active"

    @pytest.mark.asyncio
    async def test_renewal_event_extends_period_once(self, client, factory, session):
        company = await factory.company()
        plan = await factory.plan()
        old_end = datetime(2026, 1, 1, tzinfo=timezone.utc)
        session.add(
            Subscription(
                company_id=company.id,
                plan_id=plan.id,
                status="expired",
                current_period_start=old_end - timedelta(days=31),
                current_period_end=old_end,
            )
        )
        await session.commit()
        event = {
            "id": "evt_3",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": "cs_3",
                    "metadata": {
                        "company_id": str(company.id),
                        "subscription_plan_id": str(plan.id),
                        "is_renewal": "1",
                    },
                }
            },
        }

        response = await _deliver(client, event)
        assert response.status_code == 200
        session.expire_all()
        row = await _subscription(session, company)
        assert row.status == "active"
        assert as_utc(row.current_period_end) > old_end
        renewed_end = row.current_period_end

        replay = await _deliver(client, event)
        assert replay.status_code == 200
        session.expire_all()
        row = await _subscription(session, company)
        assert row.current_period_end == renewed_end

    @pytest.mark.asyncio
    async def test_payment_failed_marks_past_due(self, client, factory, session):
        company = await factory.company()
        event = {
            "id": "evt_4",
            "type": "payment_intent.payment_failed",
            "data": {"object": {"id": "pi_4", "metadata": {"company_id": str(company.id)}}},
        }

        response = await _deliver(client, event)

        assert response.status_code == 200
        await session.refresh(company)
        assert company.subscription_status == "past_due"


# ---------------------------------------------------------------------------
# Cancellation and expiry
# ---------------------------------------------------------------------------

class TestCancelAndExpire:
    @pytest.mark.asyncio
    async def test_cancel_at_period_end(self, client, factory, headers_for, use_gateway):
        company = await factory.company()
        admin = await factory.user(company, "admin@example.com", role="company_admin")
        plan = await factory.plan()
        await _activate(client, use_gateway, company, plan)

        response = await client.post(
            "/api/v1/subscription/cancel-subscription", headers=headers_for(admin), json={"at_period_end": True}
        )

        assert response.status_code == 200
        assert response.json()["cancel_at_period_end"] is True
        assert response.json()["status"] == "active"

    @pytest.mark.asyncio
    async def test_cancel_immediately_suspends_company(self, client, factory, session, headers_for, use_gateway):
        company = await factory.company()
        admin = await factory.user(company, "admin@example.com", role="company_admin")
        plan = await factory.plan()
        await _activate(client, use_gateway, company, plan)

        response = await client.post(
            "/api/v1/subscription/cancel-subscription", headers=headers_for(admin), json={"at_period_end": False}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "canceled"
        assert response.json()["canceled_at"] is not None
        await session.refresh(company)
        assert company.subscription_status == "canceled"
        assert company.status == "suspended"

    @pytest.mark.asyncio
    async def test_cancel_without_subscription(self, client, factory, headers_for):
        company = await factory.company()
        admin = await factory.user(company, "admin@example.com", role="company_admin")
        response = await client.post(
            "/api/v1/subscription/cancel-subscription", headers=headers_for(admin), json={}
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_expire_lapsed(self, factory, session):
        plan = await factory.plan()
        now = datetime(2026, 6, 1, tzinfo=timezone.utc)
        lapsed = await factory.company("Lapsed")
        leaving = await factory.company("Leaving")
        current = await factory.company("Current")
        for company, end, at_end in (
            (lapsed, now - timedelta(days=1), False),
            (leaving, now - timedelta(hours=1), True),
            (current, now + timedelta(days=10), False),
        ):
            session.add(
                Subscription(
                    company_id=company.id,
                    plan_id=plan.id,
                    status="active",
                    current_period_start=end - timedelta(days=30),
                    current_period_end=end,
                    cancel_at_period_end=at_end,
                )
            )
        await session.commit()

        assert await expire_lapsed(session, now=now) == 2

        assert (await _subscription(session, lapsed)).status == "expired"
        assert (await _subscription(session, leaving)).status == "canceled"
        assert (await _subscription(session, current)).status == "active"
        assert lapsed.subscription_status == "canceled"
        assert current.subscription_status == "active"


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

class TestPlans:
    @pytest.mark.asyncio
    async def test_public_list_shows_active_only(self, client, factory):
        await factory.plan("Standard")
        await factory.plan("Legacy", is_active=False)

        response = await client.get("/api/v1/subscription-plans")

        assert response.status_code == 200
        assert [p["name"] for p in response.json()["data"]] == ["Standard"]

    @pytest.mark.asyncio
    async def test_create_and_update(self, client, factory, headers_for):
        root = await factory.super_admin()
        created = await client.post(
            "/api/v1/subscription-plans",
            headers=headers_for(root),
            json={"name": "Annual", "amount": 49000, "currency": "eur", "interval": "year"},
        )
        assert created.status_code == 201
        assert created.json()["currency"] == "EUR"

        updated = await client.patch(
            f"/api/v1/subscription-plans/{created.json()['id']}",
            headers=headers_for(root),
            json={"is_active": False},
        )
        assert updated.status_code == 200
        assert updated.json()["is_active"] is False
        assert updated.json()["amount"] == 49000

    @pytest.mark.asyncio
    async def test_delete_blocked_while_in_use(self, client, factory, headers_for, use_gateway):
        root = await factory.super_admin()
        company = await factory.company()
        plan = await factory.plan()
        await _activate(client, use_gateway, company, plan)

        response = await client.delete(f"/api/v1/subscription-plans/{plan.id}", headers=headers_for(root))
        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot delete plan with active subscriptions"

    @pytest.mark.asyncio
    async def test_delete_unused(self, client, factory, headers_for):
        root = await factory.super_admin()
        plan = await factory.plan()
        response = await client.delete(f"/api/v1/subscription-plans/{plan.id}", headers=headers_for(root))
        assert response.status_code == 204
