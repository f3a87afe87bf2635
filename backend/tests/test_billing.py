"""Stripe checkout and webhook processing (provider faked except where noted)."""
import hashlib
import hmac
import json
import time
from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from backend.core.database import billing_events, get_db_session
from backend.core.metrics import webhook_events_total
from backend.features.billing.provider import BillingWebhookError, BillingWebhookResult
from backend.features.billing.service import get_billing_provider, get_customer_id
from backend.features.billing.stripe_provider import StripeProvider, parse_event
from backend.features.entitlements.service import get_subscription, resolve_subscription

ALICE = {"X-User-Id": "user_alice"}
SIGNED = {"stripe-signature": "valid"}


def _event_rows():
    with get_db_session() as session:
        return session.execute(select(billing_events)).fetchall()


class TestCheckout:
    def test_creates_session_for_paid_plan(self, client, fake_billing):
        response = client.post("/api/payments/create-checkout-session", json={"planId": "basic"}, headers=ALICE)

        assert response.status_code == 200
        assert response.json() == {"sessionId": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}
        sent = fake_billing.sessions[0]
        assert sent["item"].unit_amount_cents == 999
        assert sent["metadata"] == {"userId": "user_alice", "planId": "basic"}
        assert sent["success_url"].endswith("/dashboard?payment=success")
        assert sent["cancel_url"].endswith("/pricing?payment=canceled")
        assert get_customer_id("user_alice") == "cus_1"

    def test_customer_is_reused(self, client, fake_billing):
        client.post("/api/payments/create-checkout-session", json={"planId": "basic"}, headers=ALICE)
        client.post("/api/payments/create-checkout-session", json={"planId": "premium"}, headers=ALICE)
        assert fake_billing.customers == ["cus_1"]
        assert [s["customer_id"] for s in fake_billing.sessions] == ["cus_1", "cus_1"]

    @pytest.mark.parametrize("plan", ["free", "platinum"])
    def test_unpayable_plan_is_400(self, client, fake_billing, plan):
        response = client.post("/api/payments/create-checkout-session", json={"planId": plan}, headers=ALICE)
        assert response.status_code == 400
        assert fake_billing.sessions == []

    def test_billing_disabled_is_503(self, app, client):
        app.dependency_overrides[get_billing_provider] = lambda: None
        response = client.post("/api/payments/create-checkout-session", json={"planId": "basic"}, headers=ALICE)
        assert response.status_code == 503
        assert response.json()["error"]["code"] == "billing_disabled"


class TestWebhook:
    def test_checkout_completed_upgrades_plan(self, client, fake_billing):
        fake_billing.next_event = BillingWebhookResult(
            event_id="evt_1",
            event_type="checkout.session.completed",
            user_id="user_alice",
            customer_id="cus_1",
            subscription_id="sub_1",
            plan_id="premium",
            status="active",
        )

        response = client.post("/api/payments/webhook", content=b"{}", headers=SIGNED)

        assert response.status_code == 200
        assert response.json() == {"received": True}
        sub = get_subscription("user_alice")
        assert sub.plan.value == "premium"
        assert sub.active is True
        assert sub.end_date is not None
        assert _event_rows()[0].processed is True

    def test_duplicate_delivery_is_applied_once(self, client, fake_billing):
        fake_billing.next_event = BillingWebhookResult(
            event_id="evt_1", event_type="checkout.session.completed", user_id="user_alice", plan_id="basic",
            status="active",
        )
        client.post("/api/payments/webhook", content=b"{}", headers=SIGNED)
        response = client.post("/api/payments/webhook", content=b"{}", headers=SIGNED)

        assert response.json() == {"received": True, "duplicate": True}
        assert len(_event_rows()) == 1
        assert webhook_events_total.value(
            {"source": "stripe", "type": "checkout.session.completed", "outcome": "duplicate"}
        ) == 1

    def test_subscription_deleted_reverts_to_free(self, client, fake_billing):
        fake_billing.next_event = BillingWebhookResult(
            event_id="evt_1", event_type="checkout.session.completed", user_id="user_alice", plan_id="basic",
            status="active",
        )
        client.post("/api/payments/webhook", content=b"{}", headers=SIGNED)
        fake_billing.next_event = BillingWebhookResult(
            event_id="evt_2", event_type="customer.subscription.deleted", user_id="user_alice",
        )
        client.post("/api/payments/webhook", content=b"{}", headers=SIGNED)

        assert get_subscription("user_alice").plan.value == "free"

    def test_past_due_subscription_is_deactivated(self, client, fake_billing):
        resolve_subscription("user_alice")
        fake_billing.next_event = BillingWebhookResult(
            event_id="evt_3", event_type="customer.subscription.updated", user_id="user_alice",
            plan_id="basic", status="past_due",
        )
        client.post("/api/payments/webhook", content=b"{}", headers=SIGNED)
        assert get_subscription("user_alice").active is False

    def test_processing_failure_is_acknowledged_and_recorded(self, client, fake_billing):
        fake_billing.next_event = BillingWebhookResult(
            event_id="evt_bad", event_type="checkout.session.completed", user_id="user_alice",
            plan_id="platinum", status="active",
        )
        response = client.post("/api/payments/webhook", content=b"{}", headers=SIGNED)

        assert response.status_code == 200
        assert response.json()["error"] == "Event could not be processed"
        row = _event_rows()[0]
        assert row.processed is False
        assert row.error

    def test_invalid_signature_is_400(self, client, fake_billing):
        response = client.post("/api/payments/webhook", content=b"{}", headers={"stripe-signature": "forged"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_webhook_signature"
        assert _event_rows() == []


class TestStripeProvider:
    SECRET = "whsec_test_secret"

    def _signature(self, payload: str, timestamp: int) -> str:
        digest = hmac.new(self.SECRET.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"

    def _event(self):
        return {
            "id": "evt_real",
            "object": "event",
            "type": "customer.subscription.updated",
            "data": {"object": {
                "id": "sub_9",
                "object": "subscription",
                "customer": "cus_9",
                "status": "active",
                "current_period_end": 1767225600,
                "metadata": {"userId": "user_alice", "planId": "premium"},
            }},
        }

    def test_verified_event_is_parsed(self):
        payload = json.dumps(self._event())
        provider = StripeProvider("sk_test_dummy", self.SECRET)
        result = provider.handle_webhook({"Stripe-Signature": self._signature(payload, int(time.time()))}, payload.encode())

        assert result.event_id == "evt_real"
        assert result.user_id == "user_alice"
        assert result.plan_id == "premium"
        assert result.subscription_id == "sub_9"
        assert result.current_period_end == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_wrong_signature_is_rejected(self):
        payload = json.dumps(self._event())
        provider = StripeProvider("sk_test_dummy", self.SECRET)
        with pytest.raises(BillingWebhookError):
            provider.handle_webhook({"stripe-signature": f"t={int(time.time())},v1=deadbeef"}, payload.encode())

    def test_missing_signature_header(self):
        with pytest.raises(BillingWebhookError):
            StripeProvider("sk_test_dummy", self.SECRET).handle_webhook({}, b"{}")

    def test_parse_checkout_completed(self):
        result = parse_event({
            "id": "evt_c",
            "type": "checkout.session.completed",
            "data": {"object": {
                "customer": "cus_1",
                "subscription": "sub_1",
                "payment_status": "paid",
                "metadata": {"userId": "u", "planId": "basic"},
            }},
        })
        assert result.status == "active"
        assert result.subscription_id == "sub_1"
        assert result.plan_id == "basic"
