"""
Stripe implementation of BillingProvider.

Checkout uses inline price_data built from the plan catalog, so no Stripe
Price objects have to be provisioned per environment.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

import stripe

from backend.features.billing.provider import (
    BillingProviderError,
    BillingWebhookError,
    BillingWebhookResult,
    CheckoutLineItem,
    CheckoutSession,
)


class StripeProvider:
    def __init__(self, secret_key: Optional[str], webhook_secret: Optional[str] = None):
        if not secret_key:
            raise BillingProviderError("STRIPE_SECRET_KEY not configured")
        self.webhook_secret = webhook_secret
        stripe.api_key = secret_key

    def ensure_customer(self, user_id: str, email: Optional[str] = None, name: Optional[str] = None) -> str:
        params: Dict[str, Any] = {"metadata": {"user_id": user_id}}
        if email:
            params["email"] = email
        if name:
            params["name"] = name
        try:
            return stripe.Customer.create(**params).id
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe customer creation failed: {e.user_message or type(e).__name__}") from e

    def create_checkout_session(
        self,
        customer_id: str,
        item: CheckoutLineItem,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> CheckoutSession:
        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                payment_method_types=["card"],
                line_items=[{
                    "price_data": {
                        "currency": item.currency,
                        "product_data": {"name": item.name, "description": item.description},
                        "unit_amount": item.unit_amount_cents,
                        "recurring": {"interval": item.interval},
                    },
                    "quantity": 1,
                }],
                mode="subscription",
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata or {},
                subscription_data={"metadata": metadata or {}},
            )
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe checkout session creation failed: {e.user_message or type(e).__name__}") from e
        return CheckoutSession(session_id=session.id, url=session.url)

    def handle_webhook(self, headers: Mapping[str, str], body: bytes) -> BillingWebhookResult:
        if not self.webhook_secret:
            raise BillingWebhookError("STRIPE_WEBHOOK_SECRET not configured")
        lowered = {k.lower(): v for k, v in headers.items()}
        signature = lowered.get("stripe-signature")
        if not signature:
            raise BillingWebhookError("Missing stripe-signature header")
        try:
            event = stripe.Webhook.construct_event(body, signature, self.webhook_secret)
        except ValueError as e:
            raise BillingWebhookError("Invalid payload") from e
        except stripe.SignatureVerificationError as e:
            raise BillingWebhookError("Invalid signature") from e
        return parse_event(event.to_dict() if hasattr(event, "to_dict") else dict(event))


def parse_event(event: Dict[str, Any]) -> BillingWebhookResult:
    """Reduce a Stripe event dict to a BillingWebhookResult."""
    event_type = event["type"]
    data = (event.get("data") or {}).get("object") or {}
    metadata = data.get("metadata") or {}

    subscription_id = None
    status = None
    period_end = None
    if event_type.startswith("customer.subscription."):
        subscription_id = data.get("id")
        status = data.get("status")
        if data.get("current_period_end"):
            period_end = datetime.fromtimestamp(int(data["current_period_end"]), tz=timezone.utc)
    elif event_type == "checkout.session.completed":
        subscription_id = data.get("subscription")
        status = "active" if data.get("payment_status") in (None, "paid", "no_payment_required") else data.get("payment_status")

    return BillingWebhookResult(
        event_id=event["id"],
        event_type=event_type,
        user_id=metadata.get("userId") or metadata.get("user_id"),
        customer_id=data.get("customer"),
        subscription_id=subscription_id,
        plan_id=metadata.get("planId") or metadata.get("plan_id"),
        status=status,
        current_period_end=period_end,
        metadata=dict(metadata),
    )
