"""
Billing service.

Coordinates:
- Stripe customer bookkeeping (billing_customers)
- Checkout sessions for paid plan upgrades
- Webhook processing with idempotency (billing_events)
- Plan changes driven by payment events

Stripe-specific code lives in stripe_provider.py.
"""
import hashlib
import logging
from datetime import timedelta
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from backend.core.config import settings
from backend.core.database import billing_customers, billing_events, get_db_session, storage_session, utc_now
from backend.core.errors import BillingError, NotFoundError, StorageError, ValidationError
from backend.core.logging import log_event
from backend.core.metrics import webhook_events_total
from backend.features.billing.provider import (
    BillingProvider,
    BillingProviderError,
    BillingWebhookResult,
    CheckoutLineItem,
)
from backend.features.entitlements.service import SUBSCRIPTION_PERIOD_DAYS, change_plan, set_active
from backend.features.plans.service import DEFAULT_TIER, plan_for
from backend.features.users.service import get_user

logger = logging.getLogger("vidify")

ACTIVE_STRIPE_STATUSES = ("active", "trialing")


def billing_enabled() -> bool:
    return bool(settings.STRIPE_SECRET_KEY)


def get_billing_provider() -> Optional[BillingProvider]:
    """FastAPI dependency: the Stripe provider, or None when billing is off."""
    if not billing_enabled():
        return None
    from backend.features.billing.stripe_provider import StripeProvider

    return StripeProvider(settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET)


def _require_provider(provider: Optional[BillingProvider]) -> BillingProvider:
    if provider is None:
        raise BillingError(
            "Billing disabled",
            details="Payments are not configured on this server",
            code="billing_disabled",
            status_code=503,
        )
    return provider


def get_customer_id(user_id: str) -> Optional[str]:
    with storage_session("load billing customer") as session:
        row = session.execute(
            select(billing_customers.c.stripe_customer_id).where(billing_customers.c.user_id == user_id)
        ).first()
        return row[0] if row else None


def user_for_customer(customer_id: str) -> Optional[str]:
    with storage_session("load billing customer") as session:
        row = session.execute(
            select(billing_customers.c.user_id).where(billing_customers.c.stripe_customer_id == customer_id)
        ).first()
        return row[0] if row else None


def ensure_customer_for_user(user_id: str, provider: BillingProvider) -> str:
    existing = get_customer_id(user_id)
    if existing:
        return existing

    user = get_user(user_id)
    email = user.email if user else None
    name = " ".join(p for p in ((user.first_name, user.last_name) if user else ()) if p) or None
    customer_id = provider.ensure_customer(user_id, email=email, name=name)
    try:
        with get_db_session() as session:
            session.execute(insert(billing_customers).values(user_id=user_id, stripe_customer_id=customer_id))
    except IntegrityError:
        # Concurrent checkout already stored one
        return get_customer_id(user_id) or customer_id
    except SQLAlchemyError as e:
        raise StorageError("Storage failure", details="Could not save billing customer. Please retry.") from e
    return customer_id


def start_checkout(user_id: str, plan_id: str, provider: Optional[BillingProvider]) -> Dict[str, str]:
    """
    Create a hosted checkout session for a paid plan.

    Raises:
        ValidationError: Unknown or free plan
        BillingError: Billing disabled (503) or Stripe failure
    """
    try:
        plan = plan_for(plan_id)
    except NotFoundError:
        raise ValidationError("Invalid plan", details=f"The plan '{plan_id}' does not exist")
    if plan.monthly_price_cents <= 0:
        raise ValidationError("Invalid plan", details=f"The {plan.name} plan does not require payment")

    billing = _require_provider(provider)
    item = CheckoutLineItem(
        name=f"{plan.name} Plan",
        description=(
            f"Up to {plan.monthly_limit} videos per month, "
            f"{plan.video_length_limit} seconds max length"
        ),
        unit_amount_cents=plan.monthly_price_cents,
    )
    frontend = settings.FRONTEND_URL.rstrip("/")
    try:
        customer_id = ensure_customer_for_user(user_id, billing)
        session = billing.create_checkout_session(
            customer_id,
            item,
            success_url=f"{frontend}/dashboard?payment=success",
            cancel_url=f"{frontend}/pricing?payment=canceled",
            metadata={"userId": user_id, "planId": plan.tier.value},
        )
    except BillingProviderError as e:
        log_event("error", "billing.checkout_failed", user_id=user_id, error_code="billing_error",
                  extra={"plan": plan.tier.value, "error": str(e)})
        raise BillingError("Failed to create checkout session", details="Payment provider error. Please retry.") from e

    log_event("info", "billing.checkout_created", user_id=user_id, event_type="billing.checkout_created",
              extra={"plan": plan.tier.value})
    return {"sessionId": session.session_id, "url": session.url}


def _claim_event(result: BillingWebhookResult, body: bytes) -> bool:
    """Record the event id. False when it was already recorded (duplicate delivery)."""
    payload_hash = hashlib.sha256(body).hexdigest()
    with storage_session("record billing event") as session:
        existing = session.execute(
            select(billing_events.c.id).where(billing_events.c.stripe_event_id == result.event_id)
        ).first()
        if existing:
            return False
    try:
        with get_db_session() as session:
            session.execute(
                insert(billing_events).values(
                    stripe_event_id=result.event_id,
                    event_type=result.event_type,
                    payload_hash=payload_hash,
                    processed=False,
                )
            )
    except IntegrityError:
        return False
    except SQLAlchemyError as e:
        raise StorageError("Storage failure", details="Could not record billing event. Please retry.") from e
    return True


def _resolve_user(result: BillingWebhookResult) -> Optional[str]:
    if result.user_id:
        return result.user_id
    if result.customer_id:
        return user_for_customer(result.customer_id)
    return None


def apply_billing_event(result: BillingWebhookResult) -> str:
    """Apply a verified event to the user's subscription. Returns the outcome label."""
    user_id = _resolve_user(result)
    if not user_id:
        logger.warning("billing.unknown_user", extra={"event_type": result.event_type})
        return "unmatched"

    now = utc_now()
    payment_info = {
        "stripeCustomerId": result.customer_id,
        "stripeSubscriptionId": result.subscription_id,
    }

    if result.event_type == "checkout.session.completed":
        if not result.plan_id:
            return "unmatched"
        change_plan(
            user_id,
            result.plan_id,
            active=result.status in ACTIVE_STRIPE_STATUSES,
            end_date=result.current_period_end or now + timedelta(days=SUBSCRIPTION_PERIOD_DAYS),
            payment_info=payment_info,
            now=now,
        )
        return "applied"

    if result.event_type == "customer.subscription.updated":
        active = result.status in ACTIVE_STRIPE_STATUSES
        if active and result.plan_id:
            change_plan(user_id, result.plan_id, active=True, end_date=result.current_period_end,
                        payment_info=payment_info, now=now)
        else:
            set_active(user_id, active, now=now)
        return "applied"

    if result.event_type == "customer.subscription.deleted":
        change_plan(user_id, DEFAULT_TIER, active=True, end_date=None, payment_info={}, now=now)
        return "applied"

    return "ignored"


def process_webhook_event(headers: Mapping[str, str], body: bytes, provider: Optional[BillingProvider]) -> Dict[str, Any]:
    """
    Verify, deduplicate and apply one Stripe webhook delivery.

    Once the signature is verified the delivery is always acknowledged;
    processing failures are stored on the billing_events row and logged.

    Raises:
        BillingError: Billing disabled
        BillingWebhookError: Signature verification failed
    """
    billing = _require_provider(provider)
    result = billing.handle_webhook(headers, body)

    if not _claim_event(result, body):
        webhook_events_total.inc(labels={"source": "stripe", "type": result.event_type, "outcome": "duplicate"})
        return {"received": True, "duplicate": True}

    try:
        outcome = apply_billing_event(result)
    except Exception as e:
        with storage_session("record billing event") as session:
            session.execute(
                update(billing_events)
                .where(billing_events.c.stripe_event_id == result.event_id)
                .values(error=str(e)[:500])
            )
        webhook_events_total.inc(labels={"source": "stripe", "type": result.event_type, "outcome": "error"})
        logger.error("billing.webhook_failed", exc_info=True, extra={"event_type": result.event_type})
        return {"received": True, "error": "Event could not be processed"}

    with storage_session("record billing event") as session:
        session.execute(
            update(billing_events)
            .where(billing_events.c.stripe_event_id == result.event_id)
            .values(processed=True, processed_at=utc_now())
        )
    webhook_events_total.inc(labels={"source": "stripe", "type": result.event_type, "outcome": outcome})
    log_event("info", "billing.webhook", event_type=result.event_type, user_id=result.user_id,
              extra={"outcome": outcome})
    return {"received": True}
