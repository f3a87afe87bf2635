"""
Payment API routes (Stripe).

- POST /api/payments/create-checkout-session  Hosted checkout for a paid plan
- POST /api/payments/webhook                  Stripe events (signature-verified)
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from backend.core.auth import get_current_user_id
from backend.core.errors import ValidationError
from backend.features.billing.provider import BillingProvider, BillingWebhookError
from backend.features.billing.service import get_billing_provider, process_webhook_event, start_checkout

router = APIRouter(prefix="/api/payments", tags=["payments"])


class CheckoutRequest(BaseModel):
    planId: str = Field(..., min_length=1)


@router.post("/create-checkout-session")
def create_checkout_session(
    body: CheckoutRequest,
    user_id: str = Depends(get_current_user_id),
    provider: Optional[BillingProvider] = Depends(get_billing_provider),
):
    return start_checkout(user_id, body.planId, provider)


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    provider: Optional[BillingProvider] = Depends(get_billing_provider),
):
    body = await request.body()
    try:
        return process_webhook_event(dict(request.headers), body, provider)
    except BillingWebhookError as e:
        raise ValidationError("Webhook Error", details=str(e), code="invalid_webhook_signature")
