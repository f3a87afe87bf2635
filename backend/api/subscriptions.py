"""
Subscription API routes.

- GET  /api/subscriptions          Caller's subscription, usage and features
- GET  /api/subscriptions/plans    Static plan catalog
- POST /api/subscriptions/upgrade  Switch tier for a 30-day period
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from backend.core.auth import get_current_user_id
from backend.core.errors import NotFoundError, ValidationError
from backend.features.entitlements.service import (
    current_subscription,
    subscription_summary,
    upgrade_subscription,
)
from backend.features.plans.service import list_plans, parse_tier

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


class UpgradeRequest(BaseModel):
    plan: str = Field(..., min_length=1)


@router.get("")
def get_subscription(user_id: str = Depends(get_current_user_id)):
    return {"subscription": subscription_summary(current_subscription(user_id))}


@router.get("/plans")
def get_plans():
    return {"plans": [plan.to_public_dict() for plan in list_plans()]}


@router.post("/upgrade")
def upgrade(body: UpgradeRequest, user_id: str = Depends(get_current_user_id)):
    try:
        tier = parse_tier(body.plan)
    except NotFoundError:
        raise ValidationError("Invalid plan", details=f"The plan '{body.plan}' does not exist")
    subscription = upgrade_subscription(user_id, tier)
    return {
        "message": f"Subscription upgraded to {tier.value}",
        "subscription": subscription_summary(subscription),
    }
