"""
backend/features/plans/service.py

Plan catalog.

Static, process-wide table of subscription tiers and their limits.
Pure lookups only: nothing here touches storage.
"""

from types import MappingProxyType
from typing import List, Mapping, Union

from backend.core.errors import NotFoundError
from backend.models.plan import Plan, PlanTier


DEFAULT_TIER = PlanTier.FREE

PLANS: Mapping[PlanTier, Plan] = MappingProxyType({
    PlanTier.FREE: Plan(
        tier=PlanTier.FREE,
        name="Free",
        monthly_limit=5,
        video_length_limit=30,
        video_quality="standard",
        customization_options=("basic",),
        priority="low",
        watermark=True,
    ),
    PlanTier.BASIC: Plan(
        tier=PlanTier.BASIC,
        name="Basic",
        monthly_limit=30,
        video_length_limit=120,
        video_quality="high",
        customization_options=("basic", "advanced"),
        priority="medium",
        watermark=False,
        monthly_price_cents=999,
    ),
    PlanTier.PREMIUM: Plan(
        tier=PlanTier.PREMIUM,
        name="Premium",
        monthly_limit=100,
        video_length_limit=300,
        video_quality="ultra",
        customization_options=("basic", "advanced", "professional"),
        priority="high",
        watermark=False,
        monthly_price_cents=2999,
    ),
})


def parse_tier(tier: Union[str, PlanTier]) -> PlanTier:
    """Coerce a tier name to PlanTier.

    Raises:
        NotFoundError: If the tier is not in the catalog
    """
    if isinstance(tier, PlanTier):
        return tier
    try:
        return PlanTier(str(tier).strip().lower())
    except ValueError:
        raise NotFoundError(
            "Invalid plan",
            details=f"The plan '{tier}' does not exist",
            code="plan_not_found",
        )


def plan_for(tier: Union[str, PlanTier]) -> Plan:
    """Return the Plan for a tier, or raise NotFoundError for unknown tiers."""
    return PLANS[parse_tier(tier)]


def is_known_tier(tier: str) -> bool:
    try:
        parse_tier(tier)
        return True
    except NotFoundError:
        return False


def list_plans() -> List[Plan]:
    """All plans in ascending tier order."""
    return list(PLANS.values())
