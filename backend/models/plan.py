"""
backend/models/plan.py

Plan model: an immutable entitlement bundle keyed by tier.
"""

from enum import Enum
from typing import Tuple
from pydantic import BaseModel, ConfigDict


class PlanTier(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"


class Plan(BaseModel):
    """
    Plan represents a subscription tier and its limits.

    Plans are process-wide configuration: defined once at import time,
    never persisted and never mutated.
    """
    model_config = ConfigDict(frozen=True)

    tier: PlanTier
    name: str
    monthly_limit: int
    video_length_limit: int  # seconds
    video_quality: str
    customization_options: Tuple[str, ...]
    priority: str
    watermark: bool
    monthly_price_cents: int = 0

    def to_public_dict(self) -> dict:
        return {
            "id": self.tier.value,
            "name": self.name,
            "monthlyLimit": self.monthly_limit,
            "videoLengthLimit": self.video_length_limit,
            "videoQuality": self.video_quality,
            "customizationOptions": list(self.customization_options),
            "priority": self.priority,
            "watermark": self.watermark,
        }
