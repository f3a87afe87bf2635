"""
backend/models/subscription.py

Subscription model: one per user, tracks tier and the monthly usage window.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict

from backend.models.plan import PlanTier


class Subscription(BaseModel):
    """
    A user's subscription record.

    Constraint: `videos_generated` is only meaningful relative to the
    current tier's limit after a rollover check.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    plan: PlanTier = PlanTier.FREE
    active: bool = True
    start_date: datetime
    end_date: Optional[datetime] = None
    videos_generated: int = 0
    last_reset_date: datetime
