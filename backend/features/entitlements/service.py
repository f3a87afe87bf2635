"""
backend/features/entitlements/service.py

Entitlement gate.

Handles:
- Subscription resolution (get-or-create with the default "free" tier)
- Monthly usage-window rollover
- Admission checks (active flag, monthly quota, estimated script length)
- Usage recording after a successful provider submission
- Tier changes (upgrade, payment-driven plan changes)

Admission is not transactional with usage recording: two concurrent
requests observing usage just under the limit can both be admitted.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Union
import logging

from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from backend.core.database import (
    get_db_session,
    storage_session,
    subscriptions,
    utc_now,
    ensure_utc,
)
from backend.core.errors import (
    AppError,
    LengthLimitExceeded,
    NotFoundError,
    QuotaExceeded,
    StorageError,
    SubscriptionInactiveError,
)
from backend.core.logging import log_event
from backend.core.metrics import admission_denied_total
from backend.features.plans.service import DEFAULT_TIER, parse_tier, plan_for
from backend.models.plan import Plan, PlanTier
from backend.models.subscription import Subscription


logger = logging.getLogger("vidify")

# 150 words per minute
WORDS_PER_SECOND = 2.5

SUBSCRIPTION_PERIOD_DAYS = 30


class DenialReason(str, Enum):
    SUBSCRIPTION_INACTIVE = "subscription_inactive"
    QUOTA_EXCEEDED = "quota_exceeded"
    LENGTH_LIMIT_EXCEEDED = "length_limit_exceeded"


@dataclass(frozen=True)
class AdmissionDecision:
    admitted: bool
    plan_type: str
    current_usage: int
    limit: Optional[int] = None
    estimated_length: Optional[int] = None
    reason: Optional[DenialReason] = None

    def as_error(self) -> Optional[AppError]:
        """Error matching this denial, or None when admitted."""
        if self.admitted:
            return None
        if self.reason == DenialReason.SUBSCRIPTION_INACTIVE:
            return SubscriptionInactiveError(
                "Subscription inactive",
                details="Your subscription is not active",
                extra={
                    "currentUsage": self.current_usage,
                    "limit": self.limit,
                    "planType": self.plan_type,
                },
            )
        if self.reason == DenialReason.QUOTA_EXCEEDED:
            return QuotaExceeded(
                "Monthly limit reached",
                details=(
                    f"You've reached your monthly limit of {self.limit} videos. "
                    "Upgrade your plan for more."
                ),
                extra={
                    "currentUsage": self.current_usage,
                    "limit": self.limit,
                    "planType": self.plan_type,
                },
            )
        return LengthLimitExceeded(
            "Video length limit exceeded",
            details=(
                f"Your plan allows videos up to {self.limit} seconds. "
                "This script is too long."
            ),
            extra={
                "currentUsage": self.current_usage,
                "estimatedLength": self.estimated_length,
                "limit": self.limit,
                "planType": self.plan_type,
            },
        )


def _row_to_subscription(row) -> Subscription:
    return Subscription(
        user_id=row.user_id,
        plan=parse_tier(row.plan),
        active=bool(row.active),
        start_date=ensure_utc(row.start_date),
        end_date=ensure_utc(row.end_date),
        videos_generated=int(row.videos_generated or 0),
        last_reset_date=ensure_utc(row.last_reset_date),
    )


def get_subscription(user_id: str) -> Optional[Subscription]:
    """Read a subscription without creating one."""
    with storage_session("load subscription") as session:
        row = session.execute(
            select(subscriptions).where(subscriptions.c.user_id == user_id)
        ).first()
        return _row_to_subscription(row) if row else None


def resolve_subscription(user_id: str, now: Optional[datetime] = None) -> Subscription:
    """
    Fetch the user's subscription, creating a default one on first touch.

    The default is an active "free" subscription starting now, with an
    empty usage window.

    Raises:
        StorageError: If the store is unavailable
    """
    existing = get_subscription(user_id)
    if existing:
        return existing

    now = now or utc_now()
    try:
        with get_db_session() as session:
            session.execute(
                insert(subscriptions).values(
                    user_id=user_id,
                    plan=DEFAULT_TIER.value,
                    active=True,
                    start_date=now,
                    videos_generated=0,
                    last_reset_date=now,
                    updated_at=now,
                )
            )
        log_event("info", "subscription.created", user_id=user_id, event_type="subscription.created",
                  extra={"plan": DEFAULT_TIER.value})
    except IntegrityError:
        # Concurrent first touch already created it
        pass
    except SQLAlchemyError as e:
        raise StorageError("Storage failure", details="Could not create subscription. Please retry.") from e

    created = get_subscription(user_id)
    if created is None:
        raise NotFoundError("Subscription not found", details=f"No subscription for user {user_id}")
    return created


def rollover_if_needed(subscription: Subscription, now: Optional[datetime] = None) -> Subscription:
    """
    Reset the usage counter when the calendar month changed since last reset.

    Idempotent within a month: a second call in the same (year, month) is a
    no-op.
    """
    now = ensure_utc(now or utc_now())
    last = ensure_utc(subscription.last_reset_date)
    if (now.year, now.month) == (last.year, last.month):
        return subscription

    with storage_session("reset monthly usage") as session:
        session.execute(
            update(subscriptions)
            .where(subscriptions.c.user_id == subscription.user_id)
            .values(videos_generated=0, last_reset_date=now, updated_at=now)
        )
    logger.info(
        "subscription.rollover",
        extra={"user_id": subscription.user_id, "event_type": "subscription.rollover"},
    )
    return subscription.model_copy(update={"videos_generated": 0, "last_reset_date": now})


def current_subscription(user_id: str, now: Optional[datetime] = None) -> Subscription:
    """resolve_subscription() followed by rollover_if_needed()."""
    return rollover_if_needed(resolve_subscription(user_id, now=now), now=now)


def count_words(script: Optional[str]) -> int:
    return len((script or "").split())


def estimate_duration_seconds(script: Optional[str]) -> float:
    """Estimated spoken duration of a script at 150 words per minute."""
    return count_words(script) / WORDS_PER_SECOND


def admit(subscription: Subscription, plan: Plan, script: Optional[str] = None) -> AdmissionDecision:
    """
    Decide whether a generation request may proceed.

    Checks, in order: active flag, monthly quota, estimated script length.
    The length check is a word-count heuristic, not a guarantee on the
    final media duration.
    """
    usage = subscription.videos_generated
    plan_type = plan.tier.value

    if not subscription.active:
        return AdmissionDecision(
            admitted=False,
            plan_type=plan_type,
            current_usage=usage,
            limit=plan.monthly_limit,
            reason=DenialReason.SUBSCRIPTION_INACTIVE,
        )

    if usage >= plan.monthly_limit:
        return AdmissionDecision(
            admitted=False,
            plan_type=plan_type,
            current_usage=usage,
            limit=plan.monthly_limit,
            reason=DenialReason.QUOTA_EXCEEDED,
        )

    estimated = estimate_duration_seconds(script)
    # A script estimated at exactly the limit is already too long
    if estimated >= plan.video_length_limit:
        return AdmissionDecision(
            admitted=False,
            plan_type=plan_type,
            current_usage=usage,
            limit=plan.video_length_limit,
            estimated_length=round(estimated),
            reason=DenialReason.LENGTH_LIMIT_EXCEEDED,
        )

    return AdmissionDecision(
        admitted=True,
        plan_type=plan_type,
        current_usage=usage,
        limit=plan.monthly_limit,
        estimated_length=round(estimated),
    )


def enforce_admission(subscription: Subscription, plan: Plan, script: Optional[str] = None) -> AdmissionDecision:
    """admit(), raising the matching AppError on denial."""
    decision = admit(subscription, plan, script)
    error = decision.as_error()
    if error is not None:
        admission_denied_total.inc(labels={"reason": decision.reason.value})
        log_event(
            "warning",
            "admission.denied",
            user_id=subscription.user_id,
            event_type="admission.denied",
            error_code=error.code,
            extra={"current_usage": decision.current_usage, "limit": decision.limit, "plan": decision.plan_type},
        )
        raise error
    return decision


def record_usage(subscription: Subscription, now: Optional[datetime] = None) -> None:
    """
    Count one generated video against the current window.

    The increment is applied in SQL so overlapping calls never lose a count.
    """
    now = now or utc_now()
    with storage_session("record usage") as session:
        session.execute(
            update(subscriptions)
            .where(subscriptions.c.user_id == subscription.user_id)
            .values(
                videos_generated=subscriptions.c.videos_generated + 1,
                updated_at=now,
            )
        )


def change_plan(
    user_id: str,
    tier: Union[str, PlanTier],
    *,
    active: bool = True,
    end_date: Optional[datetime] = None,
    payment_info: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Subscription:
    """Set a user's tier (upsert). Usage counters are left untouched."""
    plan_tier = parse_tier(tier)
    now = now or utc_now()
    resolve_subscription(user_id, now=now)

    values: Dict[str, Any] = {
        "plan": plan_tier.value,
        "active": active,
        "start_date": now,
        "end_date": end_date,
        "updated_at": now,
    }
    if payment_info is not None:
        values["payment_info"] = payment_info

    with storage_session("change plan") as session:
        session.execute(
            update(subscriptions)
            .where(subscriptions.c.user_id == user_id)
            .values(**values)
        )
    log_event("info", "subscription.plan_changed", user_id=user_id, event_type="subscription.plan_changed",
              extra={"plan": plan_tier.value, "active": active})
    return get_subscription(user_id)


def upgrade_subscription(user_id: str, tier: Union[str, PlanTier], now: Optional[datetime] = None) -> Subscription:
    """Move a user to `tier` for a 30-day period starting now."""
    now = now or utc_now()
    return change_plan(
        user_id,
        tier,
        active=True,
        end_date=now + timedelta(days=SUBSCRIPTION_PERIOD_DAYS),
        now=now,
    )


def set_active(user_id: str, active: bool, now: Optional[datetime] = None) -> None:
    now = now or utc_now()
    with storage_session("update subscription status") as session:
        session.execute(
            update(subscriptions)
            .where(subscriptions.c.user_id == user_id)
            .values(active=active, updated_at=now)
        )


def subscription_summary(subscription: Subscription) -> Dict[str, Any]:
    """Client-facing view of a subscription and its plan features."""
    plan = plan_for(subscription.plan)
    return {
        "plan": subscription.plan.value,
        "planName": plan.name,
        "active": subscription.active,
        "startDate": subscription.start_date.isoformat(),
        "endDate": subscription.end_date.isoformat() if subscription.end_date else None,
        "usage": {
            "videosGenerated": subscription.videos_generated,
            "videosRemaining": max(0, plan.monthly_limit - subscription.videos_generated),
            "monthlyLimit": plan.monthly_limit,
            "lastResetDate": subscription.last_reset_date.isoformat(),
        },
        "features": {
            "videoLengthLimit": plan.video_length_limit,
            "videoQuality": plan.video_quality,
            "customizationOptions": list(plan.customization_options),
            "priority": plan.priority,
            "watermark": plan.watermark,
        },
    }
