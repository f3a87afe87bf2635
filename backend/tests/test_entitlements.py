"""Entitlement gate: provisioning, monthly rollover, admission and usage."""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from backend.core.database import get_db_session, subscriptions
from backend.core.errors import LengthLimitExceeded, QuotaExceeded, SubscriptionInactiveError
from backend.core.metrics import admission_denied_total
from backend.features.entitlements.service import (
    DenialReason,
    admit,
    current_subscription,
    enforce_admission,
    estimate_duration_seconds,
    get_subscription,
    record_usage,
    resolve_subscription,
    rollover_if_needed,
    subscription_summary,
    upgrade_subscription,
)
from backend.features.plans.service import plan_for
from backend.models.plan import PlanTier

JAN = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def _words(n: int) -> str:
    return " ".join(["word"] * n)


def _set_usage(user_id: str, count: int, **values):
    with get_db_session() as session:
        session.execute(
            update(subscriptions)
            .where(subscriptions.c.user_id == user_id)
            .values(videos_generated=count, **values)
        )


class TestResolveSubscription:
    def test_first_touch_creates_active_free_subscription(self):
        assert get_subscription("u1") is None
        sub = resolve_subscription("u1", now=JAN)
        assert sub.plan == PlanTier.FREE
        assert sub.active is True
        assert sub.videos_generated == 0
        assert sub.start_date == JAN
        assert sub.last_reset_date == JAN

    def test_second_call_returns_same_record(self):
        first = resolve_subscription("u1", now=JAN)
        second = resolve_subscription("u1", now=JAN + timedelta(days=3))
        assert second == first


class TestRollover:
    def test_new_month_resets_usage(self):
        resolve_subscription("u1", now=JAN)
        _set_usage("u1", 4)
        feb = JAN + timedelta(days=20)

        sub = rollover_if_needed(get_subscription("u1"), now=feb)

        assert sub.videos_generated == 0
        assert sub.last_reset_date == feb
        assert get_subscription("u1").videos_generated == 0

    def test_same_month_leaves_usage_alone(self):
        resolve_subscription("u1", now=JAN)
        _set_usage("u1", 4)
        later = JAN + timedelta(days=10)

        sub = rollover_if_needed(get_subscription("u1"), now=later)

        assert sub.videos_generated == 4
        assert sub.last_reset_date == JAN

    def test_same_month_number_in_another_year_still_resets(self):
        resolve_subscription("u1", now=JAN)
        _set_usage("u1", 2)
        next_jan = JAN.replace(year=2027)
        assert rollover_if_needed(get_subscription("u1"), now=next_jan).videos_generated == 0

    def test_idempotent_within_month(self):
        resolve_subscription("u1", now=JAN)
        _set_usage("u1", 3)
        feb = datetime(2026, 2, 1, tzinfo=timezone.utc)
        once = rollover_if_needed(get_subscription("u1"), now=feb)
        record_usage(once, now=feb)
        twice = rollover_if_needed(get_subscription("u1"), now=feb + timedelta(hours=5))
        assert twice.videos_generated == 1


class TestAdmit:
    def test_denies_inactive_subscription(self):
        resolve_subscription("u1", now=JAN)
        _set_usage("u1", 0, active=False)
        decision = admit(get_subscription("u1"), plan_for("free"), _words(10))
        assert not decision.admitted
        assert decision.reason == DenialReason.SUBSCRIPTION_INACTIVE

    @pytest.mark.parametrize("script", ["", _words(1), _words(10)])
    def test_denies_at_quota_regardless_of_script(self, script):
        resolve_subscription("u1", now=JAN)
        _set_usage("u1", 5)
        decision = admit(get_subscription("u1"), plan_for("free"), script)
        assert not decision.admitted
        assert decision.reason == DenialReason.QUOTA_EXCEEDED
        assert decision.current_usage == 5
        assert decision.limit == 5

    def test_seventy_five_words_is_thirty_seconds(self):
        assert estimate_duration_seconds(_words(75)) == 30

    def test_seventy_five_words_denied_on_free(self):
        sub = resolve_subscription("u1", now=JAN)
        decision = admit(sub, plan_for("free"), _words(75))
        assert not decision.admitted
        assert decision.reason == DenialReason.LENGTH_LIMIT_EXCEEDED
        assert decision.estimated_length == 30
        assert decision.limit == 30

    def test_seventy_five_words_admitted_on_basic(self):
        sub = resolve_subscription("u1", now=JAN)
        assert admit(sub, plan_for("basic"), _words(75)).admitted

    def test_short_script_admitted_on_free(self):
        sub = resolve_subscription("u1", now=JAN)
        decision = admit(sub, plan_for("free"), _words(74))
        assert decision.admitted
        assert decision.reason is None


class TestEnforceAdmission:
    def test_quota_error_carries_usage_and_limit(self):
        resolve_subscription("u1", now=JAN)
        _set_usage("u1", 5)
        with pytest.raises(QuotaExceeded) as exc:
            enforce_admission(get_subscription("u1"), plan_for("free"), "hello")
        assert exc.value.status_code == 403
        assert exc.value.extra == {"currentUsage": 5, "limit": 5, "planType": "free"}
        assert admission_denied_total.value({"reason": "quota_exceeded"}) == 1

    def test_length_error_carries_estimate(self):
        sub = resolve_subscription("u1", now=JAN)
        with pytest.raises(LengthLimitExceeded) as exc:
            enforce_admission(sub, plan_for("free"), _words(100))
        assert exc.value.extra["estimatedLength"] == 40
        assert exc.value.extra["limit"] == 30
        assert exc.value.extra["currentUsage"] == 0

    def test_inactive_error(self):
        resolve_subscription("u1", now=JAN)
        _set_usage("u1", 0, active=False)
        with pytest.raises(SubscriptionInactiveError) as exc:
            enforce_admission(get_subscription("u1"), plan_for("free"), "hi")
        assert exc.value.extra == {"currentUsage": 0, "limit": 5, "planType": "free"}


def test_record_usage_increments_by_one():
    sub = resolve_subscription("u1", now=JAN)
    record_usage(sub, now=JAN)
    record_usage(sub, now=JAN)
    assert get_subscription("u1").videos_generated == 2


def test_current_subscription_rolls_over():
    resolve_subscription("u1", now=JAN)
    _set_usage("u1", 5)
    assert current_subscription("u1", now=datetime(2026, 3, 2, tzinfo=timezone.utc)).videos_generated == 0


def test_upgrade_sets_thirty_day_period_and_keeps_usage():
    resolve_subscription("u1", now=JAN)
    _set_usage("u1", 3)
    sub = upgrade_subscription("u1", "premium", now=JAN)
    assert sub.plan == PlanTier.PREMIUM
    assert sub.active is True
    assert sub.end_date == JAN + timedelta(days=30)
    assert sub.videos_generated == 3


def test_summary_floors_remaining_at_zero():
    resolve_subscription("u1", now=JAN)
    _set_usage("u1", 7)
    summary = subscription_summary(get_subscription("u1"))
    assert summary["usage"]["videosRemaining"] == 0
    assert summary["usage"]["monthlyLimit"] == 5
    assert summary["features"]["watermark"] is True
