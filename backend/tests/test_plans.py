import pytest

from backend.core.errors import NotFoundError
from backend.features.plans.service import DEFAULT_TIER, PLANS, is_known_tier, list_plans, parse_tier, plan_for
from backend.models.plan import PlanTier


def test_catalog_has_three_tiers_in_order():
    assert [p.tier for p in list_plans()] == [PlanTier.FREE, PlanTier.BASIC, PlanTier.PREMIUM]


def test_free_plan_limits():
    free = plan_for("free")
    assert free.monthly_limit == 5
    assert free.video_length_limit == 30
    assert free.video_quality == "standard"
    assert free.watermark is True
    assert free.monthly_price_cents == 0


def test_paid_plans_have_no_watermark_and_a_price():
    assert plan_for("basic").watermark is False
    assert plan_for("basic").monthly_price_cents == 999
    assert plan_for("premium").video_length_limit == 300
    assert plan_for("premium").customization_options == ("basic", "advanced", "professional")


def test_parse_tier_is_case_insensitive():
    assert parse_tier(" Premium ") == PlanTier.PREMIUM
    assert parse_tier(PlanTier.BASIC) == PlanTier.BASIC


def test_unknown_tier_raises_not_found():
    with pytest.raises(NotFoundError) as exc:
        plan_for("enterprise")
    assert exc.value.code == "plan_not_found"
    assert not is_known_tier("enterprise")


def test_catalog_is_read_only():
    with pytest.raises(TypeError):
        PLANS[PlanTier.FREE] = PLANS[PlanTier.PREMIUM]
    with pytest.raises(Exception):
        PLANS[PlanTier.FREE].monthly_limit = 1000


def test_default_tier_is_free():
    assert DEFAULT_TIER == PlanTier.FREE


def test_public_dict_uses_client_field_names():
    body = plan_for("basic").to_public_dict()
    assert body["id"] == "basic"
    assert body["monthlyLimit"] == 30
    assert body["customizationOptions"] == ["basic", "advanced"]
