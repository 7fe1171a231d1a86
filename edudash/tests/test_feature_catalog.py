"""Tests for the tier/feature catalog."""

import pytest

from edudash.features.catalog.service import (
    AI_USAGE_LIMITS,
    FEATURE_CATALOG,
    TIER_FEATURES,
    all_feature_ids,
    effective_required_tier,
    features_for_tier,
    get_feature,
    is_known_feature,
    is_metered,
    monthly_limit_for,
    plan_name_for,
    required_tier,
)
from edudash.models.feature import Tier


def test_catalog_has_seven_features():
    assert len(all_feature_ids()) == 7
    assert set(all_feature_ids()) == set(FEATURE_CATALOG)


@pytest.mark.parametrize(
    "feature_id,tier,metered",
    [
        ("ai_lesson_generator", Tier.FREE, True),
        ("homework_grader", Tier.PREMIUM, True),
        ("stem_activities", Tier.PREMIUM, False),
        ("progress_analysis", Tier.PREMIUM, False),
        ("class_management", Tier.FREE, False),
        ("basic_lessons", Tier.FREE, False),
        ("student_enrollment", Tier.FREE, False),
    ],
)
def test_feature_descriptors(feature_id, tier, metered):
    assert required_tier(feature_id) == tier
    assert is_metered(feature_id) is metered
    assert get_feature(feature_id).required_tier == tier


def test_unknown_feature_is_not_found_but_open():
    assert required_tier("teleporter") is None
    assert effective_required_tier("teleporter") == Tier.FREE
    assert is_metered("teleporter") is False
    assert is_known_feature("teleporter") is False
    assert get_feature("teleporter") is None


def test_free_features_are_in_every_tier():
    free = features_for_tier(Tier.FREE)
    for tier in Tier:
        assert set(free) <= set(features_for_tier(tier))


def test_premium_includes_stem_activities():
    assert "stem_activities" in features_for_tier(Tier.PREMIUM)
    assert "stem_activities" not in features_for_tier(Tier.FREE)


def test_premium_and_enterprise_lists_match():
    assert set(TIER_FEATURES[Tier.PREMIUM]) == set(TIER_FEATURES[Tier.ENTERPRISE])


def test_monthly_limits():
    assert monthly_limit_for(Tier.FREE) == 5
    assert monthly_limit_for(Tier.PREMIUM) == 100
    assert monthly_limit_for(Tier.ENTERPRISE) == -1
    assert monthly_limit_for(Tier.FREE, role="superadmin") == -1


def test_plan_names():
    assert plan_name_for(Tier.FREE) == "Free Plan"
    assert plan_name_for(Tier.ENTERPRISE) == "Enterprise Plan"
    assert plan_name_for(Tier.PREMIUM, role="superadmin") == "SuperAdmin (Unlimited)"


def test_catalog_is_immutable():
    with pytest.raises(TypeError):
        AI_USAGE_LIMITS[Tier.FREE] = 50
    with pytest.raises(TypeError):
        FEATURE_CATALOG["new_feature"] = None


def test_features_for_tier_returns_copy():
    features = features_for_tier(Tier.FREE)
    features.append("stem_activities")
    assert "stem_activities" not in features_for_tier(Tier.FREE)
