"""
edudash/features/subscriptions/access.py

Access evaluator: pure decisions over a subscription state and usage period.

Nothing here touches storage or raises. Missing data yields the most
restrictive answer, except that uncataloged feature ids are always allowed.
"""

from typing import List, Optional

from edudash.features.catalog.service import (
    FEATURE_CATALOG,
    is_known_feature,
    is_metered,
    is_superadmin,
    required_tier,
)
from edudash.models.feature import FeatureView, Tier
from edudash.models.subscription import FeatureAccess, SubscriptionState, UsagePeriod


PAID_TIERS = (Tier.PREMIUM, Tier.ENTERPRISE)


def has_access(state: Optional[SubscriptionState], feature_id: str) -> bool:
    feature_tier = required_tier(feature_id)
    if feature_tier is None:
        return True

    if state is not None and is_superadmin(state.role):
        return True

    if state is None or not state.is_active:
        return feature_tier == Tier.FREE

    return feature_id in state.features


def needs_upgrade(state: Optional[SubscriptionState], feature_id: str) -> bool:
    if not is_known_feature(feature_id):
        return False
    return not has_access(state, feature_id) and required_tier(feature_id) in PAID_TIERS


def can_use_feature(
    state: Optional[SubscriptionState],
    usage: Optional[UsagePeriod],
    feature_id: str,
) -> bool:
    """
    Access check plus quota for metered features.

    remaining_usage of -1 (unlimited) counts as available.
    """
    if state is not None and is_superadmin(state.role):
        return True

    if not is_metered(feature_id):
        return has_access(state, feature_id)

    if not has_access(state, feature_id):
        return False

    if usage is None:
        return False

    return usage.remaining_usage != 0


def evaluate_feature(
    state: Optional[SubscriptionState],
    usage: Optional[UsagePeriod],
    feature_id: str,
) -> FeatureAccess:
    metered = is_metered(feature_id)
    return FeatureAccess(
        feature_id=feature_id,
        has_access=has_access(state, feature_id),
        is_premium=required_tier(feature_id) in PAID_TIERS,
        needs_upgrade=needs_upgrade(state, feature_id),
        can_use=can_use_feature(state, usage, feature_id),
        is_metered=metered,
        current_tier=state.tier if state is not None else Tier.FREE,
        usage=usage if metered else None,
    )


def feature_views(state: Optional[SubscriptionState]) -> List[FeatureView]:
    """Whole catalog, each entry flagged enabled when the actor has access."""
    return [
        FeatureView(
            id=feature.id,
            name=feature.name,
            description=feature.description,
            tier=feature.required_tier,
            enabled=has_access(state, feature.id),
        )
        for feature in FEATURE_CATALOG.values()
    ]
