"""
edudash/features/catalog/service.py

Tier/feature catalog.

Handles:
- Feature descriptors (required tier, metered flag)
- Tier feature sets
- Monthly AI usage limits per tier

Fixed at import time; nothing here mutates at runtime.
"""

from types import MappingProxyType
from typing import List, Mapping, Optional

from edudash.models.feature import FeatureDescriptor, Tier
from edudash.models.subscription import UNLIMITED


SUPERADMIN_ROLE = "superadmin"

_FEATURES = (
    FeatureDescriptor(
        id="ai_lesson_generator",
        name="AI Lesson Generator",
        description="Generate lessons using AI",
        required_tier=Tier.FREE,  # free tier, but metered
        is_metered=True,
    ),
    FeatureDescriptor(
        id="homework_grader",
        name="AI Homework Grader",
        description="Automatically grade homework assignments",
        required_tier=Tier.PREMIUM,
        is_metered=True,
    ),
    FeatureDescriptor(
        id="stem_activities",
        name="STEM Activities",
        description="Access to premium STEM activity library",
        required_tier=Tier.PREMIUM,
    ),
    FeatureDescriptor(
        id="progress_analysis",
        name="Progress Analysis",
        description="Advanced analytics and progress tracking",
        required_tier=Tier.PREMIUM,
    ),
    FeatureDescriptor(
        id="class_management",
        name="Class Management",
        description="Basic class and student management",
        required_tier=Tier.FREE,
    ),
    FeatureDescriptor(
        id="basic_lessons",
        name="Basic Lessons",
        description="Access to basic lesson library",
        required_tier=Tier.FREE,
    ),
    FeatureDescriptor(
        id="student_enrollment",
        name="Student Enrollment",
        description="Enroll and manage students",
        required_tier=Tier.FREE,
    ),
)

FEATURE_CATALOG: Mapping[str, FeatureDescriptor] = MappingProxyType({f.id: f for f in _FEATURES})

# Premium and enterprise currently resolve to the same list.
TIER_FEATURES: Mapping[Tier, tuple] = MappingProxyType({
    Tier.FREE: (
        "class_management",
        "basic_lessons",
        "student_enrollment",
        "ai_lesson_generator",
    ),
    Tier.PREMIUM: (
        "ai_lesson_generator",
        "homework_grader",
        "stem_activities",
        "progress_analysis",
        "class_management",
        "basic_lessons",
        "student_enrollment",
    ),
    Tier.ENTERPRISE: (
        "ai_lesson_generator",
        "homework_grader",
        "stem_activities",
        "progress_analysis",
        "class_management",
        "basic_lessons",
        "student_enrollment",
    ),
})

AI_USAGE_LIMITS: Mapping[Tier, int] = MappingProxyType({
    Tier.FREE: 5,
    Tier.PREMIUM: 100,
    Tier.ENTERPRISE: UNLIMITED,
})

PLAN_NAMES: Mapping[Tier, str] = MappingProxyType({
    Tier.FREE: "Free Plan",
    Tier.PREMIUM: "Premium Plan",
    Tier.ENTERPRISE: "Enterprise Plan",
})


def is_superadmin(role: Optional[str]) -> bool:
    return role == SUPERADMIN_ROLE


def get_feature(feature_id: str) -> Optional[FeatureDescriptor]:
    return FEATURE_CATALOG.get(feature_id)


def is_known_feature(feature_id: str) -> bool:
    return get_feature(feature_id) is not None


def required_tier(feature_id: str) -> Optional[Tier]:
    """Minimum tier for a feature, or None when the feature is not cataloged."""
    feature = get_feature(feature_id)
    return feature.required_tier if feature else None


def effective_required_tier(feature_id: str) -> Tier:
    """Like required_tier, but uncataloged features are open (free)."""
    return required_tier(feature_id) or Tier.FREE


def is_metered(feature_id: str) -> bool:
    feature = FEATURE_CATALOG.get(feature_id)
    return bool(feature and feature.is_metered)


def features_for_tier(tier: Tier) -> List[str]:
    return list(TIER_FEATURES.get(tier, ()))


def all_feature_ids() -> List[str]:
    return [f.id for f in _FEATURES]


def monthly_limit_for(tier: Tier, role: Optional[str] = None) -> int:
    """Monthly AI quota; -1 is unlimited. Superadmins are always unlimited."""
    if is_superadmin(role):
        return UNLIMITED
    return AI_USAGE_LIMITS[tier]


def plan_name_for(tier: Tier, role: Optional[str] = None) -> str:
    if is_superadmin(role):
        return "SuperAdmin (Unlimited)"
    return PLAN_NAMES[tier]
