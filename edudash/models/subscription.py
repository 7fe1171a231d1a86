"""
edudash/models/subscription.py

Subscription state, monthly usage period and access summaries.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, computed_field

from edudash.models.feature import FeatureView, Tier


UNLIMITED = -1


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"
    INCOMPLETE = "incomplete"


class ProfileRecord(BaseModel):
    """Raw subscription columns for one actor, defaults already applied."""
    model_config = ConfigDict(frozen=True)

    tier: Tier = Tier.FREE
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    role: Optional[str] = "parent"


class SubscriptionState(BaseModel):
    """
    One actor's subscription view for a session.

    `role == "superadmin"` bypasses every tier and quota rule.
    """
    model_config = ConfigDict(frozen=True)

    tier: Tier
    status: SubscriptionStatus
    role: Optional[str] = None
    plan_name: str
    features: List[str]

    @computed_field
    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE


class UsagePeriod(BaseModel):
    """
    Metered usage within the current calendar month.

    monthly_limit == -1 means unlimited; remaining_usage is then -1 too.
    """
    model_config = ConfigDict(frozen=True)

    current_usage: int = Field(ge=0)
    monthly_limit: int
    period_start: datetime
    period_end: datetime
    reset_date: datetime

    @computed_field
    @property
    def is_unlimited(self) -> bool:
        return self.monthly_limit == UNLIMITED

    @computed_field
    @property
    def remaining_usage(self) -> int:
        if self.monthly_limit == UNLIMITED:
            return UNLIMITED
        return max(0, self.monthly_limit - self.current_usage)

    @computed_field
    @property
    def can_use_ai(self) -> bool:
        return self.monthly_limit == UNLIMITED or self.current_usage < self.monthly_limit

    def incremented(self) -> "UsagePeriod":
        return self.model_copy(update={"current_usage": self.current_usage + 1})


class FeatureAccess(BaseModel):
    """Everything a feature gate needs to decide and explain itself."""
    model_config = ConfigDict(frozen=True)

    feature_id: str
    has_access: bool
    is_premium: bool
    needs_upgrade: bool
    can_use: bool
    is_metered: bool
    current_tier: Tier
    usage: Optional[UsagePeriod] = None


class SessionStatus(str, Enum):
    LOADING = "loading"
    LOADED = "loaded"
    REFRESHING = "refreshing"


class SubscriptionSnapshot(BaseModel):
    """Serializable view of a SubscriptionSession."""
    model_config = ConfigDict(frozen=True)

    actor_id: str
    status: SessionStatus
    subscription: Optional[SubscriptionState] = None
    usage: Optional[UsagePeriod] = None
    features: List[FeatureView] = []
    error: Optional[str] = None
    warnings: List[str] = []
