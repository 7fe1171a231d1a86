"""
edudash/features/subscriptions/service.py

Per-actor subscription session.

Handles:
- Loading subscription state and monthly usage from injected sources
- Feature gating (delegates to the access evaluator)
- Usage tracking with an optimistic local increment
- Fail-open fallbacks on read errors (logged, never raised)
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from edudash.features.catalog.service import (
    features_for_tier,
    is_metered,
    is_superadmin,
    monthly_limit_for,
    plan_name_for,
)
from edudash.features.subscriptions import access
from edudash.features.subscriptions.source import SubscriptionSource
from edudash.features.usage.service import (
    UsageEventLog,
    build_usage_period,
    load_usage_period,
    record_usage,
)
from edudash.models.feature import FeatureView, Tier
from edudash.models.subscription import (
    FeatureAccess,
    ProfileRecord,
    SessionStatus,
    SubscriptionSnapshot,
    SubscriptionState,
    SubscriptionStatus,
    UsagePeriod,
)


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_state(profile: ProfileRecord) -> SubscriptionState:
    return SubscriptionState(
        tier=profile.tier,
        status=profile.status,
        role=profile.role,
        plan_name=plan_name_for(profile.tier, profile.role),
        features=features_for_tier(profile.tier),
    )


def fallback_state() -> SubscriptionState:
    """State used when the profile cannot be read: free, active, no role."""
    return SubscriptionState(
        tier=Tier.FREE,
        status=SubscriptionStatus.ACTIVE,
        role=None,
        plan_name=plan_name_for(Tier.FREE),
        features=features_for_tier(Tier.FREE),
    )


class SubscriptionSession:
    """
    One actor's subscription view.

    Lifecycle: LOADING -> LOADED, then REFRESHING -> LOADED on each refresh().
    Gate queries answer from the loaded state only; track_usage is the sole
    write path.
    """

    def __init__(
        self,
        actor_id: str,
        source: SubscriptionSource,
        usage_log: UsageEventLog,
        clock: Optional[Clock] = None,
    ):
        self.actor_id = actor_id
        self._source = source
        self._usage_log = usage_log
        self._clock = clock or _utcnow
        self.status = SessionStatus.LOADING
        self.state: Optional[SubscriptionState] = None
        self.usage: Optional[UsagePeriod] = None
        self.error: Optional[str] = None
        self.warnings: List[str] = []

    @property
    def is_loaded(self) -> bool:
        return self.status == SessionStatus.LOADED

    def load(self) -> "SubscriptionSession":
        now = self._clock()
        self.error = None
        self.warnings = []

        result = self._source.fetch(self.actor_id)
        if not result.ok:
            self.error = result.message or "Failed to load subscription"
            self.state = fallback_state()
            self.usage = build_usage_period(0, monthly_limit_for(Tier.FREE), now)
            logger.warning(
                "[subscription] load failed, using free fallback",
                extra={"user_id": self.actor_id, "error_kind": result.error_kind},
            )
            self.status = SessionStatus.LOADED
            return self

        self.state = build_state(result.value)
        self.usage, warning = load_usage_period(
            self._usage_log,
            self.actor_id,
            self.state.tier,
            self.state.role,
            now,
        )
        if warning:
            self.warnings.append(warning)

        self.status = SessionStatus.LOADED
        logger.info(
            "[subscription] loaded",
            extra={
                "user_id": self.actor_id,
                "tier": self.state.tier.value,
                "status": self.state.status.value,
                "current_usage": self.usage.current_usage,
                "monthly_limit": self.usage.monthly_limit,
            },
        )
        return self

    def refresh(self) -> "SubscriptionSession":
        self.status = SessionStatus.REFRESHING
        return self.load()

    def has_access(self, feature_id: str) -> bool:
        return access.has_access(self.state, feature_id)

    def needs_upgrade(self, feature_id: str) -> bool:
        return access.needs_upgrade(self.state, feature_id)

    def can_use_feature(self, feature_id: str) -> bool:
        return access.can_use_feature(self.state, self.usage, feature_id)

    def feature_access(self, feature_id: str) -> FeatureAccess:
        return access.evaluate_feature(self.state, self.usage, feature_id)

    def features(self) -> List[FeatureView]:
        return access.feature_views(self.state)

    def track_usage(self, feature_id: str) -> bool:
        """
        Record one use of a metered feature.

        Returns False when the quota is exhausted, the session is not loaded
        or the event could not be stored; in-memory usage only changes after
        a successful append.
        """
        if self.state is not None and is_superadmin(self.state.role):
            return True

        if not is_metered(feature_id):
            return True

        if not self.is_loaded:
            return False

        if not self.can_use_feature(feature_id):
            logger.warning(
                "[subscription] usage.denied",
                extra={"user_id": self.actor_id, "feature_id": feature_id},
            )
            return False

        result = record_usage(self._usage_log, self.actor_id, feature_id, self._clock())
        if not result.ok:
            logger.error(
                "[subscription] usage.track_failed",
                extra={
                    "user_id": self.actor_id,
                    "feature_id": feature_id,
                    "error_kind": result.error_kind,
                },
            )
            return False

        self.usage = self.usage.incremented()
        logger.info(
            "[subscription] usage.tracked",
            extra={
                "user_id": self.actor_id,
                "feature_id": feature_id,
                "current_usage": self.usage.current_usage,
                "remaining_usage": self.usage.remaining_usage,
            },
        )
        return True

    def snapshot(self) -> SubscriptionSnapshot:
        return SubscriptionSnapshot(
            actor_id=self.actor_id,
            status=self.status,
            subscription=self.state,
            usage=self.usage,
            features=self.features() if self.state is not None else [],
            error=self.error,
            warnings=list(self.warnings),
        )


def open_session(
    actor_id: str,
    source: SubscriptionSource,
    usage_log: UsageEventLog,
    clock: Optional[Clock] = None,
) -> SubscriptionSession:
    """Create and load a session in one call."""
    return SubscriptionSession(actor_id, source, usage_log, clock).load()
