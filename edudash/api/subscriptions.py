"""
edudash/api/subscriptions.py
Subscription state, feature gates and AI usage tracking.
"""

from datetime import datetime
from typing import Annotated, Callable, Optional

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field

from edudash.core.errors import QuotaExceededError, UpstreamUnavailableError, ValidationError
from edudash.features.catalog.service import is_metered
from edudash.features.subscriptions.service import SubscriptionSession, open_session
from edudash.features.subscriptions.source import SqlSubscriptionSource, SubscriptionSource
from edudash.features.usage.service import SqlUsageEventLog, UsageEventLog
from edudash.models.subscription import FeatureAccess, SubscriptionSnapshot

router = APIRouter(prefix="/api/subscription", tags=["subscription"])


class TrackUsageRequest(BaseModel):
    feature_id: str = Field(min_length=1, max_length=100)


class TrackUsageResponse(BaseModel):
    tracked: bool
    feature_id: str
    remaining_usage: Optional[int] = None


def get_subscription_source() -> SubscriptionSource:
    return SqlSubscriptionSource()


def get_usage_log() -> UsageEventLog:
    return SqlUsageEventLog()


def get_clock() -> Optional[Callable[[], datetime]]:
    """None means wall clock; tests override this for fixed instants."""
    return None


def get_session(
    user_id: Annotated[str, Header(alias="X-User-Id")],
    source: Annotated[SubscriptionSource, Depends(get_subscription_source)],
    usage_log: Annotated[UsageEventLog, Depends(get_usage_log)],
    clock: Annotated[Optional[Callable[[], datetime]], Depends(get_clock)],
) -> SubscriptionSession:
    if not user_id.strip():
        raise ValidationError("X-User-Id header is required")
    return open_session(user_id.strip(), source, usage_log, clock)


@router.get("", response_model=SubscriptionSnapshot)
def get_subscription(session: Annotated[SubscriptionSession, Depends(get_session)]):
    return session.snapshot()


@router.get("/features/{feature_id}", response_model=FeatureAccess)
def get_feature_access(feature_id: str, session: Annotated[SubscriptionSession, Depends(get_session)]):
    return session.feature_access(feature_id)


@router.post("/usage", response_model=TrackUsageResponse)
def track_usage(body: TrackUsageRequest, session: Annotated[SubscriptionSession, Depends(get_session)]):
    """
    Record one use of a metered feature.

    403 quota_exceeded when the feature cannot be used; 503 when the usage
    log could not be written.
    """
    if is_metered(body.feature_id) and not session.can_use_feature(body.feature_id):
        if session.needs_upgrade(body.feature_id):
            raise QuotaExceededError(f"Upgrade required to use {body.feature_id}")
        raise QuotaExceededError("Monthly AI usage limit reached")

    if not session.track_usage(body.feature_id):
        raise UpstreamUnavailableError("Usage could not be recorded")

    usage = session.usage
    return TrackUsageResponse(
        tracked=True,
        feature_id=body.feature_id,
        remaining_usage=usage.remaining_usage if usage is not None else None,
    )
