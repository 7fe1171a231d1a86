"""
edudash/features/subscriptions/source.py

Profile source for subscription state.

Reads subscription_tier, subscription_status and role for one actor and
applies the defaults (free / active / parent) for missing or unknown values.
"""

import logging
from typing import Optional, Protocol

from sqlalchemy import select

from edudash.core.database import STORE_ERRORS, get_db_session, users
from edudash.core.result import ErrorKind, SourceResult
from edudash.models.feature import Tier
from edudash.models.subscription import ProfileRecord, SubscriptionStatus


logger = logging.getLogger(__name__)

DEFAULT_ROLE = "parent"


class SubscriptionSource(Protocol):
    def fetch(self, actor_id: str) -> SourceResult[ProfileRecord]:
        ...


def _coerce_tier(actor_id: str, raw: Optional[str]) -> Tier:
    if raw is None:
        return Tier.FREE
    try:
        return Tier(raw.strip().lower())
    except ValueError:
        logger.warning(
            "[subscription] unknown tier, using free",
            extra={"user_id": actor_id, "raw_tier": raw},
        )
        return Tier.FREE


def _coerce_status(actor_id: str, raw: Optional[str]) -> SubscriptionStatus:
    if raw is None:
        return SubscriptionStatus.ACTIVE
    try:
        return SubscriptionStatus(raw.strip().lower())
    except ValueError:
        logger.warning(
            "[subscription] unknown status, using active",
            extra={"user_id": actor_id, "raw_status": raw},
        )
        return SubscriptionStatus.ACTIVE


def profile_from_columns(
    actor_id: str,
    tier: Optional[str],
    status: Optional[str],
    role: Optional[str],
) -> ProfileRecord:
    """Build a ProfileRecord from raw column values, applying defaults."""
    return ProfileRecord(
        tier=_coerce_tier(actor_id, tier),
        status=_coerce_status(actor_id, status),
        role=role or DEFAULT_ROLE,
    )


class SqlSubscriptionSource:
    """SubscriptionSource backed by the users table."""

    def fetch(self, actor_id: str) -> SourceResult[ProfileRecord]:
        try:
            with get_db_session() as session:
                row = session.execute(
                    select(
                        users.c.subscription_tier,
                        users.c.subscription_status,
                        users.c.role,
                    ).where(users.c.user_id == actor_id)
                ).first()
        except STORE_ERRORS as e:
            logger.warning(
                "[subscription] profile read failed",
                extra={"user_id": actor_id, "error": str(e)},
            )
            return SourceResult.failure(ErrorKind.UNAVAILABLE, "profile read failed")

        if row is None:
            # No profile row yet: treat as a fresh free account
            return SourceResult.success(ProfileRecord())

        return SourceResult.success(
            profile_from_columns(actor_id, row.subscription_tier, row.subscription_status, row.role)
        )
