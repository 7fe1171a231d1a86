"""
edudash/features/usage/service.py

AI usage accounting.

Handles:
- Calendar-month windows and reset dates
- Usage event emission (append-only ai_usage_logs)
- Monthly usage counting with a fail-open fallback on read errors
"""

import calendar
import logging
from datetime import datetime, timezone, timedelta
from typing import Dict, List, Optional, Protocol, Tuple

from sqlalchemy import select, insert, func

from edudash.core.database import STORE_ERRORS, get_db_session, ai_usage_logs, as_utc
from edudash.core.result import ErrorKind, SourceResult
from edudash.features.catalog.service import monthly_limit_for
from edudash.models.feature import Tier
from edudash.models.subscription import UsagePeriod
from edudash.models.usage_event import UsageEvent


logger = logging.getLogger(__name__)


def _normalize_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    return as_utc(now)


def month_window(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    Return (start_of_month, end_of_month) for `now`, in UTC.

    Both bounds are inclusive; end_of_month is the last microsecond.
    """
    now = _normalize_now(now)
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    last_day = calendar.monthrange(now.year, now.month)[1]
    end = datetime(now.year, now.month, last_day, 23, 59, 59, 999999, tzinfo=timezone.utc)
    return start, end


def next_reset_date(now: Optional[datetime] = None) -> datetime:
    """First instant of the calendar month following `now`."""
    _, end = month_window(now)
    return end + timedelta(microseconds=1)


def build_usage_period(current_usage: int, monthly_limit: int, now: Optional[datetime] = None) -> UsagePeriod:
    start, end = month_window(now)
    return UsagePeriod(
        current_usage=max(0, current_usage),
        monthly_limit=monthly_limit,
        period_start=start,
        period_end=end,
        reset_date=end + timedelta(microseconds=1),
    )


class UsageEventLog(Protocol):
    """Append-only store of usage events."""

    def append(self, actor_id: str, feature_id: str, occurred_at: datetime) -> SourceResult[UsageEvent]:
        ...

    def count(self, actor_id: str, start: datetime, end: datetime) -> SourceResult[int]:
        ...

    def list_events(self, actor_id: str, start: datetime, end: datetime) -> SourceResult[List[UsageEvent]]:
        ...


class SqlUsageEventLog:
    """UsageEventLog backed by the ai_usage_logs table."""

    def append(self, actor_id: str, feature_id: str, occurred_at: datetime) -> SourceResult[UsageEvent]:
        occurred_at = as_utc(occurred_at)
        try:
            with get_db_session() as session:
                session.execute(
                    insert(ai_usage_logs).values(
                        user_id=actor_id,
                        feature=feature_id,
                        created_at=occurred_at,
                        tokens_used=None,  # filled in later by the AI service
                        cost_usd=None,
                    )
                )
        except STORE_ERRORS as e:
            logger.error(
                "[usage] append failed",
                extra={"user_id": actor_id, "feature_id": feature_id, "error": str(e)},
            )
            return SourceResult.failure(ErrorKind.UNAVAILABLE, "usage log write failed")

        return SourceResult.success(
            UsageEvent(actor_id=actor_id, feature_id=feature_id, occurred_at=occurred_at)
        )

    def count(self, actor_id: str, start: datetime, end: datetime) -> SourceResult[int]:
        try:
            with get_db_session() as session:
                total = session.execute(
                    select(func.count())
                    .select_from(ai_usage_logs)
                    .where(ai_usage_logs.c.user_id == actor_id)
                    .where(ai_usage_logs.c.created_at >= as_utc(start))
                    .where(ai_usage_logs.c.created_at <= as_utc(end))
                ).scalar_one()
        except STORE_ERRORS as e:
            logger.warning(
                "[usage] count failed",
                extra={"user_id": actor_id, "error": str(e)},
            )
            return SourceResult.failure(ErrorKind.UNAVAILABLE, "usage log read failed")
        return SourceResult.success(int(total))

    def list_events(self, actor_id: str, start: datetime, end: datetime) -> SourceResult[List[UsageEvent]]:
        try:
            with get_db_session() as session:
                rows = session.execute(
                    select(ai_usage_logs)
                    .where(ai_usage_logs.c.user_id == actor_id)
                    .where(ai_usage_logs.c.created_at >= as_utc(start))
                    .where(ai_usage_logs.c.created_at <= as_utc(end))
                    .order_by(ai_usage_logs.c.created_at)
                ).all()
        except STORE_ERRORS as e:
            logger.warning(
                "[usage] list failed",
                extra={"user_id": actor_id, "error": str(e)},
            )
            return SourceResult.failure(ErrorKind.UNAVAILABLE, "usage log read failed")

        return SourceResult.success([
            UsageEvent(
                actor_id=row.user_id,
                feature_id=row.feature,
                occurred_at=as_utc(row.created_at),
                tokens_used=row.tokens_used,
                cost_usd=row.cost_usd,
            )
            for row in rows
        ])


def load_usage_period(
    usage_log: UsageEventLog,
    actor_id: str,
    tier: Tier,
    role: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[UsagePeriod, Optional[str]]:
    """
    Compute the actor's usage for the calendar month containing `now`.

    Every event in the window counts, whatever its feature id: all metered
    features share one monthly pool.

    Returns:
        (usage_period, warning). On a read failure usage falls back to 0
        and warning describes the failure; the caller is never blocked.
    """
    now = _normalize_now(now)
    monthly_limit = monthly_limit_for(tier, role)
    start, end = month_window(now)

    result = usage_log.count(actor_id, start, end)
    warning = None
    if result.ok:
        current_usage = result.value or 0
    else:
        current_usage = 0
        warning = f"AI usage unavailable ({result.message}); assuming no usage this month"
        logger.warning(
            "[usage] falling back to zero usage",
            extra={"user_id": actor_id, "error_kind": result.error_kind, "period_start": start.isoformat()},
        )

    return build_usage_period(current_usage, monthly_limit, now), warning


def record_usage(
    usage_log: UsageEventLog,
    actor_id: str,
    feature_id: str,
    occurred_at: Optional[datetime] = None,
) -> SourceResult[UsageEvent]:
    """Append one usage event stamped with `occurred_at` (defaults to now)."""
    return usage_log.append(actor_id, feature_id, _normalize_now(occurred_at))


def reduce_usage_by_feature(
    usage_log: UsageEventLog,
    actor_id: str,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    Reduce this month's events to counts per feature.

    Pure function over the log: same actor + same now = same counts.
    Read failures reduce to an empty dict.
    """
    start, end = month_window(now)
    result = usage_log.list_events(actor_id, start, end)
    counts: Dict[str, int] = {}
    for event in result.unwrap_or([]):
        counts[event.feature_id] = counts.get(event.feature_id, 0) + 1
    return counts
