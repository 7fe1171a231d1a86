"""Tests for monthly usage windows and the SQL usage event log."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from edudash.core.result import ErrorKind
from edudash.features.usage.service import (
    SqlUsageEventLog,
    build_usage_period,
    load_usage_period,
    month_window,
    next_reset_date,
    record_usage,
    reduce_usage_by_feature,
)
from edudash.models.feature import Tier
from edudash.models.subscription import UsagePeriod
from edudash.tests.mocks import FailingUsageEventLog, InMemoryUsageEventLog


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def test_month_window_bounds():
    start, end = month_window(_utc(2025, 2, 14, 9, 0))
    assert start == _utc(2025, 2, 1)
    assert end == _utc(2025, 2, 28, 23, 59, 59, 999999)


def test_month_window_leap_year():
    _, end = month_window(_utc(2024, 2, 29, 23, 0))
    assert end.day == 29


def test_reset_date_is_first_instant_of_next_month():
    assert next_reset_date(_utc(2025, 1, 31, 23, 59)) == _utc(2025, 2, 1)
    assert next_reset_date(_utc(2025, 12, 10)) == _utc(2026, 1, 1)


def test_naive_now_treated_as_utc():
    start, _ = month_window(datetime(2025, 6, 3, 12, 0))
    assert start == _utc(2025, 6, 1)


def test_remaining_usage_floors_at_zero(now):
    period = build_usage_period(7, 5, now)
    assert period.remaining_usage == 0
    assert period.can_use_ai is False


def test_unlimited_period(now):
    period = build_usage_period(10_000, -1, now)
    assert period.is_unlimited
    assert period.remaining_usage == -1
    assert period.can_use_ai is True


def test_incremented_returns_new_period(now):
    period = build_usage_period(2, 5, now)
    bumped = period.incremented()
    assert bumped.current_usage == 3
    assert bumped.remaining_usage == 2
    assert period.current_usage == 2


def test_usage_period_rejects_negative_usage(now):
    start, end = month_window(now)
    with pytest.raises(ValidationError):
        UsagePeriod(
            current_usage=-1,
            monthly_limit=5,
            period_start=start,
            period_end=end,
            reset_date=next_reset_date(now),
        )


def test_window_excludes_neighbouring_months(now):
    log = InMemoryUsageEventLog()
    start, end = month_window(now)
    log.append("parent-1", "ai_lesson_generator", start - timedelta(microseconds=1))
    log.append("parent-1", "ai_lesson_generator", start)
    log.append("parent-1", "ai_lesson_generator", end)
    log.append("parent-1", "ai_lesson_generator", end + timedelta(microseconds=1))

    period, warning = load_usage_period(log, "parent-1", Tier.FREE, now=now)
    assert warning is None
    assert period.current_usage == 2
    assert period.remaining_usage == 3
    assert period.reset_date == _utc(2025, 4, 1)


def test_usage_counts_every_feature_in_one_pool(now):
    log = InMemoryUsageEventLog()
    log.append("teacher-1", "ai_lesson_generator", now)
    log.append("teacher-1", "homework_grader", now)
    log.append("someone-else", "homework_grader", now)

    period, _ = load_usage_period(log, "teacher-1", Tier.PREMIUM, now=now)
    assert period.current_usage == 2
    assert period.monthly_limit == 100


def test_read_failure_falls_back_to_zero_with_warning(now):
    period, warning = load_usage_period(FailingUsageEventLog(), "parent-1", Tier.FREE, now=now)
    assert period.current_usage == 0
    assert period.monthly_limit == 5
    assert warning is not None


def test_reduce_usage_by_feature(now):
    log = InMemoryUsageEventLog()
    for _ in range(3):
        log.append("teacher-1", "ai_lesson_generator", now)
    log.append("teacher-1", "homework_grader", now)
    log.append("teacher-1", "homework_grader", now - timedelta(days=40))

    counts = reduce_usage_by_feature(log, "teacher-1", now)
    assert counts == {"ai_lesson_generator": 3, "homework_grader": 1}
    assert reduce_usage_by_feature(FailingUsageEventLog(), "teacher-1", now) == {}


def test_sql_log_append_and_count(now):
    log = SqlUsageEventLog()
    result = record_usage(log, "parent-1", "ai_lesson_generator", now)
    assert result.ok
    assert result.value.feature_id == "ai_lesson_generator"

    record_usage(log, "parent-1", "homework_grader", now - timedelta(days=31))

    start, end = month_window(now)
    count = log.count("parent-1", start, end)
    assert count.ok
    assert count.value == 1

    events = log.list_events("parent-1", start, end)
    assert [e.feature_id for e in events.unwrap_or([])] == ["ai_lesson_generator"]
    assert events.value[0].occurred_at == now


def test_sql_log_reports_unavailable_when_table_missing(now):
    from edudash.core.database import drop_all_tables

    drop_all_tables()
    log = SqlUsageEventLog()
    start, end = month_window(now)

    count = log.count("parent-1", start, end)
    assert not count.ok
    assert count.error_kind == ErrorKind.UNAVAILABLE

    appended = log.append("parent-1", "ai_lesson_generator", now)
    assert not appended.ok
    assert appended.error_kind == ErrorKind.UNAVAILABLE
