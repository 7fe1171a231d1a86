"""API tests for /api/subscription."""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from edudash.main import app
from edudash.api import subscriptions
from edudash.features.usage.service import SqlUsageEventLog, month_window
from edudash.features.users.service import upsert_user
from edudash.tests.mocks import FailingSubscriptionSource, FailingUsageEventLog, FixedClock


FIXED_NOW = datetime(2025, 3, 15, 10, 30, tzinfo=timezone.utc)


@pytest.fixture
def client():
    app.dependency_overrides[subscriptions.get_clock] = lambda: FixedClock(FIXED_NOW)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_snapshot_for_new_user_is_free(client):
    resp = client.get("/api/subscription", headers={"X-User-Id": "parent-1"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["subscription"]["tier"] == "free"
    assert body["subscription"]["plan_name"] == "Free Plan"
    assert body["usage"]["monthly_limit"] == 5
    assert body["usage"]["reset_date"].startswith("2025-04-01")
    assert body["error"] is None


def test_missing_user_header_is_rejected(client):
    resp = client.get("/api/subscription")
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "request_invalid"


def test_feature_access_endpoint(client):
    upsert_user("teacher-1", role="teacher", subscription_tier="premium", subscription_status="past_due")
    resp = client.get("/api/subscription/features/homework_grader", headers={"X-User-Id": "teacher-1"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["has_access"] is False
    assert body["needs_upgrade"] is True
    assert body["current_tier"] == "premium"


def test_usage_quota_enforced(client):
    headers = {"X-User-Id": "parent-1"}
    for expected_remaining in (4, 3, 2, 1, 0):
        resp = client.post("/api/subscription/usage", json={"feature_id": "ai_lesson_generator"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["remaining_usage"] == expected_remaining

    blocked = client.post("/api/subscription/usage", json={"feature_id": "ai_lesson_generator"}, headers=headers)
    assert blocked.status_code == 403
    assert blocked.json()["error"]["code"] == "quota_exceeded"


def test_premium_feature_requires_upgrade(client):
    resp = client.post(
        "/api/subscription/usage",
        json={"feature_id": "homework_grader"},
        headers={"X-User-Id": "parent-1"},
    )
    assert resp.status_code == 403
    assert "Upgrade" in resp.json()["error"]["message"]


def test_superadmin_usage_is_not_recorded(client):
    upsert_user("root-1", role="superadmin")
    for _ in range(10):
        resp = client.post(
            "/api/subscription/usage",
            json={"feature_id": "homework_grader"},
            headers={"X-User-Id": "root-1"},
        )
        assert resp.status_code == 200
        assert resp.json()["remaining_usage"] == -1

    snapshot = client.get("/api/subscription", headers={"X-User-Id": "root-1"}).json()
    assert snapshot["usage"]["current_usage"] == 0


def test_profile_outage_serves_fallback(client):
    app.dependency_overrides[subscriptions.get_subscription_source] = lambda: FailingSubscriptionSource()
    resp = client.get("/api/subscription", headers={"X-User-Id": "parent-1"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["error"] is not None
    assert body["subscription"]["tier"] == "free"
    assert body["subscription"]["role"] is None


def test_usage_write_failure_returns_503(client):
    app.dependency_overrides[subscriptions.get_usage_log] = lambda: FailingUsageEventLog(fail_reads=False)
    resp = client.post(
        "/api/subscription/usage",
        json={"feature_id": "ai_lesson_generator"},
        headers={"X-User-Id": "parent-1"},
    )
    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "upstream_unavailable"


def test_usage_is_persisted(client):
    client.post(
        "/api/subscription/usage",
        json={"feature_id": "ai_lesson_generator"},
        headers={"X-User-Id": "parent-1"},
    )
    start, end = month_window(FIXED_NOW)
    assert SqlUsageEventLog().count("parent-1", start, end).value == 1
