"""Tests for structured logging and request_id propagation."""

import json
import logging

from fastapi.testclient import TestClient

from edudash.core.logging import JsonFormatter, latency_bucket_ms, log_event, request_id_ctx_var
from edudash.main import app


def test_request_id_in_response_and_logs(caplog):
    client = TestClient(app)
    with caplog.at_level(logging.INFO, logger="edudash"):
        response = client.get("/api/subscription", headers={"X-User-Id": "parent-3"})
    rid = response.headers.get("x-request-id")
    assert rid
    records = [r for r in caplog.records if getattr(r, "request_id", None) == rid]
    assert records, "Expected logs to contain request_id from response"
    assert len({r.request_id for r in records}) == 1
    complete = [r for r in records if r.getMessage() == "request.complete"]
    assert complete[0].user_id == "parent-3"


def test_health_probes_log_below_info(caplog):
    client = TestClient(app)
    with caplog.at_level(logging.INFO, logger="edudash"):
        client.get("/healthz")
    assert not [r for r in caplog.records if r.getMessage() == "request.complete"]


def test_incoming_request_id_is_echoed():
    client = TestClient(app)
    response = client.get("/healthz", headers={"x-request-id": "abc-123"})
    assert response.headers["x-request-id"] == "abc-123"


def test_request_id_in_error_response():
    client = TestClient(app)
    response = client.get("/api/schools/school-1/invitation-code", headers={"X-User-Id": "nobody"})
    rid = response.headers.get("x-request-id")
    assert response.status_code == 403
    assert rid
    assert response.json()["error"]["request_id"] == rid


def test_usage_tracking_logs_structured_fields(caplog):
    client = TestClient(app)
    with caplog.at_level(logging.INFO, logger="edudash"):
        client.post(
            "/api/subscription/usage",
            json={"feature_id": "ai_lesson_generator"},
            headers={"X-User-Id": "parent-7"},
        )
    tracked = [r for r in caplog.records if r.getMessage() == "[subscription] usage.tracked"]
    assert len(tracked) == 1
    assert tracked[0].user_id == "parent-7"
    assert tracked[0].feature_id == "ai_lesson_generator"


def test_log_event_truncates_and_correlates(caplog):
    token = request_id_ctx_var.set("rid-42")
    try:
        with caplog.at_level(logging.INFO, logger="edudash"):
            log_event("info", "custom.event", preschool_id="school-1", extra={"blob": "x" * 1000})
    finally:
        request_id_ctx_var.reset(token)

    record = next(r for r in caplog.records if r.getMessage() == "custom.event")
    assert record.request_id == "rid-42"
    assert record.preschool_id == "school-1"
    assert record.blob.endswith("...<truncated>")


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("edudash", logging.INFO, __file__, 1, "hello", None, None)
    record.user_id = "u-1"
    payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "hello"
    assert payload["user_id"] == "u-1"


def test_latency_buckets():
    assert latency_bucket_ms(None) == "unknown"
    assert latency_bucket_ms(5) != latency_bucket_ms(5000)
