"""Tests for normalized error responses."""

from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from edudash.main import app
from edudash.core.errors import (
    AppError,
    InvitationError,
    NotFoundError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from edudash.core.middleware.request_id import RequestIdMiddleware


def _error_app():
    test_app = FastAPI()
    test_app.add_middleware(RequestIdMiddleware)
    test_app.add_exception_handler(AppError, app_error_handler)
    test_app.add_exception_handler(HTTPException, http_error_handler)
    test_app.add_exception_handler(Exception, unhandled_exception_handler)

    @test_app.get("/missing")
    async def missing():
        raise NotFoundError("Thing not found")

    @test_app.get("/invite")
    async def invite():
        raise InvitationError("Expired", reason="expired")

    @test_app.get("/http")
    async def http():
        raise HTTPException(status_code=418, detail="teapot")

    @test_app.get("/boom")
    async def boom():
        raise RuntimeError("kaboom")

    return test_app


def test_validation_error_has_standard_shape():
    client = TestClient(app)
    resp = client.get("/api/fees/outstanding", params={"now": "not-a-date"}, headers={"X-User-Id": "p-1"})
    assert resp.status_code == 400
    body = resp.json()
    rid = resp.headers.get("x-request-id")
    assert body["error"]["code"] == "validation_error"
    assert body["error"]["request_id"] == rid
    assert body["detail"] == body["error"]["message"]


def test_not_found_error_normalized():
    client = TestClient(app)
    resp = client.put(
        "/api/fees/payment-window",
        json={"start_day": 1, "end_day": 5},
        headers={"X-User-Id": "ghost"},
    )
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


def test_app_errors_and_reason():
    client = TestClient(_error_app())
    missing = client.get("/missing")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "not_found"
    assert "reason" not in missing.json()["error"]

    invite = client.get("/invite")
    assert invite.status_code == 400
    assert invite.json()["error"]["reason"] == "expired"


def test_http_exception_normalized():
    client = TestClient(_error_app())
    resp = client.get("/http")
    assert resp.status_code == 418
    assert resp.json()["error"]["code"] == "http_error"
    assert resp.json()["error"]["message"] == "teapot"


def test_unhandled_exception_is_internal_error():
    client = TestClient(_error_app(), raise_server_exceptions=False)
    resp = client.get("/boom")
    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "internal_error"
    assert "kaboom" not in resp.text
