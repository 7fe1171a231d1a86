"""Application errors and the handlers that render them.

Every error response has the same body:

    {"error": {"code", "message", "request_id"[, "reason"]}, "detail": message}

and echoes the request id in the ``x-request-id`` header.
"""

import builtins
import logging
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from edudash.core.logging import get_request_id

logger = logging.getLogger("edudash")


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
        reason: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.code
        self.status_code = status_code or self.status_code
        self.request_id = request_id
        self.reason = reason


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class NotFoundError(AppError, ValueError):
    code = "not_found"
    status_code = 404


class PermissionError(AppError, builtins.PermissionError):
    """Caller is not staff of the school, or the resource is locked."""
    code = "forbidden"
    status_code = 403


class ConflictError(AppError):
    code = "conflict"
    status_code = 409


class QuotaExceededError(AppError):
    """Feature needs a higher tier, or the monthly AI pool is spent."""
    code = "quota_exceeded"
    status_code = 403


class UpstreamUnavailableError(AppError):
    code = "upstream_unavailable"
    status_code = 503


class InvitationError(ValidationError):
    """Invitation code rejected; `reason` is one of not_found, email_mismatch,
    expired, inactive or exhausted."""
    code = "invalid_invitation"

    def __init__(self, message: str, *, reason: str, **kwargs):
        super().__init__(message, reason=reason, **kwargs)


def _resolve_request_id(request: Request, preferred: Optional[str] = None) -> str:
    return preferred or getattr(request.state, "request_id", None) or get_request_id() or str(uuid4())


def _error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    *,
    reason: Optional[str] = None,
    request_id: Optional[str] = None,
) -> JSONResponse:
    rid = _resolve_request_id(request, request_id)
    error = {"code": code, "message": message, "request_id": rid}
    if reason:
        error["reason"] = reason
    response = JSONResponse(status_code=status_code, content={"error": error, "detail": message})
    response.headers["x-request-id"] = rid
    return response


async def app_error_handler(request: Request, exc: AppError):
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "app.error",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "reason": exc.reason,
            "status": exc.status_code,
            "path": request.url.path,
        },
    )
    return _error_response(
        request,
        exc.status_code,
        exc.code,
        exc.message,
        reason=exc.reason,
        request_id=exc.request_id,
    )


async def http_error_handler(request: Request, exc: HTTPException):
    code = "not_found" if exc.status_code == 404 else "http_error"
    logger.warning("http.error", extra={"error_code": code, "status": exc.status_code})
    return _error_response(request, exc.status_code, code, exc.detail or "HTTP error")


async def request_validation_handler(request: Request, exc: RequestValidationError):
    # First failing field is enough for clients; the full list goes to the log.
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"
    logger.warning("request.invalid", extra={"error_code": "request_invalid", "errors": len(errors)})
    return _error_response(request, 422, "request_invalid", message)


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("unhandled.exception", exc_info=True, extra={"error_code": "internal_error"})
    return _error_response(request, 500, "internal_error", "Unexpected error")
