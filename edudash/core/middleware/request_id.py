import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from edudash.core.logging import actor_id_ctx_var, latency_bucket_ms, request_id_ctx_var

logger = logging.getLogger("edudash")

# Probes hit these every few seconds; only failures are worth a line.
QUIET_PATHS = frozenset({"/healthz", "/readyz"})


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind request id and acting user to the log context for one request.

    The id is taken from the incoming header when present so the mobile app
    can correlate its own logs, and is always echoed on the response.
    """

    def __init__(self, app, header_name: str = "x-request-id", user_header: str = "x-user-id"):
        super().__init__(app)
        self.header_name = header_name
        self.user_header = user_header

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        actor = request.headers.get(self.user_header)
        request.state.request_id = rid
        rid_token = request_id_ctx_var.set(rid)
        actor_token = actor_id_ctx_var.set(actor)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            actor_id_ctx_var.reset(actor_token)
            request_id_ctx_var.reset(rid_token)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers[self.header_name] = rid

        status = getattr(response, "status_code", None)
        quiet = request.url.path in QUIET_PATHS and status is not None and status < 400
        logger.log(
            logging.DEBUG if quiet else logging.INFO,
            "request.complete",
            extra={
                "request_id": rid,
                "user_id": actor,
                "path": request.url.path,
                "method": request.method,
                "status": status,
                "latency_bucket": latency_bucket_ms(elapsed_ms),
            },
        )
        return response
