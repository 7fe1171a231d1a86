import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# Load env from edudash/.env
package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(package_dir, ".env"))

# Import after dotenv is loaded
from edudash.core.config import settings, validate_config, cors_origins
from edudash.core.database import create_all_tables
from edudash.core.logging import configure_logging
from edudash.core.middleware.request_id import RequestIdMiddleware
from edudash.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from edudash.api import subscriptions, invitations, fees, health

configure_logging(settings.ENV, settings.LOG_LEVEL)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("edudash")
    logger.info("Starting EduDash backend...")
    app.state.startup_time = time.time()
    if settings.DATABASE_URL:
        try:
            create_all_tables()
        except Exception as e:
            logger.error(f"[startup] table creation failed: {e}")
    try:
        yield
    finally:
        logging.getLogger("edudash").info("Stopping EduDash backend...")


app = FastAPI(title="EduDash Pro - Backend", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.root_router, tags=["health"])
app.include_router(subscriptions.router)
app.include_router(invitations.router)
app.include_router(fees.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("edudash.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
