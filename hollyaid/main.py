"""
HollyAid Backend - Main Application

Booking lifecycle, wellness-minutes accounting and messaging API.
"""
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from hollyaid import __version__
from hollyaid.config import settings
from hollyaid.database import close_db, init_db
from hollyaid.exceptions import (
    CapExceeded,
    HollyAidError,
    InvalidInvite,
    InvalidTransition,
    NotFound,
    PayoutAlreadyProcessed,
    PersistenceUnavailable,
    SubscriptionInactive,
    Unauthorized,
    ValidationFailed,
)
from hollyaid.logging_config import get_logger, setup_logging
from hollyaid.routers.admin import router as admin_router
from hollyaid.routers.bookings import router as bookings_router
from hollyaid.routers.companies import router as companies_router
from hollyaid.routers.internal import router as internal_router
from hollyaid.routers.specialists import router as specialists_router

# --- Logging ---
setup_logging(log_level=settings.LOG_LEVEL, debug=settings.DEBUG, log_file=settings.LOG_FILE)
logger = get_logger(__name__)

# --- Sentry ---
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        traces_sample_rate=0.1,
        environment="development" if settings.DEBUG else "production",
    )
    logger.info("sentry_initialized")


# Most specific first: the first isinstance match wins
ERROR_STATUS: list[tuple[type[HollyAidError], int]] = [
    (NotFound, 404),
    (Unauthorized, 403),
    (InvalidTransition, 409),
    (PayoutAlreadyProcessed, 409),
    (CapExceeded, 429),
    (SubscriptionInactive, 402),
    (InvalidInvite, 410),
    (ValidationFailed, 422),
    (PersistenceUnavailable, 503),
]


def status_for(exc: HollyAidError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 400


# --- Lifespan: create tables on startup ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("app_starting", version=__version__)
    await init_db()
    yield
    logger.info("app_shutting_down")
    await close_db()


# --- App ---
app = FastAPI(
    title="HollyAid Backend",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(HollyAidError)
async def hollyaid_error_handler(request: Request, exc: HollyAidError):
    status_code = status_for(exc)
    log = logger.error if status_code >= 500 else logger.info
    log(
        "request_failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        status_code=status_code,
        message=exc.message,
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "message": exc.message, "details": exc.details},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path, error_type=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={"error": "InternalServerError", "message": "Internal server error"},
    )


# --- Health check ---
@app.get("/health")
async def health():
    return {"status": "ok", "version": __version__}


# --- Routers ---
app.include_router(bookings_router)
app.include_router(companies_router)
app.include_router(specialists_router)
app.include_router(admin_router)
app.include_router(internal_router)
