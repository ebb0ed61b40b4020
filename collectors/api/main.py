"""FastAPI application for The Collectors System API.

Provides the main application instance with routers, CORS and the
domain-error exception handlers configured.
"""

import logging
import os
import sys
import time as _time
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _pkg_version

from fastapi import FastAPI, Request

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
# Ensure our application loggers are captured
logging.getLogger("collectors").setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from collectors.api.routes import chat, vehicles
from collectors.db.connection import close_db, init_db
from collectors.errors import (
    AuthenticationError,
    DomainError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_startup_time: float = 0.0


def _parse_allowed_origins() -> list[str]:
    """Parse comma-separated CORS allowlist from ALLOWED_ORIGINS env var."""
    raw = os.environ.get("ALLOWED_ORIGINS", "").strip()
    if not raw:
        return []
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _app_version() -> str:
    try:
        return _pkg_version("collectors-system")
    except PackageNotFoundError:
        return "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup, dispose the connection pool on shutdown."""
    global _startup_time

    _startup_time = _time.time()
    init_db()
    logger.info("Collectors API started (version %s)", _app_version())
    yield
    close_db()
    logger.info("Collectors API stopped")


app = FastAPI(
    title="The Collectors System API",
    description="Vehicle collection assistant with product research",
    version=_app_version(),
    lifespan=lifespan,
)

# CORS allowlist is env-driven. If unset, CORS is disabled (same-origin only).
allowed_origins = _parse_allowed_origins()
if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )


_STATUS_BY_ERROR: tuple[tuple[type[DomainError], int], ...] = (
    (ValidationError, 400),
    (AuthenticationError, 401),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Map domain errors to HTTP status codes with a consistent body.

    Args:
        request: The incoming request.
        exc: The DomainError raised by a service or dependency.

    Returns:
        JSONResponse with an ``error`` message.
    """
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            break
    else:
        status_code = 500
        logger.error("Unhandled domain error on %s: %s", request.url.path, exc)

    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content={"error": str(exc)},
        headers=headers,
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler so clients always get a JSON error body."""
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Include routers
app.include_router(chat.router, prefix="/api")
app.include_router(vehicles.router, prefix="/api")


@app.get("/health")
def health_check() -> dict:
    """Health check endpoint.

    Returns:
        Dictionary with status, version and uptime.
    """
    uptime = int(_time.time() - _startup_time) if _startup_time else 0
    return {
        "status": "ok",
        "version": _app_version(),
        "uptime_seconds": uptime,
    }
