"""
api/main.py -- FastAPI application entry point for GeoGuard.

Exposes signup/login/verify/logout and the periodic location check over
HTTP. The CLI client (main.py) and browser dashboards consume these routes.

Run with:      uvicorn asgi:app --reload

Middleware, in the order a request meets them: request logging, then
  TrustedHost (Settings.allowed_hosts), CORS (Settings.cors_origins), and
  SlowAPI (credential-route limits from api.limiter).

Lifespan builds the stores and services once and hangs them on app.state;
route handlers read them from there. Nothing is a module-level singleton, so
tests swap in their own lifespan with isolated in-memory stores.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.location import router as location_router
from auth.authenticator import CredentialAuthenticator
from auth.geofence import GeofenceEnforcer
from auth.store import SessionStore, UserStore
from core.config import get_settings
from core.errors import GeoGuardError

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("geoguard.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Sweep expired session rows every session_purge_interval_seconds.

    Readers already ignore and delete expired rows they touch; this loop
    catches the ones nobody reads again (abandoned devices). CancelledError
    from task.cancel() during shutdown unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(_settings.session_purge_interval_seconds)
        purged = await asyncio.to_thread(app.state.session_store.purge_expired)
        if purged:
            logger.info("Purged %d expired session(s)", purged)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build stores and services on startup; release them on shutdown.

    Order matters: stores first, then the services that are handed those
    store handles, then the purge task that references the session store.
    """
    logger.info("GeoGuard API starting up")
    app.state.user_store = UserStore(_settings.database_url)
    app.state.session_store = SessionStore(_settings.database_url)
    app.state.authenticator = CredentialAuthenticator(app.state.user_store, app.state.session_store, _settings)
    app.state.geofence = GeofenceEnforcer(app.state.user_store, app.state.session_store, _settings)
    logger.info(
        "Auth initialized (default radius=%.0fm, session ttl=%ds)",
        _settings.allowed_radius,
        _settings.session_ttl_seconds,
    )
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.session_store.close()
    app.state.user_store.close()
    logger.info("GeoGuard API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="GeoGuard API",
    description="Email/password authentication with sessions bound to a geographic area.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette wraps each add_middleware() call around the previous ones, so
# the last one registered sees the request first:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
#
# Logs method, path, status, and latency. Never logs headers or bodies --
# they carry bearer tokens, passwords, and locations.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(location_router, prefix="/api", tags=["Location"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly. The one exception is the 403 geofence verdict from
# /location/validate, which is a normal response, not an error.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(GeoGuardError)
async def geoguard_error_handler(request: Request, exc: GeoGuardError) -> JSONResponse:
    """Render a domain error with the status and code the error class declares."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    response = _error_response(exc.status_code, exc.code, exc.message)
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are client errors like any other missing field: 400."""
    return _error_response(400, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions (404 route, 405 method)."""
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors (storage or signing failures).

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is always reachable regardless of router
# registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and per-store database status."""
    users_ok = request.app.state.user_store.ping()
    sessions_ok = request.app.state.session_store.ping()
    database = "ok" if users_ok and sessions_ok else "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=VERSION,
        components={"app": "ok", "database": database},
    )
