"""
api/main.py -- FastAPI application entry point for Quill Auth.

Exposes the credential lifecycle (sign-up, sign-in, refresh, sign-out,
password change, password reset) and profile images over HTTP.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds every component from Settings exactly once and hands each one
its configuration explicitly (see wire_components); shutdown closes the store.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.accounts import router as accounts_router
from api.routes.v1.auth import router as auth_router
from auth.errors import AuthError, StoreUnavailable, ValidationFailed
from auth.notifications import LoggingResetNotifier
from auth.revocation import RevocationController
from auth.service import AuthService
from auth.store import AccountStore
from auth.tokens import TokenConfig, TokenIssuer, TokenVerifier
from core.config import Settings, get_settings
from media.storage import LocalImageStorage

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("quill.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def token_config_from(settings: Settings) -> TokenConfig:
    return TokenConfig(
        secret_key=settings.secret_key,
        algorithm=settings.jwt_algorithm,
        access_ttl_seconds=settings.token_expire_seconds,
        refresh_ttl_seconds=settings.refresh_token_expire_seconds,
        reset_ttl_seconds=settings.password_reset_expire_seconds,
    )


def wire_components(app: FastAPI, settings: Settings, store: AccountStore | None = None) -> None:
    """Build the auth components and attach them to app.state.

    Everything downstream reads app.state; nothing reads get_settings() after
    this point. Tests call this with their own Settings and store.
    """
    store = store or AccountStore(settings.database_url)
    config = token_config_from(settings)
    verifier = TokenVerifier(config, store)
    revocation = RevocationController(
        store,
        max_attempts=settings.revocation_max_attempts,
        retry_wait_seconds=settings.revocation_retry_wait_seconds,
    )
    app.state.account_store = store
    app.state.token_verifier = verifier
    app.state.auth_service = AuthService(
        store,
        TokenIssuer(config),
        verifier,
        revocation,
        bcrypt_rounds=settings.bcrypt_rounds,
        store_timeout_seconds=settings.store_timeout_seconds,
        notifier=LoggingResetNotifier(),
    )
    app.state.image_storage = LocalImageStorage(
        settings.media_root,
        settings.media_base_url,
        max_bytes=settings.max_image_bytes,
    )
    app.state.store_timeout_seconds = settings.store_timeout_seconds
    app.state.secure_cookies = settings.secure_cookies


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Everything before yield runs on startup; everything after on shutdown."""
    logger.info("Quill Auth API starting up")
    wire_components(app, _settings)
    logger.info("Account store initialized")

    yield

    app.state.account_store.close()
    logger.info("Quill Auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Quill Auth API",
    description="Account sign-up, email-or-phone sign-in and counter-based token revocation.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    allow_credentials=True,
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
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

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(accounts_router, prefix="/api/v1", tags=["Accounts"])
app.mount("/media", StaticFiles(directory=_settings.media_root, check_dir=False), name="media")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Translate the auth core's exception taxonomy into HTTP.

    validation_failed carries the full violation list in detail. 401s carry
    WWW-Authenticate so bearer clients know to re-authenticate.
    """
    detail = None
    if isinstance(exc, ValidationFailed):
        detail = [v.to_dict() for v in exc.violations]
    if isinstance(exc, StoreUnavailable):
        logger.error("Store unavailable on %s %s", request.method, request.url.path)
    response = _error(exc.status_code, exc.code, exc.message, detail)
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 when the body is not JSON at all (field rules live in auth/validation.py)."""
    return _error(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        response = JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    else:
        response = _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and the account store's status."""
    try:
        database = "ok" if request.app.state.account_store.ping() else "error"
    except SQLAlchemyError:
        logger.exception("Health check could not reach the account store")
        database = "error"
    status = "healthy" if database == "ok" else "degraded"
    return HealthResponse(status=status, version=VERSION, components={"app": "ok", "database": database})
