"""
api/main.py -- FastAPI application entry point for SocialHub authentication.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for whitelisted browser origins
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter

Lifespan builds the account store and the session service from Settings and
tears the store down on shutdown. The auth core never reads the environment
itself: Settings is resolved once here and passed in.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.dependencies import get_identity
from auth.errors import AuthError, StorageError
from auth.models import TokenPayload
from auth.session import SessionService
from auth.store import SqlAccountStore
from auth.tokens import TokenCodec
from core.config import get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("socialhub.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the auth core on startup and dispose of the store on shutdown.

    Everything before yield runs on startup; everything after yield runs on
    shutdown, even if a request handler raised.
    """
    logger.info("SocialHub auth API starting up")
    app.state.account_store = SqlAccountStore(_settings.database_url)
    app.state.token_codec = TokenCodec.from_settings(_settings)
    app.state.sessions = SessionService.from_settings(app.state.account_store, _settings)
    logger.info(
        "Auth initialized (access ttl=%s, refresh ttl=%s, lockout=%d/%s)",
        _settings.jwt_expiry,
        _settings.refresh_token_expiry,
        _settings.lockout_threshold,
        _settings.lockout_duration,
    )

    yield

    app.state.account_store.close()
    logger.info("SocialHub auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SocialHub Auth API",
    description="Account registration, login, token refresh and logout.",
    version=VERSION,
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced below by token-protected routes.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials="*" not in _settings.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


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


# ---------------------------------------------------------------------------
# Token-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(identity: TokenPayload = Depends(get_identity)):
    """Swagger UI -- requires a valid access token."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="SocialHub Auth API")


@app.get("/redoc", include_in_schema=False)
async def redoc(identity: TokenPayload = Depends(get_identity)):
    """ReDoc UI -- requires a valid access token."""
    return get_redoc_html(openapi_url="/openapi.json", title="SocialHub Auth API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None, type_: str | None = None):
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=ErrorDetail(code=code, message=message, detail=detail, type=type_)
        ).model_dump(exclude_none=True),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Convert a session flow failure into its status code and envelope."""
    return _error(exc.status_code, exc.code, exc.message, type_=exc.error_type)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return _error(500, "storage_failure", "The request could not be completed. Please try again.")


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return _error(500, "storage_failure", "The request could not be completed. Please try again.")


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error and Retry-After when a limit is hit."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests. Please try again later.", detail=str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when a request body fails validation."""
    return _error(422, "validation_error", "Request validation failed.", detail=str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    The auth dependencies raise HTTPException with a dict detail; use it
    directly as the error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The traceback goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is reachable regardless of router state.
# No rate limit -- load balancer probes must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> JSONResponse:
    """Return liveness, version, and database reachability."""
    components = {"app": "ok"}
    try:
        components["database"] = "ok" if request.app.state.account_store.ping() else "error"
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        components["database"] = "error"
    status = "healthy" if components["database"] == "ok" else "degraded"
    code = 200 if status == "healthy" else 503
    return JSONResponse(
        status_code=code,
        content=HealthResponse(status=status, version=VERSION, components=components).model_dump(),
    )
