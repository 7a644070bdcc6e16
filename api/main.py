"""
api/main.py -- FastAPI application entry point for AuthGate.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the collaborators once and parks them on app.state:
  user_store -- identity store (auth.store.UserStore)
  codec      -- credential codec (auth.tokens.TokenCodec)
  resets     -- reset-secret manager (auth.reset.ResetSecretManager)
  mailer     -- outbound mail (mail.sender.MailSender)
The codec and the reset manager receive one immutable AuthConfig at
construction and never consult settings again.
"""

from __future__ import annotations

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
from starlette.exceptions import HTTPException

from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.v1.users import router as users_router
from auth.errors import AuthError, ValidationFailed
from auth.reset import ResetSecretManager
from auth.store import UserStore
from auth.tokens import TokenCodec
from core.config import AuthConfig, get_settings
from mail.sender import MailSender

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authgate.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build collaborators on startup; release the store on shutdown."""
    logger.info("AuthGate API starting up")
    config = AuthConfig.from_settings(_settings)
    app.state.user_store = UserStore(db_url=_settings.database_url)
    app.state.codec = TokenCodec(config)
    app.state.resets = ResetSecretManager(config)
    app.state.mailer = MailSender(
        smtp_host=_settings.smtp_host,
        smtp_port=_settings.smtp_port,
        smtp_user=_settings.smtp_user,
        smtp_password=_settings.smtp_password,
        smtp_use_tls=_settings.smtp_use_tls,
        from_email=_settings.mail_from,
        dev_mode=_settings.debug,
    )
    if not app.state.mailer.is_configured:
        logger.warning("SMTP not configured -- reset mail will %s", "be logged" if _settings.debug else "fail")
    logger.info(
        "Auth initialized (token_ttl=%ds, reset_ttl=%ds, secure_cookies=%s)",
        config.token_ttl_seconds,
        config.reset_ttl_seconds,
        config.cookie_secure,
    )

    yield

    app.state.user_store.close()
    logger.info("AuthGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="AuthGate API",
    description="Bearer credentials, role-based access control, and password reset.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH"],
    allow_headers=["Content-Type", "Authorization"],
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

app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    body = ErrorResponse.for_status(status_code, code, message, detail)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render any auth-layer failure with its own status code and message."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return _error_response(exc.status_code, exc.code, exc.message, getattr(exc, "detail", None))


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(429, "rate_limited", "Too many requests.", str(exc.detail))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed or missing request fields are a 400 ValidationError."""
    return _error_response(
        ValidationFailed.status_code,
        ValidationFailed.code,
        ValidationFailed.message,
        "; ".join(f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=VERSION)
