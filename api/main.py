"""
api/main.py -- FastAPI application entry point for Gatekeeper.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. ApiCORSMiddleware     -- CORS headers, only under API_PREFIX
  2. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  3. SessionMiddleware     -- signed session cookie; authlib keeps OAuth state here
  4. SlowAPIMiddleware     -- per-route rate limits from api.limiter
  5. log_requests          -- one access-log line per request, denials included
  6. auth_gateway          -- authentication filter + policy enforcement

Lifespan opens the member store on startup and disposes it on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from api.cors import ApiCORSMiddleware
from api.envelope import EnvelopeResponse, error_response
from api.gateway import auth_gateway
from api.limiter import limiter
from api.models import HealthResponse
from api.routes.v1.members import router as members_router
from api.routes.v1.oauth import api_router as providers_router
from api.routes.v1.oauth import router as oauth_router
from auth.directory import MemberDirectory
from auth.errors import ExternalLoginFailed
from auth.oauth import oauth as oauth_client
from auth.policy import DEFAULT_RULES, PolicyTable
from auth.store import MemberStore
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
logger = logging.getLogger("gatekeeper.api")

settings = get_settings()

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the member store on startup; dispose it on shutdown."""
    logger.info("Gatekeeper starting up")
    app.state.member_store = MemberStore(settings.database_url)
    app.state.member_directory = MemberDirectory(app.state.member_store)
    app.state.oauth = oauth_client
    logger.info(
        "Member directory initialized (policy rules=%d, default=%s)",
        len(app.state.policy.rules),
        settings.default_policy,
    )

    yield

    app.state.member_store.close()
    logger.info("Gatekeeper shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Gatekeeper API",
    description="Authentication and authorization gateway.",
    version=VERSION,
    lifespan=lifespan,
)

# The policy table is static configuration: built once, never mutated.
app.state.policy = PolicyTable(DEFAULT_RULES, default_permit=settings.default_policy == "permit")
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() and @app.middleware("http") both insert at the front of the
# stack, so the LAST registration is the OUTERMOST layer. Register innermost
# first: auth_gateway -> log_requests -> SlowAPI -> Session -> TrustedHost -> CORS.
# ---------------------------------------------------------------------------

app.middleware("http")(auth_gateway)


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


app.add_middleware(SlowAPIMiddleware)

# authlib stores the OAuth state value in the session between the
# authorization redirect and the callback.
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.secret_key,
    same_site=settings.cookie_samesite,
    https_only=settings.cookie_secure,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

app.add_middleware(
    ApiCORSMiddleware,
    path_prefix=settings.api_prefix,
    allow_origins=settings.trusted_origins,
)

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(members_router, prefix="/api/v1", tags=["Members"])
app.include_router(providers_router, prefix="/api/v1", tags=["Auth"])
app.include_router(oauth_router, tags=["External login"])

# ---------------------------------------------------------------------------
# Exception handlers
#
# Every handler renders the same {code, message, data} envelope.
# ---------------------------------------------------------------------------


@app.exception_handler(ExternalLoginFailed)
async def external_login_failed_handler(request: Request, exc: ExternalLoginFailed) -> EnvelopeResponse:
    logger.warning("External login failed on %s: %s", request.url.path, exc)
    return error_response(401, message="External login failed.")


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> EnvelopeResponse:
    retry_after = int(getattr(exc, "retry_after", 60))
    response = error_response(429, message="Too many requests.")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> EnvelopeResponse:
    return error_response(400, message="Request validation failed.")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> EnvelopeResponse:
    message = exc.detail if isinstance(exc.detail, str) else None
    return error_response(exc.status_code, message=message)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> EnvelopeResponse:
    """Catch-all for unexpected errors. The traceback goes to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return error_response(500, message="An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return liveness, version, and member store reachability."""
    database = "ok"
    try:
        request.app.state.member_store.has_members()
    except SQLAlchemyError:
        logger.exception("Health check could not reach the member store")
        database = "error"
    return HealthResponse(version=VERSION, components={"app": "ok", "database": database})
