"""
api/main.py -- FastAPI application entry point for Quillpost.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware    -- credentials-enabled CORS for the configured frontend
  2. SlowAPIMiddleware -- enforces per-route rate limits from api.limiter

Lifespan builds every collaborator from Settings and hangs it on app.state
(constructor injection -- components receive the secret, engine and
provider they use instead of reading globals):

  app.state.settings           Settings
  app.state.user_directory     auth.store.UserDirectory
  app.state.post_store         posts.store.PostStore
  app.state.token_codec        auth.tokens.SessionTokenCodec
  app.state.identity_provider  auth.oauth.GoogleIdentityProvider
  app.state.oauth_exchange     auth.exchange.OAuthExchangeHandler

A missing JWT_SECRET makes get_settings() raise -- at import, where the CORS
origin is read, and again in the lifespan. Either way startup aborts: the
service never serves a request without a signing secret.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import HealthResponse, MessageResponse
from api.routes.oauth import router as oauth_router
from api.routes.posts import router as posts_router
from api.routes.users import router as users_router
from auth.exchange import OAuthExchangeHandler
from auth.oauth import GoogleIdentityProvider
from auth.store import UserDirectory
from auth.tokens import SessionTokenCodec
from core.config import get_settings
from core.db import create_db_engine
from core.errors import AppError, StoreError
from posts.store import PostStore

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("quillpost.api")

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build application collaborators on startup; dispose of the engine on shutdown.

    Startup order matters:
      1. Settings first -- raises if JWT_SECRET is missing (fatal).
      2. Engine and stores -- schema is created if absent.
      3. Codec and provider -- both need Settings only.
      4. Exchange handler last -- depends on all of the above.
    """
    settings = get_settings()
    logger.info("Quillpost API starting up (token_delivery=%s)", settings.token_delivery)

    engine = create_db_engine(settings.database_url)
    app.state.settings = settings
    app.state.user_directory = UserDirectory(engine)
    app.state.post_store = PostStore(engine)
    app.state.token_codec = SessionTokenCodec(settings.jwt_secret, lifetime_seconds=settings.token_expire_seconds)
    app.state.identity_provider = GoogleIdentityProvider(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        redirect_uri=settings.google_redirect_url,
        timeout=settings.oauth_timeout_seconds,
    )
    app.state.oauth_exchange = OAuthExchangeHandler(
        provider=app.state.identity_provider,
        directory=app.state.user_directory,
        codec=app.state.token_codec,
        timeout=settings.oauth_timeout_seconds,
    )
    logger.info("Database and auth initialized")

    yield

    engine.dispose()
    logger.info("Quillpost API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Quillpost API",
    description="Google sign-in, users and posts with role-based access control.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().frontend_redirect_url],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
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

app.include_router(oauth_router, tags=["Authentication"])
app.include_router(users_router, tags=["Users"])
app.include_router(posts_router, tags=["Posts"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error body has the same {"message": ...} shape so clients can show
# the message without inspecting the status code first.
# ---------------------------------------------------------------------------


def _message(status_code: int, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=MessageResponse(message=message, detail=detail).model_dump(exclude_none=True),
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return _message(exc.status_code, exc.message)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _message(429, "Too many requests.", str(exc.detail))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _message(422, "Request validation failed", str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _message(exc.status_code, str(exc.detail))


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Database failures surface as StoreError. Driver messages stay in the log."""
    logger.exception("Store error on %s %s", request.method, request.url.path)
    return _message(StoreError.status_code, StoreError.message)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _message(500, "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health and root
#
# Defined directly in main.py (not in a router) so they are always reachable.
# No rate limit -- load balancer probes must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and database reachability."""
    database = "ok"
    try:
        request.app.state.user_directory.ping()
    except SQLAlchemyError:
        logger.warning("Health check: database unreachable", exc_info=True)
        database = "error"
    status = "healthy" if database == "ok" else "degraded"
    return HealthResponse(status=status, version=API_VERSION, components={"app": "ok", "database": database})


@app.get("/", include_in_schema=False)
async def root() -> PlainTextResponse:
    return PlainTextResponse("API is working.")
