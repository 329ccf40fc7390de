"""
api/main.py -- FastAPI application entry point for OTPGate.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost; the last one registered wraps the rest):
  1. log_requests      -- assigns the request code, logs method/path/status/latency
  2. SlowAPIMiddleware -- app-wide limit checks; per-route limits run in the decorator
  3. CORSMiddleware    -- adds CORS headers for the configured front-end origin

Lifespan builds every component once (database, stores, codec, hasher,
session issuer, email sender, orchestrator) and tears them down
symmetrically. Keys come from the get_settings() singleton and are
injected here; no component reads the environment itself.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import get_client_ip, limiter
from api.models import HealthResponse
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.otp import router as otp_router
from auth.codec import SymmetricCodec
from auth.hashing import SecretHasher
from auth.store import CredentialStore
from auth.tokens import SessionIssuer
from core.config import Settings, get_settings
from core.database import Database
from verification.mailer import EmailSender, build_email_sender
from verification.orchestrator import VerificationOrchestrator
from verification.outcomes import Outcome, new_request_code
from verification.store import OtpStore, ResetTokenStore

APP_VERSION = "1.0.0"

_settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("otpgate.api")

# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


def wire_services(
    app: FastAPI,
    db: Database,
    settings: Settings,
    mailer: EmailSender,
    clock: Callable[[], float] = time.time,
) -> None:
    """Build the stores and workflow components on top of db and attach them to app.state."""
    hasher = SecretHasher(rounds=settings.bcrypt_rounds)
    app.state.db = db
    app.state.credentials = CredentialStore(db)
    app.state.otps = OtpStore(db)
    app.state.resets = ResetTokenStore(db)
    app.state.codec = SymmetricCodec.from_hex_key(settings.encryption_key)
    app.state.hasher = hasher
    app.state.session_issuer = SessionIssuer(
        settings.secret_key,
        hasher,
        expire_seconds=settings.session_expire_seconds,
    )
    app.state.mailer = mailer
    app.state.orchestrator = VerificationOrchestrator(
        credentials=app.state.credentials,
        otps=app.state.otps,
        resets=app.state.resets,
        codec=app.state.codec,
        hasher=hasher,
        issuer=app.state.session_issuer,
        mailer=mailer,
        app_name=settings.app_name,
        client_url=settings.client_url,
        otp_length=settings.otp_length,
        otp_expire_seconds=settings.otp_expire_seconds,
        reset_expire_seconds=settings.reset_expire_seconds,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval_seconds: int) -> None:
    """Sweep expired OTP and reset rows every interval_seconds.

    Started in lifespan only when PURGE_INTERVAL_SECONDS > 0. The sweep runs
    in a worker thread because the database calls are blocking. CancelledError
    from task.cancel() during shutdown propagates out of asyncio.sleep and
    unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        await asyncio.to_thread(app.state.orchestrator.purge_expired)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown.
    """
    settings = get_settings()
    logger.info("%s API starting up", settings.app_name)
    db = Database(settings.database_url)
    wire_services(app, db, settings, build_email_sender(settings))

    app.state.purge_task = None
    if settings.purge_interval_seconds > 0:
        app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.purge_interval_seconds))
        logger.info("Expired-token purge every %ds", settings.purge_interval_seconds)

    yield

    if app.state.purge_task is not None:
        app.state.purge_task.cancel()
    app.state.mailer.close()
    db.close()
    logger.info("%s API shutdown complete", settings.app_name)


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title=f"{_settings.app_name} API",
    description="Account registration, login, email OTP verification and password reset.",
    version=APP_VERSION,
    lifespan=lifespan,
    # Interactive docs only in DEBUG.
    docs_url="/docs" if _settings.debug else None,
    redoc_url="/redoc" if _settings.debug else None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=[_settings.client_url],
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    expose_headers=["X-Request-Code"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request code + logging middleware
#
# Every request gets a correlation code. Workflows log it with rejections
# and faults, fault envelopes return it, and it is echoed in the
# X-Request-Code header so a client report can be matched to the log.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    code = new_request_code()
    request.state.request_code = code
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    response.headers["X-Request-Code"] = code
    logger.info(
        "%s %s %d %.1fms %s [%s]",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        get_client_ip(request),
        code,
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(otp_router, prefix="/api/v1", tags=["OTP"])
app.include_router(admin_router, prefix="/api/v1", tags=["Admin"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers emit the same {success: false, message, ...} envelope the
# workflows return, so clients parse one shape for every failure.
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 when a rate limit is exceeded.

    Retry-After tells clients how many seconds to wait before retrying.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content={"success": False, "message": "Too many requests, Please try again later."},
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with one "field: problem" string per failed constraint."""
    errors = [f"{err['loc'][-1]}: {err['msg']}" if err.get("loc") else err["msg"] for err in exc.errors()]
    outcome = Outcome.invalid("Validation failed.", errors)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return the failure envelope for HTTP exceptions (guards, 404, 405)."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for errors that escaped a workflow boundary.

    The raw exception goes to the log only, never to the response body.
    """
    code = getattr(request.state, "request_code", None) or new_request_code()
    logger.exception("Unhandled exception on %s %s [%s]", request.method, request.url.path, code)
    outcome = Outcome.fault(code)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", response_model=HealthResponse, tags=["Health"])
def health(request: Request) -> JSONResponse:
    """Return liveness, version and database reachability."""
    db_ok = request.app.state.db.ping()
    body = HealthResponse(
        status="ok" if db_ok else "degraded",
        version=APP_VERSION,
        database="ok" if db_ok else "error",
    )
    return JSONResponse(status_code=200 if db_ok else 503, content=body.model_dump())
