"""
api/routes/v1/auth.py -- Registration, login and password-reset REST endpoints.

Routes:
  POST /api/v1/auth/register          -- create an unverified account; emails an OTP
  POST /api/v1/auth/login             -- password login; returns a bearer session token
  POST /api/v1/auth/forgot-password   -- email a reset-password link
  POST /api/v1/auth/reset-password    -- set a new password with a reset token
  GET  /api/v1/auth/me                -- claims of the current session (requires auth)

Every handler hands validated fields to the VerificationOrchestrator on
app.state and returns its Outcome unchanged. Handlers are plain `def`:
bcrypt and the email API are blocking, so FastAPI runs them in its
threadpool.

Security:
  Login and forgot-password are rate limited per client IP (LOGIN_RATE_LIMIT).
  Cache-Control: no-store on login responses.
  Login never distinguishes "no such user" from "wrong password" by timing;
  see SessionIssuer.authenticate().
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import get_client_ip, limiter
from api.models import (
    AuthResponse,
    FaultResponse,
    ForgotPasswordRequest,
    GenericResponse,
    LoginRequest,
    MeResponse,
    RegisterRequest,
    ResetPasswordRequest,
    ValidationResponse,
)
from api.responses import outcome_response, request_code
from auth.dependencies import get_current_claims
from core.config import get_settings
from verification.orchestrator import VerificationOrchestrator

# Auth policy:
# - POST /api/v1/auth/register:         public
# - POST /api/v1/auth/login:            public, rate limited
# - POST /api/v1/auth/forgot-password:  public, rate limited
# - POST /api/v1/auth/reset-password:   public (the reset token is the credential)
# - GET  /api/v1/auth/me:               requires a session (get_current_claims)
router = APIRouter()

_ERRORS = {
    422: {"model": ValidationResponse},
    500: {"model": FaultResponse},
}


def _login_limit() -> str:
    return get_settings().login_rate_limit


def _orchestrator(request: Request) -> VerificationOrchestrator:
    return request.app.state.orchestrator


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=GenericResponse, responses={409: {"model": GenericResponse}, **_ERRORS})
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a USER account in the pending-verification state and send an OTP."""
    outcome = _orchestrator(request).register(
        body.first_name,
        body.last_name,
        body.email,
        body.password,
        request_code=request_code(request),
    )
    return outcome_response(outcome)


@router.post("/auth/login", response_model=AuthResponse, responses={401: {"model": GenericResponse}, **_ERRORS})
@limiter.limit(_login_limit)  # brute-force mitigation; must sit BELOW @router so the registered endpoint is the limited one
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Unverified accounts receive a fresh OTP and a success message without a
    token. Blocked accounts get 403 regardless of the password.
    """
    outcome = _orchestrator(request).login(
        body.email,
        body.password,
        get_client_ip(request),
        request_code=request_code(request),
    )
    return outcome_response(outcome, no_store=True)


@router.post("/auth/forgot-password", response_model=GenericResponse, responses=_ERRORS)
@limiter.limit(_login_limit)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> JSONResponse:
    """Email a reset-password link. Replaces any earlier link for the address."""
    outcome = _orchestrator(request).forgot_password(body.email, request_code=request_code(request))
    return outcome_response(outcome)


@router.post("/auth/reset-password", response_model=GenericResponse, responses=_ERRORS)
def reset_password(request: Request, body: ResetPasswordRequest) -> JSONResponse:
    """Set a new password. The reset token is deleted on success."""
    outcome = _orchestrator(request).reset_password(
        body.token,
        body.password,
        request_code=request_code(request),
    )
    return outcome_response(outcome)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(claims: dict = Depends(get_current_claims)) -> MeResponse:
    """Return the user data carried by the current session token."""
    return MeResponse(data=claims["user"])
