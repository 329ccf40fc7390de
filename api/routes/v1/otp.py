"""
api/routes/v1/otp.py -- One-time code verification endpoints.

Routes:
  POST /api/v1/otp/verify   -- redeem an OTP for a token (single use)
  POST /api/v1/otp/resend   -- replace a pending OTP with a fresh one

Both are public: the sealed token from the emailed link plus the code is the
credential. Both are rate limited per client IP (OTP_RATE_LIMIT) so a 6-digit
code cannot be brute forced within its lifetime.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import FaultResponse, GenericResponse, ResendOtpRequest, ValidationResponse, VerifyOtpRequest
from api.responses import outcome_response, request_code
from core.config import get_settings

router = APIRouter()

_RESPONSES = {
    401: {"model": GenericResponse},
    422: {"model": ValidationResponse},
    500: {"model": FaultResponse},
}


def _otp_limit() -> str:
    return get_settings().otp_rate_limit


@router.post("/otp/verify", response_model=GenericResponse, responses=_RESPONSES)
@limiter.limit(_otp_limit)
def verify_otp(request: Request, body: VerifyOtpRequest) -> JSONResponse:
    """Verify the code; an account-verification token marks the account verified."""
    outcome = request.app.state.orchestrator.verify_otp(
        body.email,
        body.token,
        body.otp,
        body.type,
        request_code=request_code(request),
    )
    return outcome_response(outcome)


@router.post("/otp/resend", response_model=GenericResponse, responses=_RESPONSES)
@limiter.limit(_otp_limit)
def resend_otp(request: Request, body: ResendOtpRequest) -> JSONResponse:
    """Invalidate the given token and email a new code for the same purpose."""
    outcome = request.app.state.orchestrator.resend_otp(body.token, request_code=request_code(request))
    return outcome_response(outcome)
