"""
API request and response models for the OTPGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
verification/models.py, which own the internal domain representation. Route
handlers pass validated fields to the orchestrator and return its Outcome.

Validation happens here, before any workflow runs: a malformed email, a
missing field, a short password or an unknown purpose is rejected with a 422
validation envelope and never reaches the orchestrator.
"""

from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from auth.models import Purpose

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# bcrypt only reads the first 72 bytes of a secret.
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 72

# Models holding a password do not strip globally: the secret is hashed
# exactly as typed, so only the identifying fields are trimmed.
Email = Annotated[str, StringConstraints(strip_whitespace=True, max_length=255, pattern=EMAIL_PATTERN)]
Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
Token = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=1024)]
NewPassword = Annotated[str, StringConstraints(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    first_name: Name
    last_name: Name
    email: Email
    password: NewPassword


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: Email
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)


class VerifyOtpRequest(BaseModel):
    """Request body for POST /api/v1/otp/verify.

    `type` is the purpose the caller expects the token to carry; a token
    sealed for a different purpose is rejected even with the right code.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    token: str = Field(min_length=1, max_length=1024)
    otp: str = Field(min_length=1, max_length=10, pattern=r"^\d+$")
    type: Purpose


class ResendOtpRequest(BaseModel):
    """Request body for POST /api/v1/otp/resend."""

    model_config = ConfigDict(str_strip_whitespace=True)

    token: str = Field(min_length=1, max_length=1024)


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/forgot-password."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/reset-password."""

    token: Token
    password: NewPassword


# ---------------------------------------------------------------------------
# Response models
#
# Used for the OpenAPI schema. Routes return the Outcome body directly as a
# JSONResponse so the status code chosen by the workflow is preserved.
# ---------------------------------------------------------------------------


class GenericResponse(BaseModel):
    """Success or business-rejection envelope."""

    model_config = ConfigDict(frozen=True)

    success: bool
    message: str
    data: Optional[Any] = None
    meta_data: Optional[Any] = None


class AuthResponse(BaseModel):
    """Successful login: role name, session token and the user claim data."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str
    role: str
    token: str
    data: dict


class ValidationResponse(BaseModel):
    """422 envelope for request bodies that fail validation."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    message: str
    errors: list[str] = Field(default_factory=list)


class FaultResponse(BaseModel):
    """500 envelope. request_code correlates with the server log."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    message: str
    request_code: str


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me: the claims carried by the session."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    data: dict


class PurgeCounts(BaseModel):
    model_config = ConfigDict(frozen=True)

    otp_tokens: int
    reset_tokens: int


class PurgeResponse(BaseModel):
    """Response for POST /api/v1/admin/maintenance/purge."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str
    data: PurgeCounts


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    database: str = "ok"
