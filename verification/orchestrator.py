"""
verification/orchestrator.py -- Register / login / OTP / password-reset workflows.

VerificationOrchestrator is the only component that talks to every other
one: the credential store, the OTP and reset-token stores, the token codec,
the secret hasher, the session issuer and the email sender. None of those
know about each other.

Per-email state machine:

    register ──> Pending-Verification ──(verify_otp ok)──> Verified
                      │   ▲
                      │   └── login while unverified / resend_otp re-issue
                      ▼
                 OTP Issued ──> {Verified-and-destroyed,
                                 Expired (lazy, checked at verify time),
                                 Invalidated (resend / newer issue)}

    forgot_password ──> Reset Issued ──(reset_password ok)──> destroyed
                               └── superseded by a newer forgot_password

Error policy:
  Business rejections (conflict, not found, forbidden, unauthorized) are
  returned as Outcome objects with stable messages. Anything raised below
  -- storage errors, email transport failure after retries -- is caught at
  the workflow boundary (@_workflow), logged with the request code, and
  returned as a generic FAULT Outcome. Internal detail never reaches the
  response body.

  Token decode failures are not faults: a token that will not open is
  simply an invalid token.

Concurrency:
  No in-process locks. Single use of an OTP relies on the atomic DELETE in
  OtpStore.destroy(); one reset row per email relies on the upsert in
  ResetTokenStore.issue().
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Callable

from sqlalchemy.exc import IntegrityError

from auth.codec import SymmetricCodec, TokenDecodeError
from auth.hashing import SecretHasher
from auth.models import AccountStatus, Credential, Purpose, Role, TokenSubject
from auth.store import CredentialStore
from auth.tokens import SessionIssuer, generate_otp_code
from verification.mailer import EmailSender, render_otp_email, render_reset_password_email
from verification.maintenance import purge_expired
from verification.outcomes import ErrorKind, Outcome, new_request_code
from verification.store import OtpStore, ResetTokenStore

logger = logging.getLogger("otpgate.verification")

# ---------------------------------------------------------------------------
# Response messages
# ---------------------------------------------------------------------------

MSG_REGISTERED = (
    "Your account has been created successfully. An OTP has been sent to your email, Please verify your account."
)
MSG_EMAIL_EXISTS = "Email already exists."
MSG_USER_NOT_FOUND = "User does not exist."
MSG_BLOCKED = "Account is blocked, Please contact support."
MSG_VERIFY_PENDING = "An OTP has been sent to your email, Please verify your account."
MSG_BAD_CREDENTIALS = "Invalid credentials, Please try again."
MSG_OTP_SENT = "An OTP has been sent to your email."
MSG_UNKNOWN_TOKEN = "Invalid token, Please try again."
MSG_TOKEN_MISMATCH = "Access denied, invalid token."
MSG_TOKEN_CONSUMED = "Token is no longer valid, Please request a new OTP."
MSG_OTP_EXPIRED = "OTP expired."
MSG_BAD_OTP = "Invalid OTP, Please try again."
MSG_OTP_VERIFIED = "OTP verified successfully."
MSG_OTP_RESENT = "An OTP has been resent to your email."
MSG_RESEND_NO_USER = "User does not exist or is blocked."
MSG_NO_SUCH_EMAIL = "Email does not exist."
MSG_RESET_SENT = "Reset password link has been sent to your email."
MSG_RESET_INVALID = "Invalid token."
MSG_RESET_EXPIRED = "Reset password link expired."
MSG_PASSWORD_UPDATED = "Password updated successfully."
MSG_PURGED = "Expired tokens purged."


def _workflow(func: Callable[..., Outcome]) -> Callable[..., Outcome]:
    """Workflow boundary: turn unexpected exceptions into a FAULT Outcome.

    Adds a keyword-only `request_code` argument to the wrapped method. The
    code is generated when the caller does not pass one, and is logged with
    every rejection and fault so a client-reported code can be traced.
    """

    @functools.wraps(func)
    def wrapper(self, *args, request_code: str | None = None, **kwargs) -> Outcome:
        code = request_code or new_request_code()
        try:
            outcome = func(self, *args, **kwargs)
        except Exception:
            logger.exception("%s failed [%s]", func.__name__, code)
            return Outcome.fault(code)
        if outcome.error is not None:
            logger.info("%s rejected: %s (%s) [%s]", func.__name__, outcome.error.value, outcome.message, code)
        return outcome

    return wrapper


class VerificationOrchestrator:
    """Composes stores, codec, hasher, issuer and mailer into the auth workflows.

    Request-scoped in behaviour: methods share no mutable state, so one
    instance serves all requests.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        otps: OtpStore,
        resets: ResetTokenStore,
        codec: SymmetricCodec,
        hasher: SecretHasher,
        issuer: SessionIssuer,
        mailer: EmailSender,
        *,
        app_name: str = "OTPGate",
        client_url: str = "http://localhost:3000",
        otp_length: int = 6,
        otp_expire_seconds: int = 600,
        reset_expire_seconds: int = 600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.credentials = credentials
        self.otps = otps
        self.resets = resets
        self.codec = codec
        self.hasher = hasher
        self.issuer = issuer
        self.mailer = mailer
        self.app_name = app_name
        self.client_url = client_url.rstrip("/")
        self.otp_length = otp_length
        self.otp_expire_seconds = otp_expire_seconds
        self.reset_expire_seconds = reset_expire_seconds
        self.clock = clock

    # ------------------------------------------------------------------
    # Register / login
    # ------------------------------------------------------------------

    @_workflow
    def register(self, first_name: str, last_name: str, email: str, password: str) -> Outcome:
        """Create an unverified USER account and send it an account-verification OTP.

        Never returns a session credential: the account stays pending until
        verify_otp succeeds.
        """
        if self.credentials.exists_by_email(email):
            return Outcome.reject(ErrorKind.CONFLICT, MSG_EMAIL_EXISTS)

        credential = Credential(
            email=email,
            first_name=first_name,
            last_name=last_name,
            password_hash=self.hasher.hash(password),
            role=Role.USER,
            status=AccountStatus.ACTIVE,
            is_verified=False,
        )
        try:
            credential.id = self.credentials.create(credential)
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email.
            return Outcome.reject(ErrorKind.CONFLICT, MSG_EMAIL_EXISTS)

        self._issue_otp(email, first_name, Purpose.ACCOUNT_VERIFICATION)
        return Outcome.ok(MSG_REGISTERED)

    @_workflow
    def login(self, email: str, password: str, ip_address: str | None = None) -> Outcome:
        """Authenticate and return a session credential.

        Blocked accounts get 403 whatever the password. Unverified accounts
        get a fresh OTP and a "check your email" success without the password
        being checked, so the response reveals nothing about it.
        """
        user = self.credentials.find_by_email(email, include_password_hash=True)
        if user is None:
            return Outcome.reject(ErrorKind.NOT_FOUND, MSG_USER_NOT_FOUND)
        if user.is_blocked:
            return Outcome.reject(ErrorKind.FORBIDDEN, MSG_BLOCKED)
        if not user.is_verified:
            self._issue_otp(user.email, user.first_name, Purpose.ACCOUNT_VERIFICATION)
            return Outcome.ok(MSG_VERIFY_PENDING)

        session = self.issuer.authenticate(user, password)
        if session is None:
            return Outcome.reject(ErrorKind.UNAUTHORIZED, MSG_BAD_CREDENTIALS)

        self.credentials.update_ip(user.id, ip_address)
        message = "Admin logged in successfully." if user.role == Role.ADMIN else "User logged in successfully."
        return Outcome.session(message, user.role.name, session.token, session.user)

    # ------------------------------------------------------------------
    # OTP
    # ------------------------------------------------------------------

    @_workflow
    def issue_otp(self, email: str, name: str, purpose: Purpose) -> Outcome:
        """Send a new OTP for email/purpose, invalidating earlier pending codes."""
        self._issue_otp(email, name, Purpose(purpose))
        return Outcome.ok(MSG_OTP_SENT)

    @_workflow
    def verify_otp(self, email: str, token: str, otp: str, purpose: Purpose | str) -> Outcome:
        """Redeem an OTP. Succeeds at most once per token.

        Check order: record exists, token opens to exactly (email, purpose),
        not expired, code matches. A mismatched token is rejected without
        destroying the record, so the legitimate holder can still use it.
        """
        record = self.otps.find(token)
        if record is None:
            return Outcome.reject(ErrorKind.UNAUTHORIZED, MSG_UNKNOWN_TOKEN)

        try:
            expected = TokenSubject(email=email, purpose=Purpose(purpose))
        except ValueError:
            return Outcome.reject(ErrorKind.UNAUTHORIZED, MSG_TOKEN_MISMATCH)
        subject = self._open(token)
        if subject is None or subject != expected or record.purpose != expected.purpose:
            return Outcome.reject(ErrorKind.UNAUTHORIZED, MSG_TOKEN_MISMATCH)

        if record.is_expired(self.clock()):
            return Outcome.reject(ErrorKind.UNAUTHORIZED, MSG_OTP_EXPIRED)

        if not self.hasher.verify(otp, record.code_hash):
            return Outcome.reject(ErrorKind.UNAUTHORIZED, MSG_BAD_OTP)

        user = None
        if subject.purpose == Purpose.ACCOUNT_VERIFICATION:
            user = self.credentials.find_by_email(subject.email)
            if user is None:
                return Outcome.reject(ErrorKind.NOT_FOUND, MSG_USER_NOT_FOUND)

        # Claim the record before applying the side effect: of two racing
        # verifications (or a verify racing a resend) only one deletes it.
        if not self.otps.destroy(token):
            return Outcome.reject(ErrorKind.UNAUTHORIZED, MSG_TOKEN_CONSUMED)

        if user is not None:
            self.credentials.update_verified(user.id, True)
        return Outcome.ok(MSG_OTP_VERIFIED)

    @_workflow
    def resend_otp(self, token: str) -> Outcome:
        """Replace a pending OTP with a fresh one of the same purpose."""
        record = self.otps.find(token)
        if record is None:
            return Outcome.reject(ErrorKind.UNAUTHORIZED, MSG_UNKNOWN_TOKEN)
        subject = self._open(token)
        if subject is None:
            return Outcome.reject(ErrorKind.UNAUTHORIZED, MSG_TOKEN_MISMATCH)

        self.otps.destroy(token)

        user = self.credentials.find_by_email(subject.email, only_active=True)
        if user is None:
            return Outcome.reject(ErrorKind.UNAUTHORIZED, MSG_RESEND_NO_USER)

        self._issue_otp(user.email, user.first_name, subject.purpose)
        return Outcome.ok(MSG_OTP_RESENT)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    @_workflow
    def forgot_password(self, email: str) -> Outcome:
        """Issue (or replace) the reset token for email and mail the link."""
        user = self.credentials.find_by_email(email)
        if user is None:
            return Outcome.reject(ErrorKind.CONFLICT, MSG_NO_SUCH_EMAIL)

        token = self.codec.seal(TokenSubject(email=email, purpose=Purpose.RESET_PASSWORD))
        self.resets.issue(email, token, int(self.clock()) + self.reset_expire_seconds)

        url = f"{self.client_url}/reset-password/{token}"
        html = render_reset_password_email(self.app_name, user.first_name, url, self.reset_expire_seconds // 60)
        self.mailer.send(email, f"Reset Password | {self.app_name}", html)
        return Outcome.ok(MSG_RESET_SENT)

    @_workflow
    def reset_password(self, token: str, new_password: str) -> Outcome:
        """Claim a live reset token and set the new password."""
        row = self.resets.find_by_token(token)
        if row is None:
            return Outcome.reject(ErrorKind.FORBIDDEN, MSG_RESET_INVALID)
        if row.is_expired(self.clock()):
            return Outcome.reject(ErrorKind.UNAUTHORIZED, MSG_RESET_EXPIRED)

        subject = self._open(token)
        if (
            subject is None
            or subject.email != row.email
            or subject.purpose != Purpose.RESET_PASSWORD
            or not self.credentials.exists_by_email(subject.email)
        ):
            return Outcome.reject(ErrorKind.FORBIDDEN, MSG_RESET_INVALID)

        # Single-use: only the caller that deletes the row may set the password.
        if not self.resets.claim(token):
            return Outcome.reject(ErrorKind.FORBIDDEN, MSG_RESET_INVALID)
        self.credentials.update_password(subject.email, self.hasher.hash(new_password))
        return Outcome.ok(MSG_PASSWORD_UPDATED)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    @_workflow
    def purge_expired(self) -> Outcome:
        """Delete expired OTP and reset rows. Not part of any request workflow."""
        counts = purge_expired(self.otps, self.resets, self.clock())
        return Outcome.ok(MSG_PURGED, data=counts)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue_otp(self, email: str, name: str, purpose: Purpose) -> str:
        code = generate_otp_code(self.otp_length)
        token = self.codec.seal(TokenSubject(email=email, purpose=purpose))
        self.otps.destroy_for(email, purpose)
        self.otps.issue(
            token=token,
            code_hash=self.hasher.hash(code),
            purpose=purpose,
            email=email,
            expires_at=int(self.clock()) + self.otp_expire_seconds,
        )
        url = f"{self.client_url}/verify/{token}"
        html = render_otp_email(self.app_name, name, code, url, self.otp_expire_seconds // 60)
        self.mailer.send(email, f"OTP | {self.app_name}", html)
        logger.info("OTP issued (purpose=%s)", purpose.value)
        return token

    def _open(self, token: str) -> TokenSubject | None:
        try:
            return self.codec.open(token)
        except TokenDecodeError:
            return None
