"""
auth/tokens.py -- Session credentials (JWT) and one-time code generation.

Security design decisions:
  JWT: python-jose with HS256. The claim bundle carries the full credential
       (minus password_hash) under "user", plus "sub" and "iat". An "exp"
       claim is added when session_expire_seconds > 0; with 0 the session is
       unbounded and lives until the client discards it. Verification
       returns None on any failure -- the route layer turns that into a 401.

       Claims are the source of truth for role/status checks on later
       requests; auth/dependencies.py does not re-read the user row.

  Authentication: SessionIssuer.authenticate() never distinguishes "no such
       user" from "wrong password". When there is no stored digest it still
       runs bcrypt against a dummy hash so response time does not reveal
       which case occurred.

  OTP codes: secrets.randbelow() -- the random module is not a CSPRNG.

Layer rule: no imports from api/ or verification/.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.hashing import SecretHasher
from auth.models import Credential, SessionCredential

logger = logging.getLogger("otpgate.auth")

_ALGORITHM = "HS256"


def generate_otp_code(length: int = 6) -> str:
    """Return a random numeric code of exactly `length` digits (leading zeros kept)."""
    return f"{secrets.randbelow(10**length):0{length}d}"


class SessionIssuer:
    """Verifies passwords and mints signed session credentials.

    The signing key is process-wide configuration: construct one issuer at
    startup and share it.
    """

    def __init__(self, secret_key: str, hasher: SecretHasher, expire_seconds: int = 0) -> None:
        self._secret_key = secret_key
        self._hasher = hasher
        self.expire_seconds = expire_seconds
        # Computed once so the first login is not measurably slower than the rest.
        self._dummy_hash = hasher.hash("otpgate_timing_dummy")

    # ------------------------------------------------------------------
    # Password authentication
    # ------------------------------------------------------------------

    def authenticate(self, credential: Credential | None, password: str) -> SessionCredential | None:
        """Return a session credential if password matches, None otherwise.

        Status and verification checks belong to the caller; this method only
        answers "does the password match" and signs on success.
        """
        if credential is None or not credential.password_hash:
            self._hasher.verify(password, self._dummy_hash)
            return None
        if not self._hasher.verify(password, credential.password_hash):
            return None
        return self.issue(credential)

    # ------------------------------------------------------------------
    # JWT encode / decode
    # ------------------------------------------------------------------

    def issue(self, credential: Credential) -> SessionCredential:
        """Sign the credential's claim bundle. password_hash is never included."""
        # jwt.encode rewrites datetime claims in place, so stamp ints up front.
        now = datetime.now(timezone.utc)
        claims: dict = {
            "sub": str(credential.id),
            "user": credential.to_claims(),
            "iat": int(now.timestamp()),
        }
        if self.expire_seconds > 0:
            claims["exp"] = int((now + timedelta(seconds=self.expire_seconds)).timestamp())
        token = jwt.encode(dict(claims), self._secret_key, algorithm=_ALGORITHM)
        return SessionCredential(token=token, claims=claims)

    def decode(self, token: str) -> dict | None:
        """Decode and verify a session JWT. Returns the claims or None on any failure."""
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        user = payload.get("user")
        if not isinstance(user, dict) or "id" not in user or "role" not in user:
            return None
        return payload
