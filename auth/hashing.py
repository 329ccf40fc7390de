"""
auth/hashing.py -- Adaptive one-way hashing for passwords and OTP codes.

bcrypt is used directly rather than through passlib: passlib's wrap-bug
detection feeds bcrypt a >72-byte secret, which bcrypt 4.x+ rejects.

The same hasher stores both login passwords and the 6-digit OTP codes. A
6-digit code only has a million values, so bcrypt's cost factor is what
keeps a leaked otp_tokens table from being reversed instantly.

Layer rule: no imports from api/ or verification/.
"""

from __future__ import annotations

import bcrypt

# bcrypt only reads the first 72 bytes; newer releases raise instead of
# silently truncating, so truncate here the same way for hash and verify.
_BCRYPT_MAX_BYTES = 72


def _encode(secret: str) -> bytes:
    return secret.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class SecretHasher:
    """bcrypt hash/verify with a fixed cost factor.

    Usage:
        hasher = SecretHasher(rounds=settings.bcrypt_rounds)
        digest = hasher.hash("pw12345678")
        hasher.verify("pw12345678", digest)  # True
    """

    def __init__(self, rounds: int = 12) -> None:
        if not 4 <= rounds <= 31:
            raise ValueError("bcrypt rounds must be between 4 and 31")
        self.rounds = rounds

    def hash(self, secret: str) -> str:
        """Return a bcrypt digest (salt embedded) of the given secret."""
        return bcrypt.hashpw(_encode(secret), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, secret: str, digest: str) -> bool:
        """Return True if secret matches digest. Malformed digests return False."""
        try:
            return bcrypt.checkpw(_encode(secret), digest.encode("utf-8"))
        except (ValueError, TypeError, AttributeError):
            return False
