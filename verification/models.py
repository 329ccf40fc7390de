"""
verification/models.py -- Pending verification challenges.

Both records are keyed by (or carry) a sealed token -- see auth/codec.py.
Expiry is lazy: a record past expires_at is dead but stays in the table
until a workflow reads it or verification/maintenance.py sweeps it.
"""

from __future__ import annotations

from dataclasses import dataclass

from auth.models import Purpose


@dataclass
class OneTimeToken:
    """A pending OTP challenge. code_hash is a bcrypt digest, never the code."""

    token: str
    code_hash: str
    expires_at: int  # unix seconds
    purpose: Purpose
    email: str

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class ResetToken:
    """A pending password reset. At most one per email (email is the primary key)."""

    email: str
    token: str
    expires_at: int  # unix seconds

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at
