"""
verification/maintenance.py -- Sweep expired OTP and reset-token rows.

Expiry is enforced lazily by the workflows; this only reclaims space.
Run it from the CLI (`python main.py purge`), the admin endpoint, or the
background loop started by the API when PURGE_INTERVAL_SECONDS > 0.
Deleting an expired row never changes the outcome of a workflow: an
expired token is rejected whether or not it is still stored.
"""

from __future__ import annotations

import logging

from verification.store import OtpStore, ResetTokenStore

logger = logging.getLogger("otpgate.maintenance")


def purge_expired(otps: OtpStore, resets: ResetTokenStore, now: float) -> dict[str, int]:
    """Delete rows whose expires_at <= now. Returns per-table counts."""
    counts = {
        "otp_tokens": otps.purge_expired(now),
        "reset_tokens": resets.purge_expired(now),
    }
    if counts["otp_tokens"] or counts["reset_tokens"]:
        logger.info("Purged expired tokens: %d OTP, %d reset", counts["otp_tokens"], counts["reset_tokens"])
    return counts
