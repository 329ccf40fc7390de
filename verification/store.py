"""
verification/store.py -- SQLAlchemy Core persistence for OTP and reset tokens.

Pattern: Repository + Data Mapper, same as auth/store.py.

OtpStore
  Keyed by the sealed token. issue() is a plain insert; it does not look for
  earlier codes. The orchestrator invalidates those explicitly (destroy_for)
  before issuing a new one.

  destroy() doubles as the single-use claim: a DELETE is atomic per row, so
  of two concurrent verifications of the same token exactly one sees
  rowcount == 1.

ResetTokenStore
  Keyed by email. issue() is an atomic upsert (INSERT ... ON CONFLICT DO
  UPDATE), so two concurrent forgot-password requests for one email can
  never leave two live rows behind. A delete-then-insert pair could.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from sqlalchemy import Column, Integer, String, Table, Text, func, select
from sqlalchemy.dialects import mysql, postgresql, sqlite

from auth.models import Purpose
from core.database import Database, metadata
from verification.models import OneTimeToken, ResetToken

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_otp_tokens = Table(
    "otp_tokens",
    metadata,
    Column("token", String(1024), primary_key=True),
    Column("code_hash", Text, nullable=False),
    Column("expires_at", Integer, nullable=False, index=True),
    Column("purpose", String(50), nullable=False),
    Column("email", String(255), nullable=False, index=True),
)

_reset_tokens = Table(
    "reset_tokens",
    metadata,
    Column("email", String(255), primary_key=True),
    Column("token", String(1024), nullable=False, unique=True),
    Column("expires_at", Integer, nullable=False, index=True),
)

# Dialect-specific INSERT constructs that support upserts.
_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}
_MYSQL_DIALECTS = ("mysql", "mariadb")


# ---------------------------------------------------------------------------
# OTP repository
# ---------------------------------------------------------------------------


class OtpStore:
    """Repository for OneTimeToken records."""

    def __init__(self, db: Database) -> None:
        self.db = db
        db.ensure_tables(_otp_tokens)

    def issue(self, token: str, code_hash: str, purpose: Purpose, email: str, expires_at: int) -> None:
        self.db.execute(
            _otp_tokens.insert().values(
                token=token,
                code_hash=code_hash,
                expires_at=int(expires_at),
                purpose=purpose.value,
                email=email,
            )
        )

    def find(self, token: str) -> OneTimeToken | None:
        row = self.db.query_first(_otp_tokens.select().where(_otp_tokens.c.token == token))
        return _row_to_otp(row) if row is not None else None

    def find_for(self, email: str, purpose: Purpose) -> list[OneTimeToken]:
        """All pending records (expired or not) for an email/purpose pair."""
        rows = self.db.query_all(
            _otp_tokens.select().where((_otp_tokens.c.email == email) & (_otp_tokens.c.purpose == purpose.value))
        )
        return [_row_to_otp(r) for r in rows]

    def destroy(self, token: str) -> bool:
        """Delete a record. Idempotent; True only for the call that removed it."""
        return self.db.execute(_otp_tokens.delete().where(_otp_tokens.c.token == token)) > 0

    def destroy_for(self, email: str, purpose: Purpose) -> int:
        """Invalidate every pending record for an email/purpose pair."""
        return self.db.execute(
            _otp_tokens.delete().where((_otp_tokens.c.email == email) & (_otp_tokens.c.purpose == purpose.value))
        )

    def purge_expired(self, now: float) -> int:
        return self.db.execute(_otp_tokens.delete().where(_otp_tokens.c.expires_at <= int(now)))


# ---------------------------------------------------------------------------
# Reset-token repository
# ---------------------------------------------------------------------------


class ResetTokenStore:
    """Repository for ResetToken records. One row per email."""

    def __init__(self, db: Database) -> None:
        if db.dialect not in _UPSERT_INSERTS and db.dialect not in _MYSQL_DIALECTS:
            raise ValueError(f"No atomic upsert available for dialect {db.dialect!r}")
        self.db = db
        db.ensure_tables(_reset_tokens)

    def issue(self, email: str, token: str, expires_at: int) -> None:
        """Store the reset token for email, replacing any existing one atomically."""
        values = {"email": email, "token": token, "expires_at": int(expires_at)}
        dialect = self.db.dialect
        if dialect in _UPSERT_INSERTS:
            stmt = _UPSERT_INSERTS[dialect](_reset_tokens).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[_reset_tokens.c.email],
                set_={"token": stmt.excluded.token, "expires_at": stmt.excluded.expires_at},
            )
        else:
            stmt = mysql.insert(_reset_tokens).values(**values)
            stmt = stmt.on_duplicate_key_update(token=stmt.inserted.token, expires_at=stmt.inserted.expires_at)
        self.db.execute(stmt)

    def find_by_token(self, token: str) -> ResetToken | None:
        row = self.db.query_first(_reset_tokens.select().where(_reset_tokens.c.token == token))
        return _row_to_reset(row) if row is not None else None

    def find_by_email(self, email: str) -> ResetToken | None:
        row = self.db.query_first(_reset_tokens.select().where(_reset_tokens.c.email == email))
        return _row_to_reset(row) if row is not None else None

    def count_for(self, email: str) -> int:
        row = self.db.query_first(select(func.count()).select_from(_reset_tokens).where(_reset_tokens.c.email == email))
        return int(row[0]) if row is not None else 0

    def claim(self, token: str) -> bool:
        """Delete the row holding token. True only for the caller that removed it."""
        return self.db.execute(_reset_tokens.delete().where(_reset_tokens.c.token == token)) > 0

    def delete_by_email(self, email: str) -> int:
        return self.db.execute(_reset_tokens.delete().where(_reset_tokens.c.email == email))

    def purge_expired(self, now: float) -> int:
        return self.db.execute(_reset_tokens.delete().where(_reset_tokens.c.expires_at <= int(now)))


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_otp(row) -> OneTimeToken:
    return OneTimeToken(
        token=row.token,
        code_hash=row.code_hash,
        expires_at=row.expires_at,
        purpose=Purpose(row.purpose),
        email=row.email,
    )


def _row_to_reset(row) -> ResetToken:
    return ResetToken(email=row.email, token=row.token, expires_at=row.expires_at)
