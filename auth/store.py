"""
auth/store.py -- SQLAlchemy Core persistence for credentials.

Pattern: Repository + Data Mapper. CredentialStore is the repository;
_row_to_credential is the mapper. Orchestrator and route code never touch
SQL directly; statements are handed to the shared core.database.Database.

Security:
  All queries use bound parameters. No f-strings in SQL.
  password_hash is only selected when the caller asks for it, so ordinary
  lookups cannot leak it into logs or claims by accident.

Invariants:
  email is UNIQUE at the database level. exists_by_email() is a fast path
  for a friendly 409; a concurrent duplicate registration still fails with
  IntegrityError from create(), which the caller maps to the same 409.

Layer rule: no imports from api/ or verification/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Table, Text, func, select

from auth.models import AccountStatus, Credential, Role
from core.database import Database, metadata

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("first_name", String(100), nullable=False, server_default=""),
    Column("last_name", String(100), nullable=False, server_default=""),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role_id", Integer, nullable=False, server_default=str(int(Role.USER))),
    Column("status", Integer, nullable=False, server_default=str(int(AccountStatus.ACTIVE))),
    Column("is_verified", Integer, nullable=False, server_default="0"),
    Column("last_ip", String(64)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Every column except password_hash.
_PUBLIC_COLUMNS = [c for c in _users.c if c.name != "password_hash"]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for Credential entities.

    Usage:
        store = CredentialStore(db)
        uid = store.create(Credential(email="a@x.com", password_hash=hasher.hash("secret")))
        user = store.find_by_email("a@x.com")
    """

    def __init__(self, db: Database) -> None:
        self.db = db
        db.ensure_tables(_users)

    def create(self, credential: Credential) -> int:
        """Insert a new credential and return its database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        now = _now_iso()
        return self.db.insert(
            _users.insert().values(
                first_name=credential.first_name,
                last_name=credential.last_name,
                email=credential.email,
                password_hash=credential.password_hash,
                role_id=int(credential.role),
                status=int(credential.status),
                is_verified=1 if credential.is_verified else 0,
                last_ip=credential.last_ip,
                created_at=now,
                updated_at=now,
            )
        )

    def find_by_email(
        self,
        email: str,
        include_password_hash: bool = False,
        only_active: bool = False,
    ) -> Credential | None:
        """Look up a credential by exact email (case-sensitive).

        only_active=True hides blocked accounts, so "absent" and "blocked"
        look the same to the caller.
        """
        columns = list(_users.c) if include_password_hash else _PUBLIC_COLUMNS
        query = select(*columns).where(_users.c.email == email)
        if only_active:
            query = query.where(_users.c.status == int(AccountStatus.ACTIVE))
        row = self.db.query_first(query)
        return _row_to_credential(row) if row is not None else None

    def find_by_id(self, user_id: int) -> Credential | None:
        row = self.db.query_first(select(*_PUBLIC_COLUMNS).where(_users.c.id == user_id))
        return _row_to_credential(row) if row is not None else None

    def exists_by_email(self, email: str) -> bool:
        count = self.db.query_first(select(func.count(_users.c.id)).where(_users.c.email == email))
        return bool(count and count[0])

    def update_ip(self, user_id: int, ip: str | None) -> bool:
        """Record the caller's IP after a successful login."""
        return self._update(_users.c.id == user_id, last_ip=ip)

    def update_password(self, email: str, password_hash: str) -> bool:
        return self._update(_users.c.email == email, password_hash=password_hash)

    def update_verified(self, user_id: int, is_verified: bool) -> bool:
        return self._update(_users.c.id == user_id, is_verified=1 if is_verified else 0)

    def update_status(self, user_id: int, status: AccountStatus) -> bool:
        return self._update(_users.c.id == user_id, status=int(status))

    def _update(self, where, **fields) -> bool:
        """Apply fields to the row matched by where. Returns True if a row changed."""
        fields["updated_at"] = _now_iso()
        return self.db.execute(_users.update().where(where).values(**fields)) > 0


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_credential(row) -> Credential:
    # password_hash is absent from rows selected with _PUBLIC_COLUMNS.
    return Credential(
        id=row.id,
        first_name=row.first_name,
        last_name=row.last_name,
        email=row.email,
        password_hash=getattr(row, "password_hash", None),
        role=Role(row.role_id),
        status=AccountStatus(row.status),
        is_verified=bool(row.is_verified),
        last_ip=row.last_ip,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
