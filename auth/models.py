"""
auth/models.py -- Domain dataclasses and enums for credentials and sessions.

Pattern: Data class (pure data container, zero logic beyond serialization
helpers). Stores and the orchestrator do the work.

Layer rule: no imports from api/ or verification/.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum, IntEnum


class Role(IntEnum):
    ADMIN = 1
    USER = 2
    SUB_USER = 3
    BLOGGER = 4


class AccountStatus(IntEnum):
    BLOCKED = 0
    ACTIVE = 1


class Purpose(str, Enum):
    """What a verification token authorizes."""

    ACCOUNT_VERIFICATION = "account-verification"
    RESET_PASSWORD = "reset-password"


@dataclass(frozen=True)
class TokenSubject:
    """The tagged value sealed inside a verification token.

    Kept as two fields rather than an "email,purpose" string so an email
    address containing a comma cannot smuggle in a different purpose.
    """

    email: str
    purpose: Purpose


@dataclass
class Credential:
    """A registered principal.

    password_hash is only populated when the store is asked for it
    (CredentialStore.find_by_email(..., include_password_hash=True)) and is
    never part of the session claim bundle.
    """

    email: str
    first_name: str = ""
    last_name: str = ""
    id: int | None = None
    password_hash: str | None = None
    role: Role = Role.USER
    status: AccountStatus = AccountStatus.ACTIVE
    is_verified: bool = False
    last_ip: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_blocked(self) -> bool:
        return self.status == AccountStatus.BLOCKED

    def to_claims(self) -> dict:
        """Return the JSON-safe claim payload: every field except password_hash."""
        data = asdict(self)
        data.pop("password_hash", None)
        data["role"] = int(self.role)
        data["status"] = int(self.status)
        return data


@dataclass(frozen=True)
class SessionCredential:
    """Signed bearer artifact returned at login.

    token is the encoded JWT; claims is the decoded bundle it carries so the
    caller can echo the user data without decoding its own token.
    """

    token: str
    claims: dict = field(default_factory=dict)

    @property
    def user(self) -> dict:
        return self.claims.get("user", {})
