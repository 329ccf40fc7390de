"""
tests/conftest.py -- Shared test fixtures for OTPGate unit and integration tests.

This module provides:
  - db: an isolated in-memory Database per test
  - credentials / otps / resets: stores on that database
  - codec, hasher, issuer: real components with test keys (bcrypt rounds=4)
  - mailer: FakeEmailSender that records messages and can be told to fail
  - clock: FakeClock the orchestrator reads instead of time.time()
  - orchestrator: VerificationOrchestrator wired from all of the above
  - make_user / make_api_user: insert a user straight through the store
  - api_client: TestClient over the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

DEBUG must be set before any core/api import so get_settings() generates
SECRET_KEY and ENCRYPTION_KEY instead of raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
import re
import secrets
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any core/api import so get_settings() can
# auto-generate keys in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, wire_services
from auth.codec import SymmetricCodec
from auth.hashing import SecretHasher
from auth.models import AccountStatus, Credential, Role
from auth.store import CredentialStore
from auth.tokens import SessionIssuer
from core.config import get_settings
from core.database import Database
from verification.orchestrator import VerificationOrchestrator
from verification.outcomes import EmailDeliveryError
from verification.store import OtpStore, ResetTokenStore

# Rate limits are exercised explicitly in test_api_routes; everywhere else
# they would make test order matter.
limiter.enabled = False

TEST_SECRET_KEY = "test-secret-key-0123456789abcdef-0123456789"
START_TIME = 1_700_000_000.0

_OTP_RE = re.compile(r"Your OTP is (\d+)")
_VERIFY_URL_RE = re.compile(r"/verify/([0-9a-f]+)")
_RESET_URL_RE = re.compile(r"/reset-password/([0-9a-f]+)")


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeEmailSender:
    """Records every message. Set fail=True to simulate a dead email API."""

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.fail = False

    def send(self, to_address: str, subject: str, html_body: str) -> str:
        if self.fail:
            raise EmailDeliveryError("Email delivery failed after 3 attempts: HTTP 503")
        self.sent.append({"to": to_address, "subject": subject, "html": html_body})
        return f"fake-{len(self.sent)}"

    def close(self) -> None:
        pass

    @property
    def last(self) -> dict:
        return self.sent[-1]

    def last_otp(self) -> str:
        return _OTP_RE.search(self.last["html"]).group(1)

    def last_verify_token(self) -> str:
        return _VERIFY_URL_RE.search(self.last["html"]).group(1)

    def last_reset_token(self) -> str:
        return _RESET_URL_RE.search(self.last["html"]).group(1)


class FakeClock:
    """Callable clock frozen at `now` until advanced."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


def _memory_url(name: str) -> str:
    return f"sqlite:///file:{name}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@pytest.fixture
def db_url() -> str:
    return _memory_url("test_otpgate")


@pytest.fixture
def db(db_url: str) -> Generator[Database, None, None]:
    database = Database(db_url)
    yield database
    database.close()


@pytest.fixture
def credentials(db: Database) -> CredentialStore:
    return CredentialStore(db)


@pytest.fixture
def otps(db: Database) -> OtpStore:
    return OtpStore(db)


@pytest.fixture
def resets(db: Database) -> ResetTokenStore:
    return ResetTokenStore(db)


@pytest.fixture
def hasher() -> SecretHasher:
    return SecretHasher(rounds=4)


@pytest.fixture
def codec() -> SymmetricCodec:
    return SymmetricCodec(secrets.token_bytes(32))


@pytest.fixture
def issuer(hasher: SecretHasher) -> SessionIssuer:
    return SessionIssuer(TEST_SECRET_KEY, hasher, expire_seconds=3600)


@pytest.fixture
def mailer() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def orchestrator(credentials, otps, resets, codec, hasher, issuer, mailer, clock) -> VerificationOrchestrator:
    return VerificationOrchestrator(
        credentials=credentials,
        otps=otps,
        resets=resets,
        codec=codec,
        hasher=hasher,
        issuer=issuer,
        mailer=mailer,
        app_name="OTPGate",
        client_url="http://localhost:3000/",
        otp_length=6,
        otp_expire_seconds=600,
        reset_expire_seconds=600,
        clock=clock,
    )


def insert_user(
    credentials: CredentialStore,
    hasher: SecretHasher,
    email: str = "a@x.com",
    password: str = "pw12345678",
    role: Role = Role.USER,
    status: AccountStatus = AccountStatus.ACTIVE,
    is_verified: bool = True,
) -> int:
    """Insert a user directly through the store and return its id."""
    return credentials.create(
        Credential(
            email=email,
            first_name="Ada",
            last_name="Lovelace",
            password_hash=hasher.hash(password),
            role=role,
            status=status,
            is_verified=is_verified,
        )
    )


@pytest.fixture
def make_user(credentials: CredentialStore, hasher: SecretHasher):
    """Return a factory that inserts a user and returns its id."""

    def _make(**kwargs) -> int:
        return insert_user(credentials, hasher, **kwargs)

    return _make


@pytest.fixture
def secret_key() -> str:
    return TEST_SECRET_KEY


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(db: Database, mailer: FakeEmailSender, clock: FakeClock):
    """Return an async context manager that replaces the real lifespan.

    Wires the test database, fake mailer and fake clock through the same
    wire_services() the real lifespan uses, so routes see real stores,
    codec, issuer and orchestrator.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, db, get_settings(), mailer, clock=clock)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture
def api_client() -> Generator[tuple[TestClient, FakeEmailSender, FakeClock], None, None]:
    """Yield (client, mailer, clock) over a fresh in-memory database.

    Function-scoped: every test starts with no users and no pending tokens.
    """
    database = Database(_memory_url("test_api"))
    mailer = FakeEmailSender()
    clock = FakeClock()
    app.router.lifespan_context = _patch_lifespan(database, mailer, clock)

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, mailer, clock

    database.close()


@pytest.fixture
def make_api_user(api_client):
    """Return a factory that inserts a user into the api_client's database."""
    state = api_client[0].app.state

    def _make(**kwargs) -> int:
        return insert_user(state.credentials, state.hasher, **kwargs)

    return _make
