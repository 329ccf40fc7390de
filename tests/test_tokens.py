"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

Covers:
  - generate_otp_code(): length, digits only, leading zeros kept
  - SessionIssuer.authenticate(): right / wrong password, missing user
  - SessionIssuer.issue(): claim bundle shape, no password_hash, iat / exp
  - SessionIssuer.decode(): bad signature, expired, malformed claims -> None
"""

from __future__ import annotations

import time
from unittest.mock import patch

from jose import jwt

from auth.hashing import SecretHasher
from auth.models import Credential, Role
from auth.tokens import SessionIssuer, generate_otp_code


def _credential(hasher: SecretHasher, password: str = "pw12345678") -> Credential:
    return Credential(
        id=7,
        email="a@x.com",
        first_name="Ada",
        last_name="Lovelace",
        password_hash=hasher.hash(password),
        role=Role.ADMIN,
        is_verified=True,
    )


# ---------------------------------------------------------------------------
# OTP codes
# ---------------------------------------------------------------------------


def test_otp_code_shape() -> None:
    for length in (4, 6, 10):
        code = generate_otp_code(length)
        assert len(code) == length
        assert code.isdigit()


def test_otp_code_keeps_leading_zeros() -> None:
    with patch("auth.tokens.secrets.randbelow", return_value=42):
        assert generate_otp_code(6) == "000042"


# ---------------------------------------------------------------------------
# authenticate
# ---------------------------------------------------------------------------


def test_authenticate_success(issuer: SessionIssuer, hasher: SecretHasher) -> None:
    session = issuer.authenticate(_credential(hasher), "pw12345678")
    assert session is not None
    assert session.user["email"] == "a@x.com"
    assert session.user["role"] == int(Role.ADMIN)


def test_authenticate_wrong_password(issuer: SessionIssuer, hasher: SecretHasher) -> None:
    assert issuer.authenticate(_credential(hasher), "wrong-password") is None


def test_authenticate_missing_user_still_hashes(issuer: SessionIssuer) -> None:
    with patch.object(issuer._hasher, "verify", wraps=issuer._hasher.verify) as spy:
        assert issuer.authenticate(None, "pw12345678") is None
    spy.assert_called_once()


# ---------------------------------------------------------------------------
# issue / decode
# ---------------------------------------------------------------------------


def test_issue_claims(issuer: SessionIssuer, hasher: SecretHasher) -> None:
    before = int(time.time())
    session = issuer.issue(_credential(hasher))
    claims = issuer.decode(session.token)
    assert claims is not None
    assert claims["sub"] == "7"
    assert "password_hash" not in claims["user"]
    assert claims["user"]["is_verified"] is True
    assert claims["iat"] >= before
    assert claims["exp"] == claims["iat"] + 3600
    assert session.claims["iat"] == claims["iat"]


def test_issue_without_expiry(hasher: SecretHasher, secret_key: str) -> None:
    issuer = SessionIssuer(secret_key, hasher, expire_seconds=0)
    session = issuer.issue(_credential(hasher))
    claims = issuer.decode(session.token)
    assert "iat" in claims
    assert "exp" not in claims


def test_issue_with_week_ttl_matches_signed_claims(hasher: SecretHasher, secret_key: str) -> None:
    issuer = SessionIssuer(secret_key, hasher, expire_seconds=7 * 24 * 3600)
    session = issuer.issue(_credential(hasher))
    assert isinstance(session.claims["exp"], int)
    assert session.claims["exp"] - session.claims["iat"] == 7 * 24 * 3600
    assert issuer.decode(session.token) == session.claims


def test_decode_bad_signature(issuer: SessionIssuer, hasher: SecretHasher) -> None:
    other = SessionIssuer("another-secret-key-0123456789abcdef", hasher)
    token = other.issue(_credential(hasher)).token
    assert issuer.decode(token) is None


def test_decode_expired(issuer: SessionIssuer, secret_key: str) -> None:
    now = int(time.time())
    token = jwt.encode(
        {"sub": "1", "user": {"id": 1, "role": 2}, "iat": now - 7200, "exp": now - 3600},
        secret_key,
        algorithm="HS256",
    )
    assert issuer.decode(token) is None


def test_decode_garbage(issuer: SessionIssuer) -> None:
    assert issuer.decode("not.a.jwt") is None
    assert issuer.decode("") is None


def test_decode_requires_user_claims(issuer: SessionIssuer, secret_key: str) -> None:
    token = jwt.encode({"sub": "1", "iat": int(time.time())}, secret_key, algorithm="HS256")
    assert issuer.decode(token) is None
