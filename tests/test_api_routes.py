"""
tests/test_api_routes.py -- Integration tests for the /api/v1 routes.

These tests exercise the full stack: FastAPI routing -> request validation ->
VerificationOrchestrator -> stores -> response envelopes. Unit testing
individual route functions would miss middleware, dependency injection and
exception-handler behaviour -- integration tests are the right tool here.

Coverage:
  - Register -> verify -> login -> /auth/me happy path
  - Validation failures return the 422 envelope and never reach a workflow
  - Passwords are hashed as typed; only identifying fields are trimmed
  - Forgot / reset password over HTTP
  - Session guards: missing header 400, bad token 401, admin-only purge 403/200
  - Email failure surfaces as the 500 fault envelope with X-Request-Code
  - Login rate limit returns 429 with Retry-After

Fixtures used (from conftest.py):
  - api_client: (client, mailer, clock) over a fresh in-memory database
  - make_api_user: inserts a user into the client's database
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from auth.models import AccountStatus, Role

REGISTER_BODY = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "email": "a@x.com",
    "password": "pw12345678",
}


def _login(client: TestClient, email: str = "a@x.com", password: str = "pw12345678"):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestRegistrationFlow:
    def test_register_verify_login_me(self, api_client) -> None:
        client, mailer, _clock = api_client

        resp = client.post("/api/v1/auth/register", json=REGISTER_BODY)
        assert resp.status_code == 200, resp.text
        assert resp.json()["success"] is True
        assert "token" not in resp.json()

        # Unverified login re-sends an OTP instead of issuing a session.
        resp = _login(client)
        assert resp.status_code == 200
        assert "token" not in resp.json()
        assert len(mailer.sent) == 2

        resp = client.post(
            "/api/v1/otp/verify",
            json={
                "email": "a@x.com",
                "token": mailer.last_verify_token(),
                "otp": mailer.last_otp(),
                "type": "account-verification",
            },
        )
        assert resp.status_code == 200, resp.text
        assert resp.json() == {"success": True, "message": "OTP verified successfully."}

        resp = _login(client)
        assert resp.status_code == 200
        body = resp.json()
        assert body["role"] == "USER"
        assert body["data"]["is_verified"] is True
        assert resp.headers["Cache-Control"] == "no-store"

        resp = client.get("/api/v1/auth/me", headers=_bearer(body["token"]))
        assert resp.status_code == 200
        assert resp.json()["data"]["email"] == "a@x.com"

    def test_password_kept_exactly_as_typed(self, api_client) -> None:
        client, mailer, _ = api_client
        padded = "   pw12345   "
        resp = client.post("/api/v1/auth/register", json={**REGISTER_BODY, "email": " a@x.com ", "password": padded})
        assert resp.status_code == 200, resp.text
        client.post(
            "/api/v1/otp/verify",
            json={
                "email": "a@x.com",
                "token": mailer.last_verify_token(),
                "otp": mailer.last_otp(),
                "type": "account-verification",
            },
        )
        assert _login(client, password=padded).status_code == 200
        assert _login(client, password=padded.strip()).status_code == 401

    def test_duplicate_register(self, api_client) -> None:
        client, _, _ = api_client
        client.post("/api/v1/auth/register", json=REGISTER_BODY)
        resp = client.post("/api/v1/auth/register", json=REGISTER_BODY)
        assert resp.status_code == 409
        assert resp.json() == {"success": False, "message": "Email already exists."}

    def test_verify_wrong_purpose(self, api_client) -> None:
        client, mailer, _ = api_client
        client.post("/api/v1/auth/register", json=REGISTER_BODY)
        resp = client.post(
            "/api/v1/otp/verify",
            json={
                "email": "a@x.com",
                "token": mailer.last_verify_token(),
                "otp": mailer.last_otp(),
                "type": "reset-password",
            },
        )
        assert resp.status_code == 401
        assert "invalid token" in resp.json()["message"].lower()

    def test_resend(self, api_client) -> None:
        client, mailer, _ = api_client
        client.post("/api/v1/auth/register", json=REGISTER_BODY)
        old_token = mailer.last_verify_token()
        resp = client.post("/api/v1/otp/resend", json={"token": old_token})
        assert resp.status_code == 200
        assert mailer.last_verify_token() != old_token


class TestValidation:
    @pytest.mark.parametrize(
        "body",
        [
            {**REGISTER_BODY, "email": "not-an-email"},
            {**REGISTER_BODY, "password": "short"},
            {k: v for k, v in REGISTER_BODY.items() if k != "first_name"},
        ],
    )
    def test_register_validation(self, api_client, body: dict) -> None:
        client, mailer, _ = api_client
        resp = client.post("/api/v1/auth/register", json=body)
        assert resp.status_code == 422
        data = resp.json()
        assert data["success"] is False
        assert data["message"] == "Validation failed."
        assert data["errors"]
        assert mailer.sent == []

    def test_verify_unknown_purpose(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.post(
            "/api/v1/otp/verify",
            json={"email": "a@x.com", "token": "abc", "otp": "123456", "type": "admin"},
        )
        assert resp.status_code == 422
        assert any(e.startswith("type:") for e in resp.json()["errors"])


class TestPasswordReset:
    def test_forgot_and_reset(self, api_client, make_api_user) -> None:
        client, mailer, _ = api_client
        make_api_user()

        resp = client.post("/api/v1/auth/forgot-password", json={"email": "a@x.com"})
        assert resp.status_code == 200

        resp = client.post(
            "/api/v1/auth/reset-password",
            json={"token": mailer.last_reset_token(), "password": "new-password-1"},
        )
        assert resp.status_code == 200
        assert resp.json()["message"] == "Password updated successfully."
        assert _login(client, password="new-password-1").status_code == 200

    def test_forgot_unknown_email(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.post("/api/v1/auth/forgot-password", json={"email": "nobody@x.com"})
        assert resp.status_code == 409

    def test_reset_invalid_token(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.post("/api/v1/auth/reset-password", json={"token": "abcdef", "password": "new-password-1"})
        assert resp.status_code == 403


class TestSessionGuards:
    def test_me_without_header(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_me_with_bad_token(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.get("/api/v1/auth/me", headers=_bearer("not.a.jwt"))
        assert resp.status_code == 401

    def test_purge_requires_admin(self, api_client, make_api_user) -> None:
        client, _, _ = api_client
        make_api_user()
        token = _login(client).json()["token"]
        resp = client.post("/api/v1/admin/maintenance/purge", headers=_bearer(token))
        assert resp.status_code == 403

    def test_purge_as_admin(self, api_client, make_api_user) -> None:
        client, _, clock = api_client
        make_api_user(email="root@x.com", role=Role.ADMIN)
        client.post("/api/v1/auth/register", json=REGISTER_BODY)
        clock.advance(601)

        token = _login(client, email="root@x.com").json()["token"]
        resp = client.post("/api/v1/admin/maintenance/purge", headers=_bearer(token))
        assert resp.status_code == 200, resp.text
        assert resp.json()["data"] == {"otp_tokens": 1, "reset_tokens": 0}

    def test_blocked_login(self, api_client, make_api_user) -> None:
        client, _, _ = api_client
        make_api_user(status=AccountStatus.BLOCKED)
        resp = _login(client)
        assert resp.status_code == 403


class TestFaultsAndLimits:
    def test_email_failure_returns_fault_envelope(self, api_client) -> None:
        client, mailer, _ = api_client
        mailer.fail = True
        resp = client.post("/api/v1/auth/register", json=REGISTER_BODY)
        assert resp.status_code == 500
        body = resp.json()
        assert body["success"] is False
        assert body["message"] == "Something went wrong."
        assert body["request_code"] == resp.headers["X-Request-Code"]

    def test_unknown_route_uses_envelope(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.get("/api/v1/nope")
        assert resp.status_code == 404
        assert resp.json()["success"] is False

    def test_login_rate_limited(self, api_client, monkeypatch) -> None:
        client, _, _ = api_client
        monkeypatch.setattr(limiter, "enabled", True)
        limiter.reset()
        try:
            statuses = [_login(client, email="nobody@x.com").status_code for _ in range(11)]
        finally:
            limiter.reset()
        assert statuses[:10] == [404] * 10
        assert statuses[10] == 429
