"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version and database fields
  - No authentication required
  - 503 "degraded" when the database does not answer
  - X-Request-Code header on every response
"""

from __future__ import annotations

from unittest.mock import patch


def test_health_ok(api_client) -> None:
    client, _, _ = api_client
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["database"] == "ok"
    assert data["version"]


def test_health_no_auth_required(api_client) -> None:
    client, _, _ = api_client
    resp = client.get("/api/v1/health", headers={})
    assert resp.status_code == 200


def test_health_degraded_when_database_down(api_client) -> None:
    client, _, _ = api_client
    with patch.object(client.app.state.db, "ping", return_value=False):
        resp = client.get("/api/v1/health")
    assert resp.status_code == 503
    assert resp.json()["status"] == "degraded"
    assert resp.json()["database"] == "error"


def test_request_code_header(api_client) -> None:
    client, _, _ = api_client
    first = client.get("/api/v1/health").headers["X-Request-Code"]
    assert first
    assert "-" in first
