"""
api/responses.py -- Map orchestrator Outcomes onto HTTP responses.

The workflow decides the status code; routes only serialize. Keeping the
mapping in one place means every endpoint emits the same envelopes.
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from verification.outcomes import Outcome, new_request_code


def request_code(request: Request) -> str:
    """Correlation code assigned by the request-code middleware."""
    return getattr(request.state, "request_code", None) or new_request_code()


def outcome_response(outcome: Outcome, no_store: bool = False) -> JSONResponse:
    resp = JSONResponse(status_code=outcome.status_code, content=outcome.body)
    if no_store:
        resp.headers["Cache-Control"] = "no-store"
    return resp
