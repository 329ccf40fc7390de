"""
api/routes/v1/admin.py -- Administrative maintenance endpoints.

Routes:
  POST /api/v1/admin/maintenance/purge  -- delete expired OTP and reset rows (admin only)

The same sweep runs from `python main.py purge` and, when
PURGE_INTERVAL_SECONDS > 0, from the background loop in api/main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import FaultResponse, PurgeResponse
from api.responses import outcome_response, request_code
from auth.dependencies import require_admin

router = APIRouter()


@router.post("/admin/maintenance/purge", response_model=PurgeResponse, responses={500: {"model": FaultResponse}})
def purge(request: Request, claims: dict = Depends(require_admin)) -> JSONResponse:
    """Sweep expired verification rows now. Returns per-table delete counts."""
    outcome = request.app.state.orchestrator.purge_expired(request_code=request_code(request))
    return outcome_response(outcome)
