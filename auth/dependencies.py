"""
auth/dependencies.py -- FastAPI Depends() helpers for session-protected routes.

Session credentials arrive as "Authorization: Bearer <jwt>". The claims
carried in the token are trusted as-is once the signature (and exp, if
present) verifies; the user row is not re-read on every request.

get_current_claims() -- 400 when the header is missing, 401 when the token
                        is malformed, tampered with or expired.
require_user()       -- 403 for blocked or unverified accounts, 401 unless
                        the role is USER or SUB_USER.
require_admin()      -- 401 for blocked accounts, 403 unless the role is ADMIN.

Layer rule: no imports from api/ or verification/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from auth.models import AccountStatus, Role
from auth.tokens import SessionIssuer


def get_current_claims(request: Request) -> dict:
    """Return the verified claim bundle for the request's bearer token.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(claims: dict = Depends(get_current_claims)): ...
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer ") or not auth_header[7:].strip():
        raise HTTPException(status_code=400, detail="Authorization token is required.")

    issuer: SessionIssuer = request.app.state.session_issuer
    claims = issuer.decode(auth_header[7:].strip())
    if claims is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token.")
    return claims


def require_user(claims: dict = Depends(get_current_claims)) -> dict:
    """Require an active, verified USER or SUB_USER session."""
    user = claims["user"]
    if user.get("status") == AccountStatus.BLOCKED:
        raise HTTPException(status_code=403, detail="Account is blocked, Please contact support.")
    if not user.get("is_verified"):
        raise HTTPException(status_code=403, detail="Account is not verified.")
    if user.get("role") not in (Role.USER, Role.SUB_USER):
        raise HTTPException(status_code=401, detail="Access denied.")
    return claims


def require_admin(claims: dict = Depends(get_current_claims)) -> dict:
    """Require an ADMIN session that is not blocked."""
    user = claims["user"]
    if user.get("status") == AccountStatus.BLOCKED:
        raise HTTPException(status_code=401, detail="Account is blocked, Please contact support.")
    if user.get("role") != Role.ADMIN:
        raise HTTPException(status_code=403, detail="Admin access required.")
    return claims
