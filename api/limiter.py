"""
api/limiter.py -- Shared slowapi rate limiter instance and client IP lookup.

Import this in both api/main.py (to mount as middleware) and the v1 route
modules (to apply per-route limits with @limiter.limit()).

A single shared instance means every route shares the same in-memory
counter store. Separate instances per module would each keep an isolated
counter and the limits would never trigger.
"""

from __future__ import annotations

from slowapi import Limiter
from starlette.requests import Request


def get_client_ip(request: Request) -> str:
    """Return the caller's IP: first X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"


limiter = Limiter(key_func=get_client_ip, storage_uri="memory://")
