"""
verification/outcomes.py -- Typed workflow results and the error taxonomy.

Every orchestrator entry point returns an Outcome: an HTTP status hint plus
the response envelope body. Expected business rejections are Outcomes,
never exceptions. Only unexpected faults (storage, email transport) raise,
and the orchestrator's workflow boundary converts those into a FAULT
Outcome with a correlation code.

Envelopes:
  success     {success: true, message, data?, meta_data?}
  failure     {success: false, message}
  fault       {success: false, message, request_code}
  validation  {success: false, message, errors: [str]}
  session     {success: true, message, role, token, data}
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

GENERIC_FAULT_MESSAGE = "Something went wrong."


class ErrorKind(str, Enum):
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    UNAUTHORIZED = "unauthorized"
    VALIDATION_FAILED = "validation_failed"
    FAULT = "fault"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES = {
    ErrorKind.CONFLICT: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.VALIDATION_FAILED: 422,
    ErrorKind.FAULT: 500,
}


class EmailDeliveryError(RuntimeError):
    """Raised when the email transport gives up on a message."""


def new_request_code() -> str:
    """Return a short correlation code: 4 random digits and the unix time."""
    return f"{secrets.randbelow(10_000):04d}-{int(time.time())}"


@dataclass(frozen=True)
class Outcome:
    """An (HTTP status hint, response body) pair with an optional error kind."""

    status_code: int
    body: dict[str, Any] = field(default_factory=dict)
    error: ErrorKind | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        return self.body.get("message", "")

    @classmethod
    def ok(cls, message: str, data: Any = None, meta_data: Any = None, status_code: int = 200) -> Outcome:
        body: dict[str, Any] = {"success": True, "message": message}
        if data is not None:
            body["data"] = data
        if meta_data is not None:
            body["meta_data"] = meta_data
        return cls(status_code=status_code, body=body)

    @classmethod
    def session(cls, message: str, role: str, token: str, data: dict) -> Outcome:
        return cls(
            status_code=200,
            body={"success": True, "message": message, "role": role, "token": token, "data": data},
        )

    @classmethod
    def reject(cls, kind: ErrorKind, message: str) -> Outcome:
        return cls(status_code=kind.status_code, body={"success": False, "message": message}, error=kind)

    @classmethod
    def invalid(cls, message: str, errors: list[str]) -> Outcome:
        return cls(
            status_code=ErrorKind.VALIDATION_FAILED.status_code,
            body={"success": False, "message": message, "errors": errors},
            error=ErrorKind.VALIDATION_FAILED,
        )

    @classmethod
    def fault(cls, request_code: str) -> Outcome:
        return cls(
            status_code=ErrorKind.FAULT.status_code,
            body={"success": False, "message": GENERIC_FAULT_MESSAGE, "request_code": request_code},
            error=ErrorKind.FAULT,
        )
