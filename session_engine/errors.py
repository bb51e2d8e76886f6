"""Ledger error taxonomy.

Every error maps to one HTTP status and one ``ErrorCode``; the FastAPI
exception handler in ``session_engine.main`` turns them into
``{"success": false, ...}`` bodies.
"""
from __future__ import annotations

from typing import Any

from session_engine.models.error_code import ErrorCode


class LedgerError(Exception):
    status_code = 400
    code = ErrorCode.BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, Any]:
        return {"success": False, "code": self.code.value, "message": self.message}


class ValidationError(LedgerError):
    """Non-positive counts, missing fields, out-of-range prices."""


class NotFound(LedgerError):
    status_code = 404
    code = ErrorCode.NOT_FOUND


class InsufficientCapacity(LedgerError):
    status_code = 409
    code = ErrorCode.INSUFFICIENT_CAPACITY

    def __init__(self, requested: int, available: int, message: str | None = None) -> None:
        super().__init__(
            message
            or f"Requested {requested} sessions but only {available} available"
        )
        self.requested = requested
        self.available = available

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["requested"] = self.requested
        payload["available"] = self.available
        return payload


class InvalidTransition(LedgerError):
    status_code = 409
    code = ErrorCode.INVALID_TRANSITION

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move from {current!r} to {target!r}")
        self.current = current
        self.target = target


class PermissionDenied(LedgerError):
    status_code = 403
    code = ErrorCode.FORBIDDEN


class Contention(LedgerError):
    status_code = 409
    code = ErrorCode.CONTENTION


__all__ = [
    "LedgerError",
    "ValidationError",
    "NotFound",
    "InsufficientCapacity",
    "InvalidTransition",
    "PermissionDenied",
    "Contention",
]
