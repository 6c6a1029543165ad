"""Error hierarchy and code mapping for chaindesk."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    DAEMON_NOT_RUNNING = "DAEMON_NOT_RUNNING"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    INVALID_SYMBOL = "INVALID_SYMBOL"
    INVALID_ARGS = "INVALID_ARGS"
    NOT_FOUND = "NOT_FOUND"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    TIMEOUT = "TIMEOUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


EXIT_CODE_BY_ERROR: dict[ErrorCode, int] = {
    ErrorCode.INVALID_ARGS: 2,
    ErrorCode.DAEMON_NOT_RUNNING: 3,
    ErrorCode.UPSTREAM_ERROR: 4,
    ErrorCode.RATE_LIMITED: 4,
    ErrorCode.INVALID_SYMBOL: 5,
    ErrorCode.NOT_FOUND: 5,
    ErrorCode.PROVIDER_UNAVAILABLE: 6,
    ErrorCode.PROVIDER_ERROR: 7,
    ErrorCode.TIMEOUT: 10,
}


class DeskError(Exception):
    """Base typed exception converted to protocol error responses."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        suggestion: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}
        self.suggestion = suggestion

    @property
    def exit_code(self) -> int:
        return EXIT_CODE_BY_ERROR.get(self.code, 1)

    def to_error_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }
        if self.suggestion:
            payload["suggestion"] = self.suggestion
        return payload


class UpstreamError(DeskError):
    """Transport or status failure talking to a market-data source.

    Never retried automatically; the caller decides when to ask again.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        reason: str | None = None,
        code: ErrorCode = ErrorCode.UPSTREAM_ERROR,
        details: dict[str, Any] | None = None,
        suggestion: str | None = None,
    ) -> None:
        merged = dict(details or {})
        if status_code is not None:
            merged.setdefault("status_code", status_code)
        if reason:
            merged.setdefault("reason", reason)
        super().__init__(code, message, details=merged, suggestion=suggestion)
        self.status_code = status_code
        self.reason = reason
