"""
Errors — Closed error taxonomy and HTTP mapping.

Every error the monitor surfaces to a client is a ``MonitorError`` carrying
one ``ErrorKind``. The kind alone decides the HTTP status and wire code via
``ERROR_TABLE``; handlers never inspect exception class names.

## Usage

    from gateway_monitor.errors import ErrorKind, MonitorError

    raise MonitorError(ErrorKind.NOT_FOUND, f"Unknown service: {name}")
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ErrorKind(str, Enum):
    """Error categories exposed to clients."""
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    INTERNAL = "internal"


# kind -> (HTTP status, wire code, default message)
ERROR_TABLE: Dict[ErrorKind, Tuple[int, str, str]] = {
    ErrorKind.VALIDATION: (400, "VALIDATION_ERROR", "Invalid request"),
    ErrorKind.UNAUTHORIZED: (401, "UNAUTHORIZED", "Authentication required"),
    ErrorKind.FORBIDDEN: (403, "FORBIDDEN", "Access denied"),
    ErrorKind.NOT_FOUND: (404, "NOT_FOUND", "Resource not found"),
    ErrorKind.CONFLICT: (409, "CONFLICT", "Resource conflict"),
    ErrorKind.PAYLOAD_TOO_LARGE: (413, "PAYLOAD_TOO_LARGE", "Request payload too large"),
    ErrorKind.RATE_LIMITED: (429, "RATE_LIMIT_EXCEEDED", "Too many requests"),
    ErrorKind.SERVICE_UNAVAILABLE: (503, "SERVICE_UNAVAILABLE", "Service unavailable"),
    ErrorKind.INTERNAL: (500, "INTERNAL_ERROR", "Internal server error"),
}

# Plain HTTP status -> kind, for errors raised by the web framework itself
STATUS_KINDS: Dict[int, ErrorKind] = {
    status: kind for kind, (status, _, _) in ERROR_TABLE.items()
}
STATUS_KINDS[405] = ErrorKind.VALIDATION


class MonitorError(Exception):
    """An error with a fixed category and optional structured details."""

    def __init__(
        self,
        kind: ErrorKind,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.kind = kind
        self.message = message or ERROR_TABLE[kind][2]
        self.details = details or {}
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return ERROR_TABLE[self.kind][0]

    @property
    def code(self) -> str:
        return ERROR_TABLE[self.kind][1]


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid."""

    def __init__(self, message: str, variable: Optional[str] = None):
        self.variable = variable
        super().__init__(f"{variable}: {message}" if variable else message)


def kind_for_status(status_code: int) -> ErrorKind:
    """Map an HTTP status to the closest error kind."""
    if status_code in STATUS_KINDS:
        return STATUS_KINDS[status_code]
    if 400 <= status_code < 500:
        return ErrorKind.VALIDATION
    return ErrorKind.INTERNAL


def error_body(error: MonitorError, request_id: Optional[str] = None) -> Dict[str, Any]:
    """Build the JSON error envelope returned to clients."""
    body: Dict[str, Any] = {
        "code": error.code,
        "message": error.message,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }
    if error.details:
        body["details"] = error.details
    if request_id:
        body["requestId"] = request_id
    return {"error": body}
