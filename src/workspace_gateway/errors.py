# Error kinds and the single gateway exception type.
# Created: 2026-09-14
#
# Every failure that reaches a caller is a GatewayError tagged with an
# ErrorKind. The HTTP boundary (api/errors.py) maps kinds to responses.

from __future__ import annotations

import enum
from typing import Any

RETRYABLE_UPSTREAM_STATUSES = frozenset({429, 500, 502, 503, 504})

# JSON-RPC 2.0 codes
JSONRPC_INVALID_REQUEST = -32600
JSONRPC_METHOD_NOT_FOUND = -32601
JSONRPC_INVALID_PARAMS = -32602
JSONRPC_INTERNAL_ERROR = -32603
JSONRPC_UNAUTHORIZED = -32000


class ErrorKind(enum.Enum):
    """Failure category with its HTTP status and machine-readable code."""

    VALIDATION = (400, "invalid_request")
    AUTHENTICATION = (401, "unauthenticated")
    SESSION = (401, "session_invalid")
    TOKEN_EXPIRED = (401, "token_expired")
    PERMISSION = (403, "forbidden")
    NOT_FOUND = (404, "not_found")
    RATE_LIMIT = (429, "rate_limited")
    SERVICE_UNAVAILABLE = (503, "service_unavailable")
    CIRCUIT_OPEN = (503, "circuit_open")
    STORAGE_UNAVAILABLE = (503, "storage_unavailable")
    INTERNAL = (500, "server_error")

    def __init__(self, status_code: int, code: str):
        self.status_code = status_code
        self.code = code

    @property
    def jsonrpc_code(self) -> int:
        return _JSONRPC_CODES[self]


_JSONRPC_CODES: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: JSONRPC_INVALID_PARAMS,
    ErrorKind.AUTHENTICATION: JSONRPC_UNAUTHORIZED,
    ErrorKind.SESSION: JSONRPC_UNAUTHORIZED,
    ErrorKind.TOKEN_EXPIRED: JSONRPC_UNAUTHORIZED,
    ErrorKind.PERMISSION: JSONRPC_UNAUTHORIZED,
    ErrorKind.NOT_FOUND: JSONRPC_METHOD_NOT_FOUND,
    ErrorKind.RATE_LIMIT: JSONRPC_INTERNAL_ERROR,
    ErrorKind.SERVICE_UNAVAILABLE: JSONRPC_INTERNAL_ERROR,
    ErrorKind.CIRCUIT_OPEN: JSONRPC_INTERNAL_ERROR,
    ErrorKind.STORAGE_UNAVAILABLE: JSONRPC_INTERNAL_ERROR,
    ErrorKind.INTERNAL: JSONRPC_INTERNAL_ERROR,
}


class GatewayError(Exception):
    """A failure tagged with an ErrorKind."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        kind: ErrorKind | None = None,
        *,
        retry_after: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        if kind is not None:
            self.kind = kind
        self.message = message
        self.retry_after = retry_after
        self.details = details or {}

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    @property
    def code(self) -> str:
        return self.kind.code

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.retry_after is not None:
            body["retryAfter"] = self.retry_after
        if self.details:
            body["details"] = self.details
        return body

    def to_jsonrpc(self, request_id: Any = None) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.kind.jsonrpc_code, "message": self.message}
        data = {"kind": self.code}
        if self.retry_after is not None:
            data["retryAfter"] = self.retry_after
        error["data"] = data
        return {"jsonrpc": "2.0", "id": request_id, "error": error}


class StorageUnavailable(GatewayError):
    """The shared key-value store could not be reached."""

    kind = ErrorKind.STORAGE_UNAVAILABLE


class SecretUnavailable(GatewayError):
    """A required secret (encryption key, metrics token) is not configured."""

    kind = ErrorKind.SERVICE_UNAVAILABLE


class CipherError(GatewayError):
    kind = ErrorKind.INTERNAL


class TokenGenerationError(GatewayError):
    """No unique bearer token could be reserved within the retry bound."""

    kind = ErrorKind.INTERNAL


class CircuitOpenError(GatewayError):
    kind = ErrorKind.CIRCUIT_OPEN

    def __init__(self, circuit: str, retry_after: int):
        super().__init__(
            f"{circuit} is temporarily unavailable after repeated failures. "
            f"Try again in {retry_after} seconds.",
            retry_after=retry_after,
            details={"circuit": circuit},
        )
        self.circuit = circuit


class CircuitTimeoutError(GatewayError):
    kind = ErrorKind.SERVICE_UNAVAILABLE

    def __init__(self, circuit: str, timeout: float):
        super().__init__(
            f"{circuit} did not respond within {timeout:g} seconds",
            retry_after=1,
            details={"circuit": circuit},
        )
        self.circuit = circuit
        self.timeout = timeout


class UpstreamError(GatewayError):
    """A Workspace API call failed with an HTTP error."""

    kind = ErrorKind.SERVICE_UNAVAILABLE

    def __init__(self, status: int, message: str):
        super().__init__(message, details={"upstreamStatus": status})
        self.status = status
        if status == 404:
            self.kind = ErrorKind.NOT_FOUND
        elif status == 401:
            self.kind = ErrorKind.TOKEN_EXPIRED
        elif status == 403:
            self.kind = ErrorKind.PERMISSION
        elif status == 400:
            self.kind = ErrorKind.VALIDATION

    @property
    def retryable(self) -> bool:
        return is_retryable_status(self.status)


def is_retryable_status(status: int) -> bool:
    return status in RETRYABLE_UPSTREAM_STATUSES
