"""Error kinds raised by the transport and captured by collection caches."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_ARGUMENT = "invalid_argument"
    NOT_FOUND = "not_found"
    OPERATION_IN_PROGRESS = "operation_in_progress"
    AUTH_EXPIRED = "auth_expired"
    NETWORK = "network"
    SERVER_REJECTED = "server_rejected"


class RowdeckError(Exception):
    """Base class for all rowdeck errors."""

    kind: ErrorKind

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RowdeckError):
            return NotImplemented
        return type(self) is type(other) and self.message == other.message

    def __hash__(self) -> int:
        return hash((type(self), self.message))


class InvalidArgument(RowdeckError, ValueError):
    kind = ErrorKind.INVALID_ARGUMENT


class NotFound(RowdeckError):
    kind = ErrorKind.NOT_FOUND


class OperationInProgress(RowdeckError):
    kind = ErrorKind.OPERATION_IN_PROGRESS


class AuthExpired(RowdeckError):
    """Session is no longer valid; the user must log in again."""

    kind = ErrorKind.AUTH_EXPIRED


class NetworkError(RowdeckError):
    """Timeout or connectivity failure."""

    kind = ErrorKind.NETWORK


class ServerRejected(RowdeckError):
    """Non-auth 4xx/5xx response."""

    kind = ErrorKind.SERVER_REJECTED

    def __init__(self, message: str = "", *, status: int = 0) -> None:
        super().__init__(message or f"HTTP {status}")
        self.status = status


__all__ = [
    "AuthExpired",
    "ErrorKind",
    "InvalidArgument",
    "NetworkError",
    "NotFound",
    "OperationInProgress",
    "RowdeckError",
    "ServerRejected",
]
