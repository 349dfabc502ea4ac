"""Error taxonomy shared by the remote client, repositories and reactions."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    UNAUTHENTICATED = "Unauthenticated"
    FORBIDDEN = "Forbidden"
    NOT_FOUND = "NotFound"
    CONFLICT = "Conflict"
    INVALID = "Invalid"
    UNREACHABLE = "Unreachable"
    UNKNOWN = "Unknown"


_STATUS_KINDS = {
    400: ErrorKind.INVALID,
    401: ErrorKind.UNAUTHENTICATED,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.CONFLICT,
    422: ErrorKind.INVALID,
}

DEFAULT_MESSAGES = {
    ErrorKind.UNAUTHENTICATED: "Not authenticated. Please sign in again.",
    ErrorKind.FORBIDDEN: "You are not allowed to do that.",
    ErrorKind.NOT_FOUND: "Not found.",
    ErrorKind.CONFLICT: "That already exists.",
    ErrorKind.INVALID: "Invalid data.",
    ErrorKind.UNREACHABLE: "Connection error. Showing saved data if available.",
    ErrorKind.UNKNOWN: "Unexpected server error.",
}


def classify_status(status: int) -> ErrorKind:
    """Map an HTTP status code to an ErrorKind. 2xx is not a failure."""
    if 200 <= status < 300:
        raise ValueError(f"status {status} is not a failure")
    return _STATUS_KINDS.get(status, ErrorKind.UNKNOWN)


@dataclass(frozen=True)
class SyncError:
    """A classified failure, as handed to UI callers."""
    kind: ErrorKind
    message: str = ""
    status: Optional[int] = None

    def __post_init__(self):
        if not self.message:
            object.__setattr__(self, "message", DEFAULT_MESSAGES[self.kind])

    def __str__(self) -> str:
        if self.status is not None:
            return f"{self.kind.value} ({self.status}): {self.message}"
        return f"{self.kind.value}: {self.message}"

    @classmethod
    def from_status(cls, status: int, message: str = "") -> "SyncError":
        return cls(kind=classify_status(status), message=message, status=status)

    @classmethod
    def unreachable(cls, message: str = "") -> "SyncError":
        return cls(kind=ErrorKind.UNREACHABLE, message=message)

    def with_context(self, overrides: dict[ErrorKind, str] | None) -> "SyncError":
        """Swap in an operation-specific message for this kind, if one is given."""
        if overrides and self.kind in overrides:
            return SyncError(kind=self.kind, message=overrides[self.kind], status=self.status)
        return self


class InvalidInput(ValueError):
    """Raised by pure validators; converted to an Invalid SyncError at boundaries."""

    kind = ErrorKind.INVALID

    def to_error(self) -> SyncError:
        return SyncError(kind=ErrorKind.INVALID, message=str(self))
