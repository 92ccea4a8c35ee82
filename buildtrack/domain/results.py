"""Typed operation results for the core services.

Business-rule failures never cross the core boundary as exceptions: every
service operation returns a Result whose error names one of the ErrorKinds
below. Only unexpected store failures propagate as exceptions.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorKind(StrEnum):
    """Closed error taxonomy shared by the core and the HTTP layer."""

    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INTERNAL = "INTERNAL"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.INVALID_TRANSITION: 400,
    ErrorKind.PRECONDITION_FAILED: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INTERNAL: 500,
}


@dataclass(frozen=True)
class CoreError:
    """A classified failure with a human-readable message."""

    kind: ErrorKind
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a core operation: either data or a CoreError, never both."""

    success: bool
    data: T | None = None
    error: CoreError | None = None

    @classmethod
    def ok(cls, data: T | None = None) -> "Result[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str, **details: Any) -> "Result[T]":
        return cls(success=False, error=CoreError(kind, message, details))

    @classmethod
    def from_error(cls, error: CoreError) -> "Result[T]":
        return cls(success=False, error=error)
