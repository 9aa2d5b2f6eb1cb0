from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(Enum):
    """Why an operation did not succeed."""
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"


class LendingError(Exception):
    """Raised by :meth:`Result.unwrap` when the result is a failure."""

    def __init__(self, kind: ErrorKind, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.errors = errors or []


@dataclass
class Result(Generic[T]):
    """Outcome of a catalog or loan operation.

    Exactly one of ``value`` (on success) or ``error`` (on failure) is
    meaningful. ``message`` is user-facing in both cases; ``errors`` lists
    individual messages for validation failures.
    """

    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: str = ""
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None, message: str = "") -> "Result[T]":
        return cls(value=value, message=message)

    @classmethod
    def not_found(cls, message: str) -> "Result[T]":
        return cls(error=ErrorKind.NOT_FOUND, message=message)

    @classmethod
    def conflict(cls, message: str) -> "Result[T]":
        return cls(error=ErrorKind.CONFLICT, message=message)

    @classmethod
    def invalid(cls, errors: List[str]) -> "Result[T]":
        return cls(error=ErrorKind.VALIDATION, message="; ".join(errors), errors=list(errors))

    def unwrap(self) -> T:
        if self.error is not None:
            raise LendingError(self.error, self.message, self.errors)
        return self.value

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {"success": True, "message": self.message}
        result: Dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.error.value,
        }
        if self.errors:
            result["errors"] = self.errors
        return result
