"""
Tagged results for calls that cross into the backing store.

Boundary adapters (subscription source, usage event log) return a
SourceResult instead of raising, so callers branch on `ok` / `error_kind`
rather than probing optional fields.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"
    INVALID = "invalid"


@dataclass(frozen=True)
class SourceResult(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> "SourceResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error_kind: ErrorKind, message: str) -> "SourceResult[T]":
        return cls(ok=False, error_kind=error_kind, message=message)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default
