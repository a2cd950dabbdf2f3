"""Uniform result shape returned by every core operation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Failure categories surfaced to callers."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    BUSINESS = "business"
    SERVICE = "service"


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a core operation: ``success`` plus a message and payload."""

    success: bool
    message: str = ""
    data: Any = None
    error: ErrorKind | None = None

    @classmethod
    def ok(cls, message: str = "", data: Any = None) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, error: ErrorKind, message: str) -> "OperationResult":
        return cls(success=False, message=message, error=error)
