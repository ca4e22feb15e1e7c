"""Tagged results for the booking core.

Expected outcomes (bad input, missing rows, slot conflicts, lapsed holds, illegal
transitions) come back as a failed ServiceResult instead of an exception, so the
caller decides what the user sees. UNEXPECTED is reserved for storage failures.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorType(str, Enum):
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    SLOT_UNAVAILABLE = "SLOT_UNAVAILABLE"
    EXPIRED = "EXPIRED"
    INVALID_STATE = "INVALID_STATE"
    UNEXPECTED = "UNEXPECTED"


@dataclass
class ServiceResult(Generic[T]):
    data: T | None = None
    error_type: ErrorType | None = None
    message: str | None = None
    # Extra fields for the caller, e.g. the doctor/date a failed booking was for
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.error_type is None

    @classmethod
    def ok(cls, data: T | None = None, message: str | None = None) -> "ServiceResult[T]":
        return cls(data=data, message=message)

    @classmethod
    def fail(cls, error_type: ErrorType, message: str, **context: Any) -> "ServiceResult[T]":
        return cls(error_type=error_type, message=message, context=context)
