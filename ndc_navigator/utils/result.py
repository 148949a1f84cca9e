"""
Tagged results shared by every engine.

Components return ``Ok(value)`` or ``Err(kind, ...)`` instead of raising
across strategy boundaries; callers branch with ``isinstance`` or on
``result.ok``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Closed set of failure reasons. The value doubles as the stable error code."""
    INVALID_INPUT = "INVALID_INPUT"
    IDENTITY_NOT_FOUND = "IDENTITY_NOT_FOUND"
    NO_PACKAGES_FOUND = "NO_PACKAGES_FOUND"
    NO_ACTIVE_PACKAGES = "NO_ACTIVE_PACKAGES"
    UPSTREAM_SERVICE_ERROR = "UPSTREAM_SERVICE_ERROR"
    ADVISORY_SERVICE_ERROR = "ADVISORY_SERVICE_ERROR"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    explanations: list[Any] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return False

    @property
    def retryable(self) -> bool:
        return bool(self.details.get("retryable", False))

    def with_explanations(self, explanations: list[Any]) -> "Err":
        return Err(self.kind, self.message, dict(self.details), list(explanations))

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.kind.value,
            "message": self.message,
            "details": self.details,
            "explanations": [
                e.model_dump() if hasattr(e, "model_dump") else e for e in self.explanations
            ],
        }


Result = Union[Ok[T], Err]
