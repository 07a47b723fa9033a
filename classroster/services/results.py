"""Discriminated operation results returned by every public engine operation"""
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

from classroster.services.errors import DomainError, FailureKind

T = TypeVar("T")


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str
    details: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value (ok) or a Failure"""

    value: Optional[T] = None
    failure: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def kind(self) -> Optional[FailureKind]:
        return self.failure.kind if self.failure else None

    @classmethod
    def success(cls, value: T = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(
        cls,
        kind: FailureKind,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> "Result[T]":
        return cls(failure=Failure(kind=kind, message=message, details=details))

    @classmethod
    def from_error(cls, error: DomainError) -> "Result[T]":
        return cls.fail(error.kind, error.message, error.details)
