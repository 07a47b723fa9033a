"""
Business-rule failures raised inside engine operations.

Each error carries a FailureKind. Operations raise these inside a database
transaction; the service boundary rolls the transaction back and converts the
error into a failed Result, so callers never see them as exceptions.
"""
from enum import Enum
from typing import Any, Dict, Optional


class FailureKind(str, Enum):
    """Discriminant of a failed operation result"""

    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    ALREADY_ENROLLED = "ALREADY_ENROLLED"
    NOT_ELIGIBLE = "NOT_ELIGIBLE"
    OUTSIDE_WINDOW = "OUTSIDE_WINDOW"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    INVALID_INPUT = "INVALID_INPUT"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"
    UNAVAILABLE = "UNAVAILABLE"


class DomainError(Exception):
    """Base class for expected, recoverable business failures"""

    kind: FailureKind = FailureKind.INVALID_STATE

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class Forbidden(DomainError):
    kind = FailureKind.FORBIDDEN


class NotFound(DomainError):
    kind = FailureKind.NOT_FOUND


class InvalidState(DomainError):
    kind = FailureKind.INVALID_STATE


class AlreadyEnrolled(DomainError):
    kind = FailureKind.ALREADY_ENROLLED


class NotEligible(DomainError):
    """Membership/payment gating denied the request; message is user-facing"""

    kind = FailureKind.NOT_ELIGIBLE


class OutsideWindow(DomainError):
    kind = FailureKind.OUTSIDE_WINDOW


class CapacityExceeded(DomainError):
    kind = FailureKind.CAPACITY_EXCEEDED


class InvalidInput(DomainError):
    kind = FailureKind.INVALID_INPUT
