"""
Response helpers shared by the API routers.

Successful responses use the {"data": ..., "metadata": {...}} envelope; failed
operation Results become HTTPExceptions carrying the error envelope
{"error": {"code", "message", "details"}}.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TypeVar

from fastapi import HTTPException, status

from classroster.services.errors import FailureKind
from classroster.services.results import Result

T = TypeVar("T")

FAILURE_STATUS = {
    FailureKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    FailureKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    FailureKind.INVALID_STATE: status.HTTP_409_CONFLICT,
    FailureKind.ALREADY_ENROLLED: status.HTTP_409_CONFLICT,
    FailureKind.OUTSIDE_WINDOW: status.HTTP_409_CONFLICT,
    FailureKind.CAPACITY_EXCEEDED: status.HTTP_409_CONFLICT,
    FailureKind.CONCURRENCY_CONFLICT: status.HTTP_409_CONFLICT,
    FailureKind.NOT_ELIGIBLE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    FailureKind.INVALID_INPUT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    FailureKind.UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def unwrap(result: Result[T]) -> T:
    """
    Return the value of a successful Result.

    Raises:
        HTTPException: With the mapped status and error envelope on failure
    """
    if result.ok:
        return result.value

    failure = result.failure
    raise HTTPException(
        status_code=FAILURE_STATUS.get(failure.kind, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail={
            "error": {
                "code": failure.kind.value,
                "message": failure.message,
                "details": failure.details,
            }
        },
    )


def envelope(data: Any, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "data": data,
        "metadata": {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **(metadata or {}),
        },
    }


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Query-string instants without an offset are read as UTC"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
