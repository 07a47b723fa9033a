"""
Attendance State Machine

PENDING is set on enrollment. An authorized operator may move a record among
PENDING, PRESENT, ABSENT and LATE freely while the activity is still ACTIVE;
re-assigning the same status is a no-op. Once the activity is COMPLETED (or
CANCELLED) attendance is read-only.

The only system-driven transition is PENDING -> ABSENT when an activity
completes; nothing but an operator ever moves a record back into PENDING.
"""
from typing import Iterable, List, Optional

from classroster.models.enums import ActivityStatus, AttendanceStatus
from classroster.services.errors import InvalidState


def ensure_attendance_editable(activity) -> None:
    if activity.status != ActivityStatus.ACTIVE:
        raise InvalidState(
            f"Attendance is read-only for {activity.status.value.lower()} activities",
            {"activity_id": str(activity.id), "status": activity.status.value},
        )


def transition(activity, current: AttendanceStatus, new: AttendanceStatus) -> Optional[AttendanceStatus]:
    """
    Validate an operator-driven attendance change.

    Returns:
        The new status, or None when it equals `current`

    Raises:
        InvalidState: If the activity no longer accepts attendance changes
    """
    ensure_attendance_editable(activity)
    new = AttendanceStatus(new)
    if new == current:
        return None
    return new


def status_on_completion(current: AttendanceStatus) -> AttendanceStatus:
    """Status a record takes when its activity completes"""
    if current == AttendanceStatus.PENDING:
        return AttendanceStatus.ABSENT
    return current


def pending_queue(enrollments: Iterable) -> List:
    """
    Take-attendance queue: every enrollment not yet marked PRESENT, in
    enrollment order. A projection only; recomputing it always agrees.
    """
    queue = [e for e in enrollments if e.attendance_status != AttendanceStatus.PRESENT]
    return sorted(queue, key=lambda e: (e.enrolled_at, e.user_id))
