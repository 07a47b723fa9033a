"""Unit tests for attendance transitions and the take-attendance queue"""

import pytest
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from classroster.models.enums import ActivityStatus, AttendanceStatus
from classroster.services.attendance import (
    ensure_attendance_editable,
    pending_queue,
    status_on_completion,
    transition,
)
from classroster.services.errors import FailureKind, InvalidState

T0 = datetime(2024, 1, 8, 7, 0, tzinfo=timezone.utc)


def activity(status=ActivityStatus.ACTIVE):
    return SimpleNamespace(id=uuid.uuid4(), status=status)


def enrollment(user_id, status, minutes):
    return SimpleNamespace(user_id=user_id, attendance_status=status, enrolled_at=T0 + timedelta(minutes=minutes))


class TestTransition:
    @pytest.mark.parametrize("current", list(AttendanceStatus))
    @pytest.mark.parametrize("new", [AttendanceStatus.PRESENT, AttendanceStatus.ABSENT, AttendanceStatus.LATE])
    def test_any_status_reachable_while_active(self, current, new):
        expected = None if current == new else new
        assert transition(activity(), current, new) == expected

    def test_operator_may_reset_to_pending(self):
        assert transition(activity(), AttendanceStatus.PRESENT, AttendanceStatus.PENDING) == AttendanceStatus.PENDING

    def test_same_status_is_noop(self):
        assert transition(activity(), AttendanceStatus.LATE, AttendanceStatus.LATE) is None

    def test_accepts_status_literals(self):
        assert transition(activity(), AttendanceStatus.PENDING, "PRESENT") == AttendanceStatus.PRESENT

    @pytest.mark.parametrize("status", [ActivityStatus.COMPLETED, ActivityStatus.CANCELLED])
    def test_read_only_once_activity_closed(self, status):
        with pytest.raises(InvalidState) as exc_info:
            transition(activity(status), AttendanceStatus.PENDING, AttendanceStatus.PRESENT)

        assert exc_info.value.kind == FailureKind.INVALID_STATE

    def test_ensure_editable_passes_for_active(self):
        ensure_attendance_editable(activity())


class TestCompletion:
    def test_pending_becomes_absent(self):
        assert status_on_completion(AttendanceStatus.PENDING) == AttendanceStatus.ABSENT

    @pytest.mark.parametrize("status", [AttendanceStatus.PRESENT, AttendanceStatus.ABSENT, AttendanceStatus.LATE])
    def test_marked_statuses_kept(self, status):
        assert status_on_completion(status) == status


class TestPendingQueue:
    def test_excludes_present_and_keeps_enrollment_order(self):
        queue = pending_queue([
            enrollment("carol", AttendanceStatus.LATE, 30),
            enrollment("alice", AttendanceStatus.PRESENT, 0),
            enrollment("bob", AttendanceStatus.PENDING, 10),
            enrollment("dave", AttendanceStatus.ABSENT, 20),
        ])

        assert [e.user_id for e in queue] == ["bob", "dave", "carol"]

    def test_ties_broken_by_user_id(self):
        queue = pending_queue([
            enrollment("zoe", AttendanceStatus.PENDING, 0),
            enrollment("adam", AttendanceStatus.PENDING, 0),
        ])

        assert [e.user_id for e in queue] == ["adam", "zoe"]

    def test_empty_when_everyone_present(self):
        assert pending_queue([enrollment("alice", AttendanceStatus.PRESENT, 0)]) == []
