"""
Integration tests for the EnrollmentCoordinator

Tests the enroll/unenroll/attendance use cases against a real SQLite database:
check order, capacity invariant, concurrency at the last slot and rollback on
failure.
"""

import asyncio
import logging
import pytest
import uuid
from datetime import timedelta

from classroster.models.enums import AttendanceStatus, MembershipStatus, Role
from classroster.services.actors import Actor
from classroster.services.eligibility import MembershipEligibility
from classroster.services.errors import FailureKind
from classroster.services.repositories import EnrollmentRepository

pytestmark = pytest.mark.integration


def client(user_id):
    return Actor(user_id=user_id, role=Role.CLIENT)


async def audit(queries, admin, activity_id):
    result = await queries.audit_capacity(admin, activity_id)
    assert result.ok
    return result.value


class TestEnroll:
    @pytest.mark.asyncio
    async def test_member_enrolls_self(self, coordinator, queries, make_activity, make_member, member):
        activity = await make_activity()
        await make_member(member.user_id)

        result = await coordinator.enroll(activity.id, member, member.user_id)

        assert result.ok, result.failure
        assert result.value.attendance_status == AttendanceStatus.PENDING
        assert result.value.user_id == member.user_id

        detail = (await queries.get_activity_detail(activity.id)).value
        assert detail.activity.current_participants == 1
        assert [e.user_id for e in detail.enrollments] == [member.user_id]

    @pytest.mark.asyncio
    async def test_member_cannot_enroll_someone_else(self, coordinator, make_activity, make_member, member):
        activity = await make_activity()
        await make_member("member_2")

        result = await coordinator.enroll(activity.id, member, "member_2")

        assert result.kind == FailureKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_trainer_enrolls_member(self, coordinator, make_activity, make_member, other_trainer):
        activity = await make_activity()
        await make_member("member_2")

        result = await coordinator.enroll(activity.id, other_trainer, "member_2")

        assert result.ok

    @pytest.mark.asyncio
    async def test_unknown_activity(self, coordinator, member):
        result = await coordinator.enroll(uuid.uuid4(), member, member.user_id)

        assert result.kind == FailureKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_cancelled_activity_rejected(self, coordinator, scheduler, make_activity, make_member, member, admin):
        activity = await make_activity()
        await make_member(member.user_id)
        assert (await scheduler.cancel_activity(activity.id, admin)).ok

        result = await coordinator.enroll(activity.id, member, member.user_id)

        assert result.kind == FailureKind.INVALID_STATE

    @pytest.mark.asyncio
    async def test_duplicate_enrollment(self, coordinator, queries, make_activity, make_member, member, admin):
        activity = await make_activity()
        await make_member(member.user_id)
        assert (await coordinator.enroll(activity.id, member, member.user_id)).ok

        result = await coordinator.enroll(activity.id, member, member.user_id)

        assert result.kind == FailureKind.ALREADY_ENROLLED
        assert (await audit(queries, admin, activity.id))["counted"] == 1

    @pytest.mark.asyncio
    async def test_unknown_member_is_not_eligible(self, coordinator, make_activity, member):
        activity = await make_activity()

        result = await coordinator.enroll(activity.id, member, member.user_id)

        assert result.kind == FailureKind.NOT_ELIGIBLE
        assert result.failure.message == "membership inactive, payment required"

    @pytest.mark.asyncio
    async def test_grace_period_scenario(self, coordinator, make_activity, make_member):
        activity = await make_activity()
        await make_member("recent", MembershipStatus.INACTIVE, paid_days_ago=5, pending_review=True)
        await make_member("stale", MembershipStatus.INACTIVE, paid_days_ago=12, pending_review=True)

        recent = await coordinator.enroll(activity.id, client("recent"), "recent")
        stale = await coordinator.enroll(activity.id, client("stale"), "stale")

        assert recent.ok
        assert stale.kind == FailureKind.NOT_ELIGIBLE
        assert stale.failure.message == "grace period expired, payment still under review"

    @pytest.mark.asyncio
    async def test_eligibility_checked_before_window(self, coordinator, make_activity, member):
        # Outside the window AND not eligible: eligibility reported first
        activity = await make_activity(start_in=timedelta(days=5))

        result = await coordinator.enroll(activity.id, member, member.user_id)

        assert result.kind == FailureKind.NOT_ELIGIBLE

    @pytest.mark.asyncio
    async def test_window_boundary(self, coordinator, make_activity, make_member, member):
        await make_member(member.user_id)
        at_cutoff = await make_activity(start_in=timedelta(hours=24))
        past_cutoff = await make_activity(start_in=timedelta(hours=24, minutes=1))

        assert (await coordinator.enroll(at_cutoff.id, member, member.user_id)).ok
        result = await coordinator.enroll(past_cutoff.id, member, member.user_id)
        assert result.kind == FailureKind.OUTSIDE_WINDOW

    @pytest.mark.asyncio
    async def test_started_activity_outside_window(self, coordinator, make_activity, make_member, member):
        await make_member(member.user_id)
        activity = await make_activity(start_in=timedelta(minutes=-10))

        result = await coordinator.enroll(activity.id, member, member.user_id)

        assert result.kind == FailureKind.OUTSIDE_WINDOW

    @pytest.mark.asyncio
    async def test_full_activity(self, coordinator, queries, make_activity, make_member, admin):
        activity = await make_activity(max_participants=1)
        await make_member("first")
        await make_member("second")
        assert (await coordinator.enroll(activity.id, client("first"), "first")).ok

        result = await coordinator.enroll(activity.id, client("second"), "second")

        assert result.kind == FailureKind.CAPACITY_EXCEEDED
        assert (await queries.is_enrolled(activity.id, "second")).value is False
        snapshot = await audit(queries, admin, activity.id)
        assert snapshot["counted"] == snapshot["live"] == 1


class TestConcurrency:
    @pytest.mark.asyncio
    @pytest.mark.slow
    async def test_two_enrollments_race_for_last_slot(self, coordinator, queries, make_activity, make_member, admin):
        activity = await make_activity(max_participants=1)
        await make_member("user1")
        await make_member("user2")

        results = await asyncio.gather(
            coordinator.enroll(activity.id, client("user1"), "user1"),
            coordinator.enroll(activity.id, client("user2"), "user2"),
        )

        assert sum(1 for r in results if r.ok) == 1
        assert [r.kind for r in results if not r.ok] == [FailureKind.CAPACITY_EXCEEDED]
        snapshot = await audit(queries, admin, activity.id)
        assert snapshot["counted"] == 1
        assert snapshot["consistent"] is True

    @pytest.mark.asyncio
    @pytest.mark.slow
    async def test_many_concurrent_enrollments_never_overbook(self, coordinator, queries, make_activity, make_member, admin):
        activity = await make_activity(max_participants=3)
        users = [f"user{i}" for i in range(8)]
        for user_id in users:
            await make_member(user_id)

        results = await asyncio.gather(*[
            coordinator.enroll(activity.id, client(user_id), user_id) for user_id in users
        ])

        assert sum(1 for r in results if r.ok) == 3
        snapshot = await audit(queries, admin, activity.id)
        assert snapshot["counted"] == snapshot["live"] == 3

    @pytest.mark.asyncio
    async def test_unique_constraint_reports_already_enrolled(
        self, coordinator, queries, make_activity, make_member, member, admin, monkeypatch, caplog
    ):
        activity = await make_activity()
        await make_member(member.user_id)
        assert (await coordinator.enroll(activity.id, member, member.user_id)).ok

        async def enrollment_not_visible(self, activity_id, user_id, for_update=False):
            return None

        # Another process committed the same enrollment after the duplicate check ran
        monkeypatch.setattr(EnrollmentRepository, "get", enrollment_not_visible)
        with caplog.at_level(logging.INFO):
            result = await coordinator.enroll(activity.id, member, member.user_id)
        monkeypatch.undo()

        assert result.kind == FailureKind.ALREADY_ENROLLED
        assert result.failure.details == {"activity_id": str(activity.id), "user_id": member.user_id}
        assert not [r for r in caplog.records if r.levelno >= logging.ERROR]
        snapshot = await audit(queries, admin, activity.id)
        assert snapshot["counted"] == snapshot["live"] == 1


class TestUnenroll:
    @pytest.mark.asyncio
    async def test_unenroll_releases_slot(self, coordinator, queries, make_activity, make_member, member, admin):
        activity = await make_activity(start_in=timedelta(hours=20))
        await make_member(member.user_id)
        assert (await coordinator.enroll(activity.id, member, member.user_id)).ok

        result = await coordinator.unenroll(activity.id, member, member.user_id)

        assert result.ok
        snapshot = await audit(queries, admin, activity.id)
        assert snapshot["counted"] == snapshot["live"] == 0

    @pytest.mark.asyncio
    async def test_reenroll_resets_attendance(self, coordinator, make_activity, make_member, member, trainer):
        activity = await make_activity(start_in=timedelta(hours=20))
        await make_member(member.user_id)
        assert (await coordinator.enroll(activity.id, member, member.user_id)).ok
        assert (await coordinator.mark_attendance(activity.id, trainer, member.user_id, AttendanceStatus.LATE)).ok
        assert (await coordinator.unenroll(activity.id, member, member.user_id)).ok

        result = await coordinator.enroll(activity.id, member, member.user_id)

        assert result.ok
        assert result.value.attendance_status == AttendanceStatus.PENDING

    @pytest.mark.asyncio
    async def test_too_late_to_unenroll(self, coordinator, queries, make_activity, make_member, member, admin):
        activity = await make_activity(start_in=timedelta(hours=11))
        await make_member(member.user_id)
        assert (await coordinator.enroll(activity.id, member, member.user_id)).ok

        result = await coordinator.unenroll(activity.id, member, member.user_id)

        assert result.kind == FailureKind.OUTSIDE_WINDOW
        assert (await queries.is_enrolled(activity.id, member.user_id)).value is True
        assert (await audit(queries, admin, activity.id))["counted"] == 1

    @pytest.mark.asyncio
    async def test_not_enrolled(self, coordinator, make_activity, member):
        activity = await make_activity(start_in=timedelta(hours=20))

        result = await coordinator.unenroll(activity.id, member, member.user_id)

        assert result.kind == FailureKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_member_cannot_unenroll_someone_else(self, coordinator, make_activity, make_member, member):
        activity = await make_activity(start_in=timedelta(hours=20))
        await make_member("member_2")
        assert (await coordinator.enroll(activity.id, client("member_2"), "member_2")).ok

        result = await coordinator.unenroll(activity.id, member, "member_2")

        assert result.kind == FailureKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_capacity_invariant_over_sequence(self, coordinator, queries, make_activity, make_member, admin):
        activity = await make_activity(start_in=timedelta(hours=20), max_participants=2)
        for user_id in ["a", "b", "c"]:
            await make_member(user_id)

        steps = [
            ("enroll", "a"), ("enroll", "b"), ("enroll", "c"),
            ("unenroll", "a"), ("enroll", "c"), ("unenroll", "c"),
            ("unenroll", "c"), ("enroll", "a"),
        ]
        for action, user_id in steps:
            await getattr(coordinator, action)(activity.id, client(user_id), user_id)
            snapshot = await audit(queries, admin, activity.id)
            assert snapshot["counted"] == snapshot["live"], f"after {action} {user_id}"
            assert snapshot["counted"] <= 2

        assert (await audit(queries, admin, activity.id))["counted"] == 2


class TestAttendance:
    @pytest.mark.asyncio
    async def test_owner_marks_attendance(self, coordinator, make_activity, make_member, member, trainer):
        activity = await make_activity()
        await make_member(member.user_id)
        assert (await coordinator.enroll(activity.id, member, member.user_id)).ok

        result = await coordinator.mark_attendance(activity.id, trainer, member.user_id, AttendanceStatus.PRESENT)

        assert result.ok
        assert result.value.attendance_status == AttendanceStatus.PRESENT
        assert result.value.attendance_marked_by == trainer.user_id

    @pytest.mark.asyncio
    async def test_trainer_not_owning_activity_forbidden(
        self, coordinator, make_activity, make_member, member, other_trainer
    ):
        activity = await make_activity()
        await make_member(member.user_id)
        assert (await coordinator.enroll(activity.id, member, member.user_id)).ok

        result = await coordinator.mark_attendance(
            activity.id, other_trainer, member.user_id, AttendanceStatus.PRESENT
        )

        assert result.kind == FailureKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_member_cannot_mark_attendance(self, coordinator, make_activity, make_member, member):
        activity = await make_activity()
        await make_member(member.user_id)
        assert (await coordinator.enroll(activity.id, member, member.user_id)).ok

        result = await coordinator.mark_attendance(activity.id, member, member.user_id, AttendanceStatus.PRESENT)

        assert result.kind == FailureKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_completed_activity_is_read_only(
        self, coordinator, scheduler, make_activity, make_member, member, trainer
    ):
        activity = await make_activity()
        await make_member(member.user_id)
        assert (await coordinator.enroll(activity.id, member, member.user_id)).ok
        assert (await scheduler.complete_activity(activity.id, trainer)).ok

        result = await coordinator.mark_attendance(activity.id, trainer, member.user_id, AttendanceStatus.PRESENT)

        assert result.kind == FailureKind.INVALID_STATE

    @pytest.mark.asyncio
    async def test_bulk_is_all_or_nothing(self, coordinator, queries, make_activity, make_member, trainer):
        activity = await make_activity()
        for user_id in ["a", "b"]:
            await make_member(user_id)
            assert (await coordinator.enroll(activity.id, client(user_id), user_id)).ok

        failed = await coordinator.mark_attendance_bulk(
            activity.id,
            trainer,
            {"a": AttendanceStatus.PRESENT, "ghost": AttendanceStatus.ABSENT},
        )
        assert failed.kind == FailureKind.NOT_FOUND

        detail = (await queries.get_activity_detail(activity.id)).value
        assert all(e.attendance_status == AttendanceStatus.PENDING for e in detail.enrollments)

        applied = await coordinator.mark_attendance_bulk(
            activity.id,
            trainer,
            {"a": AttendanceStatus.PRESENT, "b": AttendanceStatus.LATE},
        )
        assert applied.ok
        assert [e.attendance_status for e in applied.value] == [AttendanceStatus.PRESENT, AttendanceStatus.LATE]

    @pytest.mark.asyncio
    async def test_pending_queue(self, coordinator, queries, clock, make_activity, make_member, trainer):
        activity = await make_activity()
        for user_id in ["a", "b", "c"]:
            await make_member(user_id)
            assert (await coordinator.enroll(activity.id, client(user_id), user_id)).ok
            clock.advance(minutes=1)
        assert (await coordinator.mark_attendance(activity.id, trainer, "b", AttendanceStatus.PRESENT)).ok

        queue = (await queries.get_pending_attendance_queue(activity.id)).value

        assert [e.user_id for e in queue] == ["a", "c"]


class TestMembership:
    @pytest.mark.asyncio
    async def test_only_admin_syncs_snapshots(self, coordinator, trainer):
        result = await coordinator.set_membership(
            trainer, "member_1", MembershipEligibility(membership_status=MembershipStatus.ACTIVE)
        )

        assert result.kind == FailureKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_eligibility_preview(self, coordinator, make_member, member):
        await make_member(member.user_id, MembershipStatus.INACTIVE, paid_days_ago=7, pending_review=True)

        decision = (await coordinator.evaluate_eligibility(member, member.user_id)).value

        assert decision.allowed is True
        assert decision.grace_days_remaining == 3

    @pytest.mark.asyncio
    async def test_preview_uses_configured_grace_period(self, coordinator, settings_service, make_member, member, admin):
        await make_member(member.user_id, MembershipStatus.INACTIVE, paid_days_ago=7, pending_review=True)
        assert (await settings_service.update_policy(admin, {"payment_grace_period_days": 5})).ok

        decision = (await coordinator.evaluate_eligibility(member, member.user_id)).value

        assert decision.allowed is False

    @pytest.mark.asyncio
    async def test_member_history_newest_first(
        self, coordinator, queries, make_activity, make_member, member
    ):
        await make_member(member.user_id)
        early = await make_activity(start_in=timedelta(hours=2), name="Yoga")
        late = await make_activity(start_in=timedelta(hours=5), name="Boxing")
        for activity in (early, late):
            assert (await coordinator.enroll(activity.id, member, member.user_id)).ok

        history = (await queries.list_member_enrollments(member, member.user_id)).value

        assert [row.activity.name for row in history] == ["Boxing", "Yoga"]

    @pytest.mark.asyncio
    async def test_member_history_private(self, queries, member):
        result = await queries.list_member_enrollments(member, "someone_else")

        assert result.kind == FailureKind.FORBIDDEN
