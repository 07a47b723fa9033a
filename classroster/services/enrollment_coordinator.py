"""
Enrollment Coordinator

Orchestrates the member-facing use cases on one activity: enroll, unenroll and
attendance marking. Every operation is one transaction on the activity
aggregate; validation failures raise before any write (or roll back the writes
already made), so a failed call leaves the activity, its counter and its
enrollments exactly as they were.
"""
import logging
import uuid
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from classroster.models.activity import Activity
from classroster.models.enrollment import Enrollment
from classroster.models.enums import ActivityStatus, AttendanceStatus
from classroster.services import attendance
from classroster.services.actors import Actor, require_admin_or_owner, require_self_or_staff
from classroster.services.capacity_ledger import CapacityLedger
from classroster.services.clock import get_clock
from classroster.services.eligibility import EligibilityDecision, MembershipEligibility, evaluate
from classroster.services.enrollment_window import can_enroll, can_unenroll
from classroster.services.errors import (
    AlreadyEnrolled,
    Forbidden,
    InvalidInput,
    InvalidState,
    NotEligible,
    NotFound,
    OutsideWindow,
)
from classroster.services.repositories import (
    ActivityRepository,
    EnrollmentRepository,
    MembershipRepository,
)
from classroster.services.results import Result
from classroster.services.settings_service import PolicySettings, load_policy
from classroster.services.unit_of_work import TransactionRunner, get_transaction_runner

logger = logging.getLogger(__name__)


class EnrollmentCoordinator:
    def __init__(self, runner: TransactionRunner, clock, defaults: Optional[PolicySettings] = None):
        self.runner = runner
        self.clock = clock
        self.defaults = defaults or PolicySettings.from_environment()

    async def enroll(self, activity_id: uuid.UUID, actor: Actor, target_user_id: str) -> Result[Enrollment]:
        """
        Enroll a member into an activity.

        Checks run in a fixed order and the first failing one decides the
        result: authorization, activity state, duplicate, eligibility,
        time window, capacity.

        Args:
            activity_id: Activity to join
            actor: Caller (the member themself, or staff acting for them)
            target_user_id: Member being enrolled

        Returns:
            Result with the new PENDING enrollment
        """

        async def work(session: AsyncSession) -> Enrollment:
            require_self_or_staff(actor, target_user_id)

            activities = ActivityRepository(session)
            enrollments = EnrollmentRepository(session)
            activity = await self._load_active(activities, activity_id)

            if await enrollments.get(activity.id, target_user_id) is not None:
                raise AlreadyEnrolled(
                    "Member is already enrolled in this activity",
                    {"activity_id": str(activity.id), "user_id": target_user_id},
                )

            now = self.clock.now()
            policy = await load_policy(session, self.defaults)

            membership = await MembershipRepository(session).get_eligibility(target_user_id)
            decision = evaluate(membership, now, policy.payment_grace_period_days)
            if not decision.allowed:
                raise NotEligible(decision.reason, {"user_id": target_user_id})

            if not can_enroll(activity, now, policy.registration_cutoff_hours):
                raise OutsideWindow(
                    "Enrollment is not open for this activity",
                    {
                        "activity_id": str(activity.id),
                        "start_at": activity.start_at.isoformat(),
                        "registration_cutoff_hours": policy.registration_cutoff_hours,
                    },
                )

            await CapacityLedger(activities, enrollments).try_reserve_slot(activity, now)

            # Captured up front: a failed flush expires every loaded instance
            details = {"activity_id": str(activity.id), "user_id": target_user_id}
            enrollment = Enrollment(
                id=uuid.uuid4(),
                activity_id=activity.id,
                user_id=target_user_id,
                attendance_status=AttendanceStatus.PENDING,
                enrolled_at=now,
            )
            try:
                await enrollments.add(enrollment)
            except IntegrityError:
                # Lost a race with another process enrolling the same member
                raise AlreadyEnrolled("Member is already enrolled in this activity", details)

            logger.info(
                f"User {target_user_id} enrolled in activity {activity.id} by {actor.user_id} "
                f"({activity.current_participants}/{activity.max_participants})"
            )
            return enrollment

        return await self.runner.run("enroll", work, activity_id=activity_id)

    async def unenroll(self, activity_id: uuid.UUID, actor: Actor, target_user_id: str) -> Result[str]:
        """
        Remove a member's enrollment and release their slot.

        Returns:
            Result with the unenrolled user id
        """

        async def work(session: AsyncSession) -> str:
            require_self_or_staff(actor, target_user_id)

            activities = ActivityRepository(session)
            enrollments = EnrollmentRepository(session)
            activity = await self._load_active(activities, activity_id)

            enrollment = await enrollments.get(activity.id, target_user_id, for_update=True)
            if enrollment is None:
                raise NotFound(
                    "Member is not enrolled in this activity",
                    {"activity_id": str(activity.id), "user_id": target_user_id},
                )

            now = self.clock.now()
            policy = await load_policy(session, self.defaults)
            if not can_unenroll(activity, now, policy.unregistration_cutoff_hours):
                raise OutsideWindow(
                    "It is too late to unenroll from this activity",
                    {
                        "activity_id": str(activity.id),
                        "start_at": activity.start_at.isoformat(),
                        "unregistration_cutoff_hours": policy.unregistration_cutoff_hours,
                    },
                )

            await enrollments.delete(enrollment)
            await CapacityLedger(activities, enrollments).release_slot(activity, now)

            logger.info(f"User {target_user_id} unenrolled from activity {activity.id} by {actor.user_id}")
            return target_user_id

        return await self.runner.run("unenroll", work, activity_id=activity_id)

    async def mark_attendance(
        self,
        activity_id: uuid.UUID,
        actor: Actor,
        target_user_id: str,
        new_status: AttendanceStatus,
    ) -> Result[Enrollment]:
        """Set one member's attendance (ADMIN or the owning TRAINER)"""

        async def work(session: AsyncSession) -> Enrollment:
            activity = await self._load_for_attendance(session, activity_id, actor)
            enrollment = await self._enrollment_for(session, activity, target_user_id)
            self._apply(activity, enrollment, new_status, actor)
            await session.flush()
            return enrollment

        return await self.runner.run("mark_attendance", work, activity_id=activity_id)

    async def mark_attendance_bulk(
        self,
        activity_id: uuid.UUID,
        actor: Actor,
        updates: Dict[str, AttendanceStatus],
    ) -> Result[List[Enrollment]]:
        """
        Apply several attendance changes at once, all-or-nothing.

        Args:
            updates: Mapping of user id to new attendance status

        Returns:
            Result with the updated enrollments in the order given
        """

        async def work(session: AsyncSession) -> List[Enrollment]:
            if not updates:
                raise InvalidInput("No attendance changes given")

            activity = await self._load_for_attendance(session, activity_id, actor)
            changed = []
            for user_id, new_status in updates.items():
                enrollment = await self._enrollment_for(session, activity, user_id)
                self._apply(activity, enrollment, new_status, actor)
                changed.append(enrollment)

            await session.flush()
            return changed

        return await self.runner.run("mark_attendance_bulk", work, activity_id=activity_id)

    async def set_membership(
        self,
        actor: Actor,
        user_id: str,
        snapshot: MembershipEligibility,
    ) -> Result[MembershipEligibility]:
        """Store the membership snapshot reported by the payment ledger (ADMIN only)"""

        async def work(session: AsyncSession) -> MembershipEligibility:
            if not actor.is_admin:
                raise Forbidden("Only an admin may sync membership snapshots")
            if snapshot.last_payment_at is not None and snapshot.last_payment_at.tzinfo is None:
                raise InvalidInput("last_payment_at must include a timezone offset")

            repo = MembershipRepository(session)
            await repo.upsert(user_id, snapshot, self.clock.now())
            logger.info(
                f"Membership snapshot for {user_id} synced: {snapshot.membership_status.value}, "
                f"pending review={snapshot.has_pending_payment_under_review}"
            )
            return await repo.get_eligibility(user_id)

        return await self.runner.run("set_membership", work)

    async def evaluate_eligibility(self, actor: Actor, user_id: str) -> Result[EligibilityDecision]:
        """Preview whether a member could enroll right now, and why not"""

        async def work(session: AsyncSession) -> EligibilityDecision:
            require_self_or_staff(actor, user_id)
            policy = await load_policy(session, self.defaults)
            membership = await MembershipRepository(session).get_eligibility(user_id)
            return evaluate(membership, self.clock.now(), policy.payment_grace_period_days)

        return await self.runner.run("evaluate_eligibility", work)

    async def _load_for_attendance(self, session: AsyncSession, activity_id: uuid.UUID, actor: Actor) -> Activity:
        activity = await ActivityRepository(session).get(activity_id, for_update=True)
        if activity is None:
            raise NotFound(f"Activity {activity_id} not found", {"activity_id": str(activity_id)})
        require_admin_or_owner(actor, activity)
        attendance.ensure_attendance_editable(activity)
        return activity

    @staticmethod
    async def _enrollment_for(session: AsyncSession, activity: Activity, user_id: str) -> Enrollment:
        enrollment = await EnrollmentRepository(session).get(activity.id, user_id, for_update=True)
        if enrollment is None:
            raise NotFound(
                "Member is not enrolled in this activity",
                {"activity_id": str(activity.id), "user_id": user_id},
            )
        return enrollment

    def _apply(self, activity: Activity, enrollment: Enrollment, new_status: AttendanceStatus, actor: Actor) -> None:
        previous = enrollment.attendance_status
        status = attendance.transition(activity, previous, new_status)
        if status is None:
            return

        enrollment.attendance_status = status
        enrollment.attendance_marked_at = self.clock.now()
        enrollment.attendance_marked_by = actor.user_id
        logger.info(
            f"Attendance of {enrollment.user_id} in activity {activity.id}: "
            f"{previous.value} -> {status.value} (by {actor.user_id})"
        )

    @staticmethod
    async def _load_active(activities: ActivityRepository, activity_id: uuid.UUID) -> Activity:
        activity = await activities.get(activity_id, for_update=True)
        if activity is None:
            raise NotFound(f"Activity {activity_id} not found", {"activity_id": str(activity_id)})
        if activity.status != ActivityStatus.ACTIVE:
            raise InvalidState(
                f"Activity is {activity.status.value.lower()}",
                {"activity_id": str(activity.id), "status": activity.status.value},
            )
        return activity


# Global coordinator instance
_coordinator: Optional[EnrollmentCoordinator] = None


def get_enrollment_coordinator() -> EnrollmentCoordinator:
    """Get or create global EnrollmentCoordinator instance."""
    global _coordinator
    if _coordinator is None:
        _coordinator = EnrollmentCoordinator(get_transaction_runner(), get_clock())
    return _coordinator
