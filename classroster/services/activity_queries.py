"""
Read projections over activities and enrollments.

None of these mutate state; they are recomputed from storage on every call so
they always agree with the aggregate.
"""
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from classroster.models.activity import Activity
from classroster.models.enrollment import Enrollment
from classroster.services import attendance
from classroster.services.actors import Actor, require_admin_or_owner, require_self_or_staff
from classroster.services.capacity_ledger import CapacityLedger
from classroster.services.errors import NotFound
from classroster.services.repositories import ActivityFilter, ActivityRepository, EnrollmentRepository
from classroster.services.results import Result
from classroster.services.unit_of_work import TransactionRunner, get_transaction_runner


@dataclass(frozen=True)
class ActivityDetail:
    activity: Activity
    enrollments: List[Enrollment]


@dataclass(frozen=True)
class MemberEnrollment:
    """One row of a member's attendance history"""

    enrollment: Enrollment
    activity: Activity


class ActivityQueries:
    def __init__(self, runner: TransactionRunner):
        self.runner = runner

    async def list_activities(self, activity_filter: Optional[ActivityFilter] = None) -> Result[List[Activity]]:
        async def work(session: AsyncSession) -> List[Activity]:
            return await ActivityRepository(session).list(activity_filter or ActivityFilter())

        return await self.runner.run("list_activities", work)

    async def get_activity_detail(self, activity_id: uuid.UUID) -> Result[ActivityDetail]:
        """Activity with its enrollments and their attendance, in enrollment order"""

        async def work(session: AsyncSession) -> ActivityDetail:
            activity = await _require_activity(session, activity_id)
            enrollments = await EnrollmentRepository(session).list_for_activity(activity.id)
            return ActivityDetail(activity=activity, enrollments=enrollments)

        return await self.runner.run("get_activity_detail", work)

    async def get_pending_attendance_queue(self, activity_id: uuid.UUID) -> Result[List[Enrollment]]:
        async def work(session: AsyncSession) -> List[Enrollment]:
            activity = await _require_activity(session, activity_id)
            enrollments = await EnrollmentRepository(session).list_for_activity(activity.id)
            return attendance.pending_queue(enrollments)

        return await self.runner.run("get_pending_attendance_queue", work)

    async def is_enrolled(self, activity_id: uuid.UUID, user_id: str) -> Result[bool]:
        async def work(session: AsyncSession) -> bool:
            activity = await _require_activity(session, activity_id)
            return await EnrollmentRepository(session).get(activity.id, user_id) is not None

        return await self.runner.run("is_enrolled", work)

    async def list_member_enrollments(self, actor: Actor, user_id: str) -> Result[List[MemberEnrollment]]:
        """
        Every enrollment of one member, newest activity first.

        Members may only read their own history; staff may read anyone's.
        """

        async def work(session: AsyncSession) -> List[MemberEnrollment]:
            require_self_or_staff(actor, user_id)
            rows = await EnrollmentRepository(session).list_for_user(user_id)
            return [MemberEnrollment(enrollment=e, activity=a) for e, a in rows]

        return await self.runner.run("list_member_enrollments", work)

    async def audit_capacity(self, actor: Actor, activity_id: uuid.UUID) -> Result[Dict[str, Any]]:
        """Counter vs. live enrollment count for one activity (ADMIN or owner)"""

        async def work(session: AsyncSession) -> Dict[str, Any]:
            activity = await _require_activity(session, activity_id)
            require_admin_or_owner(actor, activity)
            ledger = CapacityLedger(ActivityRepository(session), EnrollmentRepository(session))
            return await ledger.audit(activity)

        return await self.runner.run("audit_capacity", work)


async def _require_activity(session: AsyncSession, activity_id: uuid.UUID) -> Activity:
    activity = await ActivityRepository(session).get(activity_id)
    if activity is None:
        raise NotFound(f"Activity {activity_id} not found", {"activity_id": str(activity_id)})
    return activity


# Global queries instance
_queries: Optional[ActivityQueries] = None


def get_activity_queries() -> ActivityQueries:
    """Get or create global ActivityQueries instance."""
    global _queries
    if _queries is None:
        _queries = ActivityQueries(get_transaction_runner())
    return _queries
