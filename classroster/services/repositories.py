"""
Repositories over the activity/enrollment aggregate and membership snapshots.

All methods run inside the caller's session and transaction; none of them
commit. Counter and status changes go through conditional UPDATEs so that the
database itself rejects a write that would break an invariant, whatever
interleaving the callers produce.
"""
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from classroster.models.activity import Activity
from classroster.models.enrollment import Enrollment
from classroster.models.member_eligibility import MemberEligibility
from classroster.models.enums import ActivityStatus, AttendanceStatus, MembershipStatus
from classroster.services.attendance import status_on_completion
from classroster.services.eligibility import MembershipEligibility


@dataclass(frozen=True)
class ActivityFilter:
    """Listing filter; every field is optional and they combine with AND"""

    status: Optional[ActivityStatus] = None
    trainer_id: Optional[str] = None
    start_from: Optional[datetime] = None
    start_to: Optional[datetime] = None
    week_of: Optional[date] = None
    participant_id: Optional[str] = None


def week_bounds(day: date) -> Tuple[datetime, datetime]:
    """
    Sunday 00:00 to Saturday 23:59:59.999999 (UTC) of the week containing `day`.
    """
    # date.weekday(): Monday=0 .. Sunday=6
    days_since_sunday = (day.weekday() + 1) % 7
    sunday = day - timedelta(days=days_since_sunday)
    start = datetime.combine(sunday, time.min, tzinfo=timezone.utc)
    end = datetime.combine(sunday + timedelta(days=6), time.max, tzinfo=timezone.utc)
    return start, end


class ActivityRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, activity_id: uuid.UUID, for_update: bool = False) -> Optional[Activity]:
        stmt = select(Activity).where(Activity.id == activity_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add(self, activity: Activity) -> Activity:
        self.session.add(activity)
        await self.session.flush()
        return activity

    async def delete(self, activity: Activity) -> None:
        await self.session.execute(delete(Enrollment).where(Enrollment.activity_id == activity.id))
        await self.session.delete(activity)
        await self.session.flush()

    async def refresh(self, activity: Activity) -> Activity:
        await self.session.refresh(activity)
        return activity

    async def list(self, activity_filter: ActivityFilter) -> List[Activity]:
        stmt = select(Activity)

        if activity_filter.status is not None:
            stmt = stmt.where(Activity.status == activity_filter.status)
        if activity_filter.trainer_id is not None:
            stmt = stmt.where(Activity.trainer_id == activity_filter.trainer_id)
        if activity_filter.start_from is not None:
            stmt = stmt.where(Activity.start_at >= activity_filter.start_from)
        if activity_filter.start_to is not None:
            stmt = stmt.where(Activity.start_at <= activity_filter.start_to)
        if activity_filter.week_of is not None:
            week_start, week_end = week_bounds(activity_filter.week_of)
            stmt = stmt.where(Activity.start_at.between(week_start, week_end))
        if activity_filter.participant_id is not None:
            stmt = stmt.where(
                Activity.id.in_(
                    select(Enrollment.activity_id).where(
                        Enrollment.user_id == activity_filter.participant_id
                    )
                )
            )

        result = await self.session.execute(stmt.order_by(Activity.start_at, Activity.name))
        return list(result.scalars().all())

    async def active_started_before(self, now: datetime) -> List[Activity]:
        """ACTIVE activities whose start is not after `now` (completion candidates)"""
        result = await self.session.execute(
            select(Activity)
            .where(Activity.status == ActivityStatus.ACTIVE)
            .where(Activity.start_at <= now)
            .order_by(Activity.start_at)
        )
        return list(result.scalars().all())

    async def successor_of(self, activity_id: uuid.UUID) -> Optional[Activity]:
        result = await self.session.execute(
            select(Activity).where(Activity.predecessor_id == activity_id)
        )
        return result.scalar_one_or_none()

    async def compare_and_set_status(
        self,
        activity_id: uuid.UUID,
        expected: ActivityStatus,
        new: ActivityStatus,
        now: datetime,
    ) -> bool:
        """Move status from `expected` to `new`; False when someone got there first"""
        result = await self.session.execute(
            update(Activity)
            .where(Activity.id == activity_id, Activity.status == expected)
            .values(status=new, last_modified_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def increment_participants(self, activity_id: uuid.UUID, now: datetime) -> bool:
        """Take one slot if the activity is ACTIVE and not full"""
        result = await self.session.execute(
            update(Activity)
            .where(
                Activity.id == activity_id,
                Activity.status == ActivityStatus.ACTIVE,
                Activity.current_participants < Activity.max_participants,
            )
            .values(
                current_participants=Activity.current_participants + 1,
                last_modified_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def decrement_participants(self, activity_id: uuid.UUID, now: datetime) -> bool:
        result = await self.session.execute(
            update(Activity)
            .where(Activity.id == activity_id, Activity.current_participants > 0)
            .values(
                current_participants=Activity.current_participants - 1,
                last_modified_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class EnrollmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(
        self, activity_id: uuid.UUID, user_id: str, for_update: bool = False
    ) -> Optional[Enrollment]:
        stmt = select(Enrollment).where(
            Enrollment.activity_id == activity_id,
            Enrollment.user_id == user_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add(self, enrollment: Enrollment) -> Enrollment:
        self.session.add(enrollment)
        await self.session.flush()
        return enrollment

    async def delete(self, enrollment: Enrollment) -> None:
        await self.session.delete(enrollment)
        await self.session.flush()

    async def list_for_activity(self, activity_id: uuid.UUID) -> List[Enrollment]:
        result = await self.session.execute(
            select(Enrollment)
            .where(Enrollment.activity_id == activity_id)
            .order_by(Enrollment.enrolled_at, Enrollment.user_id)
        )
        return list(result.scalars().all())

    async def list_for_user(self, user_id: str) -> List[Tuple[Enrollment, Activity]]:
        result = await self.session.execute(
            select(Enrollment, Activity)
            .join(Activity, Activity.id == Enrollment.activity_id)
            .where(Enrollment.user_id == user_id)
            .order_by(Activity.start_at.desc())
        )
        return [(row[0], row[1]) for row in result.all()]

    async def count_for_activity(self, activity_id: uuid.UUID) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(Enrollment).where(Enrollment.activity_id == activity_id)
        )
        return result.scalar() or 0

    async def mark_pending_absent(self, activity_id: uuid.UUID, now: datetime, marked_by: str) -> int:
        """Apply the completion transition to every PENDING record of an activity"""
        result = await self.session.execute(
            update(Enrollment)
            .where(
                Enrollment.activity_id == activity_id,
                Enrollment.attendance_status == AttendanceStatus.PENDING,
            )
            .values(
                attendance_status=status_on_completion(AttendanceStatus.PENDING),
                attendance_marked_at=now,
                attendance_marked_by=marked_by,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


class MembershipRepository:
    """Membership snapshots synced from the payment ledger"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_eligibility(self, user_id: str) -> MembershipEligibility:
        """
        Snapshot for a user. Unknown users are INACTIVE with no payment history.
        """
        row = await self.session.get(MemberEligibility, user_id)
        if row is None:
            return MembershipEligibility(membership_status=MembershipStatus.INACTIVE)

        return MembershipEligibility(
            membership_status=row.membership_status,
            last_payment_at=row.last_payment_at,
            has_pending_payment_under_review=row.has_pending_payment_under_review,
        )

    async def upsert(self, user_id: str, snapshot: MembershipEligibility, now: datetime) -> None:
        row = await self.session.get(MemberEligibility, user_id)
        if row is None:
            row = MemberEligibility(user_id=user_id)
            self.session.add(row)

        row.membership_status = snapshot.membership_status
        row.last_payment_at = snapshot.last_payment_at
        row.has_pending_payment_under_review = snapshot.has_pending_payment_under_review
        row.synced_at = now
        await self.session.flush()
