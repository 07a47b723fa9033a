"""
Capacity Ledger

Keeps `current_participants` in step with the enrollment rows of an activity
and enforces `0 <= current_participants <= max_participants`.

Reservation and release are single conditional UPDATEs executed in the same
transaction as the enrollment insert/delete, so a rollback undoes both and two
writers racing for the last slot cannot both win.
"""
import logging
from datetime import datetime
from typing import Dict, Any

from classroster.services.errors import CapacityExceeded
from classroster.services.repositories import ActivityRepository, EnrollmentRepository

logger = logging.getLogger(__name__)


class CapacityLedger:
    def __init__(self, activities: ActivityRepository, enrollments: EnrollmentRepository):
        self.activities = activities
        self.enrollments = enrollments

    async def try_reserve_slot(self, activity, now: datetime) -> None:
        """
        Take one slot for a new enrollment.

        Raises:
            CapacityExceeded: If the activity is already full
        """
        reserved = await self.activities.increment_participants(activity.id, now)
        await self.activities.refresh(activity)

        if not reserved:
            logger.debug(
                f"No slot left in activity {activity.id}: "
                f"{activity.current_participants}/{activity.max_participants}"
            )
            raise CapacityExceeded(
                "Activity is full",
                {
                    "activity_id": str(activity.id),
                    "max_participants": activity.max_participants,
                },
            )

    async def release_slot(self, activity, now: datetime) -> None:
        released = await self.activities.decrement_participants(activity.id, now)
        await self.activities.refresh(activity)

        if not released:
            # Counter already at zero: the enrollment row being removed was never counted
            logger.warning(f"Released slot on activity {activity.id} with no participants counted")

    async def audit(self, activity) -> Dict[str, Any]:
        """
        Compare the denormalized counter with the live enrollment count.

        Returns:
            Dict with counted, live and consistent flag
        """
        live = await self.enrollments.count_for_activity(activity.id)
        return {
            "activity_id": str(activity.id),
            "counted": activity.current_participants,
            "live": live,
            "max_participants": activity.max_participants,
            "consistent": live == activity.current_participants <= activity.max_participants,
        }
