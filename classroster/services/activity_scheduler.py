"""
Activity Scheduler

Owns the activity lifecycle:
- creation (one-off, or one activity per selected weekday for recurring classes)
- edits while ACTIVE
- ACTIVE -> COMPLETED (explicit or by the completion sweep), spawning exactly
  one successor one week later for recurring activities
- ACTIVE -> CANCELLED, which never spawns a successor
- deletion

Only the caller that wins the ACTIVE -> COMPLETED compare-and-set spawns a
successor, and predecessor_id is unique, so retried or overlapping completion
runs cannot double-spawn.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from classroster.models.activity import Activity
from classroster.models.enums import ActivityStatus
from classroster.services.actors import Actor, SYSTEM_ACTOR, require_admin_or_owner
from classroster.services.clock import get_clock
from classroster.services.errors import Forbidden, InvalidInput, InvalidState, NotFound
from classroster.services.repositories import ActivityRepository, EnrollmentRepository
from classroster.services.results import Result
from classroster.services.unit_of_work import TransactionRunner, get_transaction_runner

logger = logging.getLogger(__name__)

RECURRENCE_INTERVAL = timedelta(days=7)

MAX_DURATION_MINUTES = 24 * 60
MAX_PARTICIPANTS = 10_000
LATEST_START = datetime(9000, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class ActivityDraft:
    """Validated-on-use command to create activities"""

    name: str
    start_at: datetime
    duration_minutes: int
    max_participants: int
    trainer_id: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    recurrence: Optional[List[int]] = None


@dataclass(frozen=True)
class ActivityChanges:
    """Partial update; None leaves a field untouched, recurrence=[] clears it"""

    name: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    trainer_id: Optional[str] = None
    start_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    max_participants: Optional[int] = None
    recurrence: Optional[List[int]] = None


@dataclass(frozen=True)
class CompletionOutcome:
    activity: Activity
    successor: Optional[Activity]
    marked_absent: int


def normalize_recurrence(weekdays: Optional[Iterable[int]]) -> Optional[List[int]]:
    """
    Sorted, de-duplicated weekday list, or None for "not recurring".

    Raises:
        InvalidInput: If a weekday is outside 0 (Monday) .. 6 (Sunday)
    """
    if not weekdays:
        return None
    days = sorted(set(int(day) for day in weekdays))
    invalid = [day for day in days if day < 0 or day > 6]
    if invalid:
        raise InvalidInput(
            f"Invalid weekday(s) {invalid}: must be 0 (Monday) to 6 (Sunday)",
            {"recurrence": list(weekdays)},
        )
    return days


def first_occurrence(start_at: datetime, weekday: int) -> datetime:
    """First instant on or after start_at's date falling on `weekday`, same time of day"""
    offset_days = (weekday - start_at.weekday()) % 7
    return start_at + timedelta(days=offset_days)


def recurring_start_times(
    start_at: datetime,
    weekdays: List[int],
    now: datetime,
    allow_past: bool = False,
) -> List[datetime]:
    """
    One start time per selected weekday: the next occurrence of that weekday
    at start_at's time of day, counting from start_at's date. Unless past
    dates are allowed, occurrences not after `now` move forward a week.
    """
    starts = []
    for weekday in weekdays:
        occurrence = first_occurrence(start_at, weekday)
        if not allow_past:
            while occurrence <= now:
                occurrence += RECURRENCE_INTERVAL
        starts.append(occurrence)
    return sorted(starts)


def end_of(activity: Activity) -> datetime:
    return activity.start_at + timedelta(minutes=activity.duration_minutes)


def has_ended(activity: Activity, now: datetime) -> bool:
    try:
        return end_of(activity) <= now
    except OverflowError:
        logger.warning(f"Activity {activity.id} has no representable end time, skipping")
        return False


def _require_range(field: str, value: Optional[int], upper: int) -> None:
    if value is not None and not 0 < value <= upper:
        raise InvalidInput(f"{field} must be between 1 and {upper}", {field: value})


def _require_schedulable(value: Optional[datetime]) -> None:
    if value is not None and value >= LATEST_START:
        raise InvalidInput(
            f"start_at must be before {LATEST_START.date().isoformat()}",
            {"start_at": value.isoformat()},
        )


def _require_aware(field: str, value: Optional[datetime]) -> None:
    if value is not None and value.tzinfo is None:
        raise InvalidInput(f"{field} must include a timezone offset", {field: value.isoformat()})


def _require_name(name: Optional[str]) -> None:
    if name is not None and not name.strip():
        raise InvalidInput("name must not be blank")


class ActivityScheduler:
    def __init__(self, runner: TransactionRunner, clock):
        self.runner = runner
        self.clock = clock

    async def create_activity(
        self,
        actor: Actor,
        draft: ActivityDraft,
        allow_past: bool = False,
    ) -> Result[List[Activity]]:
        """
        Create one activity, or one per selected weekday when recurring.

        Args:
            actor: ADMIN or TRAINER
            draft: Activity fields
            allow_past: Accept a start in the past (ADMIN-authored backfill only)

        Returns:
            Result with the created activities ordered by start_at
        """

        async def work(session: AsyncSession) -> List[Activity]:
            if not actor.is_staff:
                raise Forbidden("Only admins and trainers may create activities")
            if allow_past and not actor.is_admin:
                raise Forbidden("Only an admin may create activities in the past")

            trainer_id = self._resolve_trainer(actor, draft.trainer_id)
            _require_name(draft.name)
            _require_range("duration_minutes", draft.duration_minutes, MAX_DURATION_MINUTES)
            _require_range("max_participants", draft.max_participants, MAX_PARTICIPANTS)
            _require_aware("start_at", draft.start_at)
            _require_schedulable(draft.start_at)
            recurrence = normalize_recurrence(draft.recurrence)

            now = self.clock.now()
            if recurrence:
                starts = recurring_start_times(draft.start_at, recurrence, now, allow_past)
            else:
                if draft.start_at <= now and not allow_past:
                    raise InvalidInput(
                        "start_at must be in the future",
                        {"start_at": draft.start_at.isoformat()},
                    )
                starts = [draft.start_at]

            repo = ActivityRepository(session)
            created = []
            for start_at in starts:
                activity = Activity(
                    id=uuid.uuid4(),
                    name=draft.name.strip(),
                    description=draft.description,
                    location=draft.location,
                    trainer_id=trainer_id,
                    start_at=start_at,
                    duration_minutes=draft.duration_minutes,
                    max_participants=draft.max_participants,
                    current_participants=0,
                    status=ActivityStatus.ACTIVE,
                    recurrence=recurrence,
                    created_by=actor.user_id,
                    created_at=now,
                    last_modified_at=now,
                )
                created.append(await repo.add(activity))

            logger.info(
                f"Created {len(created)} activit{'y' if len(created) == 1 else 'ies'} "
                f"'{draft.name}' for trainer {trainer_id} (recurring={bool(recurrence)})"
            )
            return created

        return await self.runner.run("create_activity", work)

    @staticmethod
    def _resolve_trainer(actor: Actor, trainer_id: Optional[str]) -> str:
        if actor.is_admin:
            if not trainer_id:
                raise InvalidInput("trainer_id is required")
            return trainer_id

        # Trainers always own what they create
        if trainer_id and trainer_id != actor.user_id:
            raise Forbidden("Trainers may only create their own activities")
        return actor.user_id

    async def update_activity(
        self,
        activity_id: uuid.UUID,
        actor: Actor,
        changes: ActivityChanges,
    ) -> Result[Activity]:
        """
        Edit an ACTIVE activity.

        Capacity may not drop below the current participant count (rejected,
        never clamped); only an admin may reassign the trainer.
        """

        async def work(session: AsyncSession) -> Activity:
            repo = ActivityRepository(session)
            activity = await self._load(repo, activity_id)
            require_admin_or_owner(actor, activity)

            if activity.status != ActivityStatus.ACTIVE:
                raise InvalidState(
                    f"Cannot edit a {activity.status.value.lower()} activity",
                    {"activity_id": str(activity.id), "status": activity.status.value},
                )

            if changes.trainer_id is not None and changes.trainer_id != activity.trainer_id:
                if not actor.is_admin:
                    raise Forbidden("Only an admin may reassign an activity's trainer")

            _require_name(changes.name)
            _require_range("duration_minutes", changes.duration_minutes, MAX_DURATION_MINUTES)
            _require_range("max_participants", changes.max_participants, MAX_PARTICIPANTS)
            _require_aware("start_at", changes.start_at)
            _require_schedulable(changes.start_at)

            if (
                changes.max_participants is not None
                and changes.max_participants < activity.current_participants
            ):
                raise InvalidInput(
                    "max_participants cannot be lower than the current number of participants",
                    {
                        "max_participants": changes.max_participants,
                        "current_participants": activity.current_participants,
                    },
                )

            now = self.clock.now()
            if changes.start_at is not None and changes.start_at <= now:
                raise InvalidInput(
                    "start_at must be in the future",
                    {"start_at": changes.start_at.isoformat()},
                )

            if changes.name is not None:
                activity.name = changes.name.strip()
            if changes.description is not None:
                activity.description = changes.description
            if changes.location is not None:
                activity.location = changes.location
            if changes.trainer_id is not None:
                activity.trainer_id = changes.trainer_id
            if changes.start_at is not None:
                activity.start_at = changes.start_at
            if changes.duration_minutes is not None:
                activity.duration_minutes = changes.duration_minutes
            if changes.max_participants is not None:
                activity.max_participants = changes.max_participants
            if changes.recurrence is not None:
                activity.recurrence = normalize_recurrence(changes.recurrence)

            activity.last_modified_at = now
            await session.flush()

            logger.info(f"Activity {activity.id} updated by {actor.user_id}")
            return activity

        return await self.runner.run("update_activity", work, activity_id=activity_id)

    async def delete_activity(self, activity_id: uuid.UUID, actor: Actor) -> Result[uuid.UUID]:
        """Remove an activity together with its enrollments"""

        async def work(session: AsyncSession) -> uuid.UUID:
            repo = ActivityRepository(session)
            activity = await self._load(repo, activity_id)
            require_admin_or_owner(actor, activity)

            await repo.delete(activity)
            logger.info(f"Activity {activity_id} deleted by {actor.user_id}")
            return activity_id

        return await self.runner.run("delete_activity", work, activity_id=activity_id)

    async def complete_activity(self, activity_id: uuid.UUID, actor: Actor) -> Result[CompletionOutcome]:
        """
        Mark an ACTIVE activity COMPLETED.

        Pending attendances become ABSENT; a recurring activity gets exactly one
        successor at start_at + 7 days.
        """

        async def work(session: AsyncSession) -> CompletionOutcome:
            repo = ActivityRepository(session)
            activity = await self._load(repo, activity_id)
            require_admin_or_owner(actor, activity)
            return await self._complete(session, activity, actor, self.clock.now())

        return await self.runner.run("complete_activity", work, activity_id=activity_id)

    async def cancel_activity(self, activity_id: uuid.UUID, actor: Actor) -> Result[Activity]:
        """Mark an ACTIVE activity CANCELLED; a recurring chain ends here"""

        async def work(session: AsyncSession) -> Activity:
            repo = ActivityRepository(session)
            activity = await self._load(repo, activity_id)
            require_admin_or_owner(actor, activity)
            self._require_active(activity)

            now = self.clock.now()
            if not await repo.compare_and_set_status(
                activity.id, ActivityStatus.ACTIVE, ActivityStatus.CANCELLED, now
            ):
                raise InvalidState("Activity is no longer active", {"activity_id": str(activity.id)})

            await repo.refresh(activity)
            logger.info(f"Activity {activity.id} cancelled by {actor.user_id}")
            return activity

        return await self.runner.run("cancel_activity", work, activity_id=activity_id)

    async def complete_due_activities(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Complete every ACTIVE activity whose end time has passed.

        Each activity completes in its own transaction through the same
        compare-and-set path as complete_activity.

        Returns:
            Summary dict with:
                - activities_completed
                - successors_created
                - skipped: candidates another writer completed or changed first
                - duration_ms
        """
        start_time = time.time()
        now = now or self.clock.now()

        async def candidates(session: AsyncSession) -> List[uuid.UUID]:
            activities = await ActivityRepository(session).active_started_before(now)
            return [a.id for a in activities if has_ended(a, now)]

        due_ids = await self.runner.read(candidates)

        completed = 0
        successors = 0
        skipped = 0

        for activity_id in due_ids:
            result = await self.runner.run(
                "complete_due_activity",
                self._complete_if_due(activity_id, now),
                activity_id=activity_id,
            )
            if result.ok:
                completed += 1
                if result.value.successor is not None:
                    successors += 1
            else:
                skipped += 1

        duration_ms = (time.time() - start_time) * 1000
        if due_ids:
            logger.info(
                f"Completion sweep: {completed} completed, {successors} successors created, "
                f"{skipped} skipped in {duration_ms:.2f}ms"
            )

        return {
            "activities_completed": completed,
            "successors_created": successors,
            "skipped": skipped,
            "duration_ms": round(duration_ms, 2),
        }

    def _complete_if_due(self, activity_id: uuid.UUID, now: datetime):
        async def work(session: AsyncSession) -> CompletionOutcome:
            repo = ActivityRepository(session)
            activity = await self._load(repo, activity_id)
            if not has_ended(activity, now):
                raise InvalidState("Activity has not ended yet", {"activity_id": str(activity_id)})
            return await self._complete(session, activity, SYSTEM_ACTOR, now)

        return work

    async def _complete(
        self,
        session: AsyncSession,
        activity: Activity,
        actor: Actor,
        now: datetime,
    ) -> CompletionOutcome:
        repo = ActivityRepository(session)
        self._require_active(activity)

        if not await repo.compare_and_set_status(
            activity.id, ActivityStatus.ACTIVE, ActivityStatus.COMPLETED, now
        ):
            raise InvalidState("Activity is no longer active", {"activity_id": str(activity.id)})

        marked_absent = await EnrollmentRepository(session).mark_pending_absent(activity.id, now, actor.user_id)
        await repo.refresh(activity)

        successor = None
        if activity.is_recurring:
            successor = await self._spawn_successor(repo, activity, now)

        logger.info(
            f"Activity {activity.id} completed by {actor.user_id}: "
            f"{marked_absent} pending marked absent"
            f"{', successor ' + str(successor.id) if successor else ''}"
        )
        return CompletionOutcome(activity=activity, successor=successor, marked_absent=marked_absent)

    async def _spawn_successor(self, repo: ActivityRepository, activity: Activity, now: datetime) -> Activity:
        existing = await repo.successor_of(activity.id)
        if existing is not None:
            return existing

        successor = Activity(
            id=uuid.uuid4(),
            name=activity.name,
            description=activity.description,
            location=activity.location,
            trainer_id=activity.trainer_id,
            start_at=activity.start_at + RECURRENCE_INTERVAL,
            duration_minutes=activity.duration_minutes,
            max_participants=activity.max_participants,
            current_participants=0,
            status=ActivityStatus.ACTIVE,
            recurrence=list(activity.recurrence),
            predecessor_id=activity.id,
            created_by=activity.created_by,
            created_at=now,
            last_modified_at=now,
        )
        await repo.add(successor)
        logger.info(f"Recurring successor {successor.id} scheduled for {successor.start_at.isoformat()}")
        return successor

    @staticmethod
    def _require_active(activity: Activity) -> None:
        if activity.status != ActivityStatus.ACTIVE:
            raise InvalidState(
                f"Activity is {activity.status.value.lower()}",
                {"activity_id": str(activity.id), "status": activity.status.value},
            )

    @staticmethod
    async def _load(repo: ActivityRepository, activity_id: uuid.UUID) -> Activity:
        activity = await repo.get(activity_id, for_update=True)
        if activity is None:
            raise NotFound(f"Activity {activity_id} not found", {"activity_id": str(activity_id)})
        return activity


# Global scheduler instance
_scheduler: Optional[ActivityScheduler] = None


def get_activity_scheduler() -> ActivityScheduler:
    """Get or create global ActivityScheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = ActivityScheduler(get_transaction_runner(), get_clock())
    return _scheduler
