"""
Shared fixtures: a file-backed SQLite database per test, a fixed clock and
engine services wired to both.
"""
import os

# Keep the application engine off PostgreSQL and the scheduler off during tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./classroster_test.db")
os.environ.setdefault("ENABLE_SCHEDULER", "false")

import pytest
from datetime import datetime, timedelta, timezone

from classroster.database import build_engine, build_session_factory, init_models
from classroster.models.enums import MembershipStatus, Role
from classroster.services.activity_queries import ActivityQueries
from classroster.services.activity_scheduler import ActivityDraft, ActivityScheduler
from classroster.services.actors import Actor
from classroster.services.clock import FixedClock
from classroster.services.eligibility import MembershipEligibility
from classroster.services.enrollment_coordinator import EnrollmentCoordinator
from classroster.services.settings_service import PolicySettings, SettingsService
from classroster.services.unit_of_work import TransactionRunner

# Monday 2024-01-08 07:00 UTC
NOW = datetime(2024, 1, 8, 7, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'classroster.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def runner(session_factory):
    return TransactionRunner(session_factory, retries=3)


@pytest.fixture
def policy():
    """Environment defaults: 24h to enroll, 12h to unenroll, 10 days of grace"""
    return PolicySettings(
        registration_cutoff_hours=24,
        unregistration_cutoff_hours=12,
        payment_grace_period_days=10,
    )


@pytest.fixture
def scheduler(runner, clock):
    return ActivityScheduler(runner, clock)


@pytest.fixture
def coordinator(runner, clock, policy):
    return EnrollmentCoordinator(runner, clock, policy)


@pytest.fixture
def queries(runner):
    return ActivityQueries(runner)


@pytest.fixture
def settings_service(runner, clock, policy):
    return SettingsService(runner, clock, policy)


@pytest.fixture
def admin():
    return Actor(user_id="admin_1", role=Role.ADMIN)


@pytest.fixture
def trainer():
    return Actor(user_id="trainer_1", role=Role.TRAINER)


@pytest.fixture
def other_trainer():
    return Actor(user_id="trainer_2", role=Role.TRAINER)


@pytest.fixture
def member():
    return Actor(user_id="member_1", role=Role.CLIENT)


@pytest.fixture
def make_activity(scheduler, clock, admin):
    """Create one activity starting `start_in` from the clock's now, owned by trainer_1"""

    async def _make(
        start_in=timedelta(hours=10),
        max_participants=10,
        duration_minutes=60,
        trainer_id="trainer_1",
        recurrence=None,
        name="Spin",
    ):
        result = await scheduler.create_activity(
            admin,
            ActivityDraft(
                name=name,
                start_at=clock.now() + start_in,
                duration_minutes=duration_minutes,
                max_participants=max_participants,
                trainer_id=trainer_id,
                location="Cycle Room",
                recurrence=recurrence,
            ),
            allow_past=True,
        )
        assert result.ok, result.failure
        return result.value[0]

    return _make


@pytest.fixture
def make_member(coordinator, clock, admin):
    """Store a membership snapshot; ACTIVE by default"""

    async def _make(
        user_id,
        status=MembershipStatus.ACTIVE,
        paid_days_ago=None,
        pending_review=False,
    ):
        last_payment_at = None
        if paid_days_ago is not None:
            last_payment_at = clock.now() - timedelta(days=paid_days_ago)
        result = await coordinator.set_membership(
            admin,
            user_id,
            MembershipEligibility(
                membership_status=status,
                last_payment_at=last_payment_at,
                has_pending_payment_under_review=pending_review,
            ),
        )
        assert result.ok, result.failure
        return user_id

    return _make
