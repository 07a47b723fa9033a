"""
Demo Scenario Loader

Loads pre-configured demo scenarios for consistent presentations.
Usage: python -m classroster.scripts.load_demo --scenario weekly_schedule
"""
import asyncio
import argparse
import random
from datetime import datetime, timedelta, timezone
from faker import Faker
from sqlalchemy import text

from classroster.database import AsyncSessionLocal, init_models
from classroster.models.enums import MembershipStatus, Role
from classroster.services.activity_scheduler import ActivityDraft, get_activity_scheduler
from classroster.services.actors import Actor, SYSTEM_ACTOR
from classroster.services.eligibility import MembershipEligibility
from classroster.services.enrollment_coordinator import get_enrollment_coordinator

# Initialize Faker for realistic member and trainer names
fake = Faker()

CLASS_TYPES = [
    ("Morning Yoga", "Studio A", 60),
    ("Spin", "Cycle Room", 45),
    ("HIIT Circuit", "Main Floor", 30),
    ("Pilates", "Studio B", 50),
    ("Boxing Basics", "Ring", 60),
    ("Mobility & Stretch", "Studio A", 40),
]


async def clear_test_data():
    """Clear all existing data"""
    async with AsyncSessionLocal() as session:
        tables = ["enrollments", "activities", "member_eligibility", "engine_settings"]
        for table in tables:
            await session.execute(text(f"DELETE FROM {table}"))
        await session.commit()
    print("✓ Cleared existing data")


def _member_id() -> str:
    return f"member_{fake.user_name()}_{fake.random_number(digits=4)}"


async def _seed_members(count: int, now: datetime) -> list:
    """
    Create member snapshots: mostly ACTIVE, some in grace period, some lapsed.

    Returns:
        Ids of members who may currently enroll
    """
    coordinator = get_enrollment_coordinator()
    eligible = []
    lapsed = 0

    for i in range(count):
        user_id = _member_id()
        roll = i % 10
        if roll < 7:
            snapshot = MembershipEligibility(
                membership_status=MembershipStatus.ACTIVE,
                last_payment_at=now - timedelta(days=random.randint(1, 25)),
            )
        elif roll < 9:
            snapshot = MembershipEligibility(
                membership_status=MembershipStatus.INACTIVE,
                last_payment_at=now - timedelta(days=random.randint(0, 9)),
                has_pending_payment_under_review=True,
            )
        else:
            snapshot = MembershipEligibility(
                membership_status=MembershipStatus.INACTIVE,
                last_payment_at=now - timedelta(days=random.randint(20, 60)),
            )
            lapsed += 1

        result = await coordinator.set_membership(SYSTEM_ACTOR, user_id, snapshot)
        if result.ok and roll < 9:
            eligible.append(user_id)

    print(f"  Created {count} member snapshots ({len(eligible)} eligible, {lapsed} lapsed)")
    return eligible


async def load_weekly_schedule_scenario():
    """
    Load Weekly Schedule scenario.

    Scenario: 4 trainers running recurring classes through the week, plus a
    drop-in class starting in 3 hours that members are already booking.
    """
    print("\nLoading Weekly Schedule scenario...")

    now = datetime.now(timezone.utc)
    scheduler = get_activity_scheduler()
    coordinator = get_enrollment_coordinator()

    trainers = [f"trainer_{fake.first_name().lower()}" for _ in range(4)]
    created = 0

    for trainer_id in trainers:
        trainer = Actor(user_id=trainer_id, role=Role.TRAINER)
        name, location, duration = random.choice(CLASS_TYPES)
        start_hour = random.choice([7, 9, 12, 18, 19])
        start_at = (now + timedelta(days=1)).replace(hour=start_hour, minute=0, second=0, microsecond=0)
        weekdays = sorted(random.sample(range(7), 3))

        result = await scheduler.create_activity(
            trainer,
            ActivityDraft(
                name=name,
                description=fake.sentence(nb_words=10),
                location=location,
                start_at=start_at,
                duration_minutes=duration,
                max_participants=random.choice([8, 12, 15, 20]),
                recurrence=weekdays,
            ),
        )
        if result.ok:
            created += len(result.value)

    print(f"  Created {created} recurring activities for {len(trainers)} trainers")

    drop_in = await scheduler.create_activity(
        SYSTEM_ACTOR,
        ActivityDraft(
            name="Open Gym Drop-in",
            description="Coached open session, all levels welcome",
            location="Main Floor",
            trainer_id=trainers[0],
            start_at=(now + timedelta(hours=3)).replace(second=0, microsecond=0),
            duration_minutes=60,
            max_participants=10,
        ),
    )
    if not drop_in.ok:
        print(f"ERROR: Could not create drop-in class: {drop_in.failure.message}")
        return
    activity = drop_in.value[0]

    members = await _seed_members(30, now)

    enrolled = 0
    rejected = {}
    for user_id in members[:14]:
        result = await coordinator.enroll(activity.id, Actor(user_id=user_id, role=Role.CLIENT), user_id)
        if result.ok:
            enrolled += 1
        else:
            rejected[result.kind.value] = rejected.get(result.kind.value, 0) + 1

    print(f"  Enrolled {enrolled} members into '{activity.name}' (capacity 10)")
    if rejected:
        print(f"  Rejected enrollments: {rejected}")
    print("  ✓ Weekly Schedule scenario loaded")
    print("  Expected: drop-in class full, later enrollments rejected with CAPACITY_EXCEEDED")


async def load_scenario(scenario_name: str):
    """
    Load a demo scenario.

    Args:
        scenario_name: Name of scenario to load
    """
    scenarios = {
        "weekly_schedule": load_weekly_schedule_scenario,
    }

    if scenario_name not in scenarios:
        print(f"ERROR: Unknown scenario '{scenario_name}'")
        print(f"Available scenarios: {', '.join(scenarios.keys())}")
        return

    await init_models()

    # Clear existing data
    await clear_test_data()

    # Load scenario
    await scenarios[scenario_name]()

    print(f"\n✅ Scenario '{scenario_name}' loaded successfully!")
    print("Demo is ready for presentation")


def main():
    """CLI entry point"""
    parser = argparse.ArgumentParser(description="Load demo scenarios")
    parser.add_argument(
        "--scenario",
        "-s",
        choices=["weekly_schedule"],
        required=True,
        help="Scenario to load"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for reproducible demo data"
    )

    args = parser.parse_args()

    if args.seed is not None:
        random.seed(args.seed)
        Faker.seed(args.seed)

    asyncio.run(load_scenario(args.scenario))


if __name__ == "__main__":
    main()
