"""
APScheduler Configuration

Runs the periodic completion sweep that closes finished activities and keeps
recurring chains going.
"""
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from classroster.config import get_settings
from classroster.services.activity_scheduler import get_activity_scheduler

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()


async def complete_due_activities():
    """
    Sweep job: complete every ACTIVE activity whose end time has passed.

    Pending attendances become ABSENT and recurring activities get their
    successor for the following week.
    """
    logger.debug("Starting completion sweep")

    try:
        summary = await get_activity_scheduler().complete_due_activities()

        if summary["activities_completed"]:
            logger.info(
                f"Completion sweep: {summary['activities_completed']} activities completed, "
                f"{summary['successors_created']} successors created "
                f"in {summary['duration_ms']:.2f}ms"
            )

        # Warn if the sweep is slow enough to overlap the next run
        if summary["duration_ms"] > 30000:
            logger.warning(f"Completion sweep slow: {summary['duration_ms']:.2f}ms (target: <30000ms)")

    except Exception as e:
        logger.error(f"Failed to complete due activities: {e}", exc_info=True)


def configure_scheduler():
    """
    Configure APScheduler with all scheduled jobs.

    Jobs:
        - Completion sweep: every COMPLETION_SWEEP_MINUTES minutes
    """
    step = max(1, get_settings().completion_sweep_minutes)

    scheduler.add_job(
        complete_due_activities,
        trigger=CronTrigger(minute=f"*/{step}"),
        id="activity_completion_sweep",
        name="Complete Due Activities",
        replace_existing=True,
        coalesce=True,  # Combine missed runs into single execution
        max_instances=1  # Only one instance at a time
    )

    logger.info(f"Scheduler configured with completion sweep every {step} minute(s)")


def start_scheduler():
    """Start the APScheduler"""
    configure_scheduler()
    scheduler.start()
    logger.info("Scheduler started")


def stop_scheduler():
    """Stop the APScheduler"""
    if scheduler.running:
        scheduler.shutdown()
    logger.info("Scheduler stopped")
