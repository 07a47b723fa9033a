"""
Enrollment Window Policy

Time-window rules for enroll/unenroll relative to an activity's start.
A cutoff of 0 disables the restriction entirely (sentinel, not "0 hours").
Hours are compared exactly (fractional), so a start 24h00m away is inside a
24-hour window and 24h01m is not.
"""
from datetime import datetime, timedelta

NO_RESTRICTION = 0


def hours_until_start(start_at: datetime, now: datetime) -> float:
    """Fractional hours from now until start (negative once started)"""
    return (start_at - now) / timedelta(hours=1)


def can_enroll(activity, now: datetime, registration_cutoff_hours: int) -> bool:
    """
    Enrollment opens `registration_cutoff_hours` before start and closes at start.
    """
    if registration_cutoff_hours == NO_RESTRICTION:
        return True

    remaining = hours_until_start(activity.start_at, now)
    return 0 < remaining <= registration_cutoff_hours


def can_unenroll(activity, now: datetime, unregistration_cutoff_hours: int) -> bool:
    """
    Unenrollment is blocked once start is closer than `unregistration_cutoff_hours`.
    """
    if unregistration_cutoff_hours == NO_RESTRICTION:
        return True

    return hours_until_start(activity.start_at, now) >= unregistration_cutoff_hours
