"""
Membership Eligibility Evaluator

Decides whether a member may enroll from their membership snapshot and the
current time. Pure: no I/O, no clock access beyond the `now` argument.

Rules, in order:
    1. ACTIVE membership -> allowed
    2. INACTIVE, no payment under review -> denied
    3. INACTIVE, payment under review:
        - no payment record -> denied
        - days since payment <= grace period -> allowed, with days remaining
        - otherwise -> denied
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from classroster.models.enums import MembershipStatus

DEFAULT_GRACE_PERIOD_DAYS = 10

REASON_INACTIVE = "membership inactive, payment required"
REASON_NO_PAYMENT = "no payment record found"
REASON_GRACE_EXPIRED = "grace period expired, payment still under review"


@dataclass(frozen=True)
class MembershipEligibility:
    """Snapshot of a member's standing as reported by the payment ledger"""

    membership_status: MembershipStatus
    last_payment_at: Optional[datetime] = None
    has_pending_payment_under_review: bool = False


@dataclass(frozen=True)
class EligibilityDecision:
    allowed: bool
    reason: Optional[str] = None
    grace_days_remaining: Optional[int] = None


def days_since(then: datetime, now: datetime) -> int:
    """Whole days elapsed from `then` to `now` (floor), never negative"""
    elapsed = now - then
    if elapsed < timedelta(0):
        return 0
    return elapsed // timedelta(days=1)


def grace_reason(days_remaining: int) -> str:
    unit = "day" if days_remaining == 1 else "days"
    return f"payment under review, {days_remaining} {unit} of grace remaining"


def evaluate(
    membership: MembershipEligibility,
    now: datetime,
    grace_period_days: int = DEFAULT_GRACE_PERIOD_DAYS,
) -> EligibilityDecision:
    """
    Evaluate enrollment eligibility.

    Args:
        membership: Membership snapshot for the member
        now: Current instant (timezone-aware)
        grace_period_days: Days after a pending-review payment during which
            an inactive member may still enroll (inclusive)

    Returns:
        EligibilityDecision
    """
    if membership.membership_status == MembershipStatus.ACTIVE:
        return EligibilityDecision(allowed=True)

    if not membership.has_pending_payment_under_review:
        return EligibilityDecision(allowed=False, reason=REASON_INACTIVE)

    if membership.last_payment_at is None:
        return EligibilityDecision(allowed=False, reason=REASON_NO_PAYMENT)

    elapsed_days = days_since(membership.last_payment_at, now)
    if elapsed_days <= grace_period_days:
        remaining = grace_period_days - elapsed_days
        return EligibilityDecision(
            allowed=True,
            reason=grace_reason(remaining),
            grace_days_remaining=remaining,
        )

    return EligibilityDecision(allowed=False, reason=REASON_GRACE_EXPIRED)
