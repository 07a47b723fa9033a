"""
Unit tests for the membership eligibility evaluator

Tests the rule order, grace period boundaries and user-facing reasons.
"""

import pytest
from datetime import datetime, timedelta, timezone

from classroster.models.enums import MembershipStatus
from classroster.services.eligibility import (
    MembershipEligibility,
    REASON_GRACE_EXPIRED,
    REASON_INACTIVE,
    REASON_NO_PAYMENT,
    days_since,
    evaluate,
    grace_reason,
)

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def pending(days_ago, hours=0):
    return MembershipEligibility(
        membership_status=MembershipStatus.INACTIVE,
        last_payment_at=NOW - timedelta(days=days_ago, hours=hours),
        has_pending_payment_under_review=True,
    )


class TestRuleOrder:
    """Active members pass; inactive members need a payment under review"""

    def test_active_member_allowed_without_reason(self):
        decision = evaluate(MembershipEligibility(membership_status=MembershipStatus.ACTIVE), NOW)

        assert decision.allowed is True
        assert decision.reason is None
        assert decision.grace_days_remaining is None

    def test_active_member_ignores_old_payment(self):
        membership = MembershipEligibility(
            membership_status=MembershipStatus.ACTIVE,
            last_payment_at=NOW - timedelta(days=400),
        )

        assert evaluate(membership, NOW).allowed is True

    def test_inactive_without_review_denied(self):
        membership = MembershipEligibility(
            membership_status=MembershipStatus.INACTIVE,
            last_payment_at=NOW - timedelta(days=1),
        )
        decision = evaluate(membership, NOW)

        assert decision.allowed is False
        assert decision.reason == REASON_INACTIVE

    def test_review_without_payment_record_denied(self):
        membership = MembershipEligibility(
            membership_status=MembershipStatus.INACTIVE,
            has_pending_payment_under_review=True,
        )
        decision = evaluate(membership, NOW)

        assert decision.allowed is False
        assert decision.reason == REASON_NO_PAYMENT


class TestGracePeriod:
    """Grace period of 10 days counted in whole elapsed days"""

    def test_five_days_allowed_with_remaining_days(self):
        decision = evaluate(pending(5), NOW)

        assert decision.allowed is True
        assert decision.grace_days_remaining == 5
        assert decision.reason == "payment under review, 5 days of grace remaining"

    def test_day_ten_is_last_allowed_day(self):
        decision = evaluate(pending(10), NOW)

        assert decision.allowed is True
        assert decision.grace_days_remaining == 0

    def test_day_ten_late_in_the_day_still_allowed(self):
        # 10 days 23 hours floors to 10 elapsed days
        decision = evaluate(pending(10, hours=23), NOW)

        assert decision.allowed is True
        assert decision.grace_days_remaining == 0

    def test_day_eleven_denied(self):
        decision = evaluate(pending(11), NOW)

        assert decision.allowed is False
        assert decision.reason == REASON_GRACE_EXPIRED
        assert decision.grace_days_remaining is None

    def test_twelve_days_denied(self):
        assert evaluate(pending(12), NOW).allowed is False

    def test_custom_grace_period(self):
        assert evaluate(pending(3), NOW, grace_period_days=3).allowed is True
        assert evaluate(pending(4), NOW, grace_period_days=3).allowed is False

    def test_zero_grace_period_allows_same_day_only(self):
        assert evaluate(pending(0, hours=5), NOW, grace_period_days=0).allowed is True
        assert evaluate(pending(1), NOW, grace_period_days=0).allowed is False


class TestDaysSince:
    def test_floors_partial_days(self):
        assert days_since(NOW - timedelta(days=2, hours=23, minutes=59), NOW) == 2

    def test_future_payment_counts_as_zero(self):
        assert days_since(NOW + timedelta(days=3), NOW) == 0

    @pytest.mark.parametrize("remaining,expected", [
        (1, "payment under review, 1 day of grace remaining"),
        (0, "payment under review, 0 days of grace remaining"),
    ])
    def test_grace_reason_pluralization(self, remaining, expected):
        assert grace_reason(remaining) == expected
