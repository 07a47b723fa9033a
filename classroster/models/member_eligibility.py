"""MemberEligibility model - Membership snapshot pushed by the payment ledger"""
from sqlalchemy import Column, String, Boolean, Enum

from classroster.database import Base, UTCDateTime
from classroster.models.enums import MembershipStatus


class MemberEligibility(Base):
    """Read-only (for the engine) membership and payment snapshot per user"""

    __tablename__ = "member_eligibility"

    user_id = Column(String(64), primary_key=True)
    membership_status = Column(
        Enum(MembershipStatus, native_enum=False, length=20, name="membership_status"),
        nullable=False,
    )
    last_payment_at = Column(UTCDateTime, nullable=True)
    has_pending_payment_under_review = Column(Boolean, nullable=False, default=False)
    synced_at = Column(UTCDateTime, nullable=False)

    def __repr__(self):
        return f"<MemberEligibility(user={self.user_id}, status={self.membership_status})>"
