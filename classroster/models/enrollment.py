"""Enrollment model - Links a member to an activity and carries attendance"""
from sqlalchemy import Column, String, Uuid, Enum, ForeignKey, UniqueConstraint, Index
import uuid

from classroster.database import Base, UTCDateTime
from classroster.models.enums import AttendanceStatus


class Enrollment(Base):
    """Member enrollment in one activity with attendance state"""

    __tablename__ = "enrollments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    activity_id = Column(
        Uuid,
        ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id = Column(String(64), nullable=False)
    attendance_status = Column(
        Enum(AttendanceStatus, native_enum=False, length=20, name="attendance_status"),
        nullable=False,
        default=AttendanceStatus.PENDING,
    )
    enrolled_at = Column(UTCDateTime, nullable=False)
    attendance_marked_at = Column(UTCDateTime, nullable=True)
    attendance_marked_by = Column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint("activity_id", "user_id", name="uq_enrollments_activity_user"),
        Index("idx_enrollments_user", "user_id"),
    )

    def __repr__(self):
        return f"<Enrollment(activity={self.activity_id}, user={self.user_id}, status={self.attendance_status})>"
