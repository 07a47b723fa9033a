"""Activity model - One scheduled occurrence of a group class"""
from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    JSON,
    Uuid,
    Enum,
    ForeignKey,
    CheckConstraint,
    Index,
)
import uuid

from classroster.database import Base, UTCDateTime
from classroster.models.enums import ActivityStatus


class Activity(Base):
    """Scheduled class occurrence with denormalized participant count"""

    __tablename__ = "activities"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(120), nullable=True)
    trainer_id = Column(String(64), nullable=False)
    start_at = Column(UTCDateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    max_participants = Column(Integer, nullable=False)
    current_participants = Column(Integer, nullable=False, default=0)
    status = Column(
        Enum(ActivityStatus, native_enum=False, length=20, name="activity_status"),
        nullable=False,
        default=ActivityStatus.ACTIVE,
    )
    # Weekday numbers (0=Monday .. 6=Sunday); NULL for one-off activities
    recurrence = Column(JSON, nullable=True)
    predecessor_id = Column(
        Uuid,
        ForeignKey("activities.id", ondelete="SET NULL"),
        unique=True,
        nullable=True,
    )
    created_by = Column(String(64), nullable=False)
    created_at = Column(UTCDateTime, nullable=False)
    last_modified_at = Column(UTCDateTime, nullable=False)

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_activities_duration_positive"),
        CheckConstraint("max_participants > 0", name="ck_activities_capacity_positive"),
        CheckConstraint(
            "current_participants >= 0 AND current_participants <= max_participants",
            name="ck_activities_participants_bounds",
        ),
        Index("idx_activities_start_at", "start_at"),
        Index("idx_activities_status_start", "status", "start_at"),
        Index("idx_activities_trainer", "trainer_id"),
    )

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence)

    def __repr__(self):
        return f"<Activity(id={self.id}, name={self.name}, start_at={self.start_at}, status={self.status})>"
