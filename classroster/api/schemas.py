"""Pydantic models for API request/response validation"""
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from classroster.models.enums import ActivityStatus, AttendanceStatus, MembershipStatus
from classroster.services.activity_scheduler import MAX_DURATION_MINUTES, MAX_PARTICIPANTS


class ActivityResponse(BaseModel):
    """One scheduled activity"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: Optional[str] = None
    location: Optional[str] = None
    trainer_id: str
    start_at: datetime
    duration_minutes: int
    max_participants: int
    current_participants: int
    status: ActivityStatus
    recurrence: Optional[List[int]] = None
    predecessor_id: Optional[UUID] = None
    created_by: str
    created_at: datetime
    last_modified_at: datetime


class EnrollmentResponse(BaseModel):
    """Enrollment with attendance state"""
    model_config = ConfigDict(from_attributes=True)

    activity_id: UUID
    user_id: str
    attendance_status: AttendanceStatus
    enrolled_at: datetime
    attendance_marked_at: Optional[datetime] = None
    attendance_marked_by: Optional[str] = None


class ActivityDetailResponse(ActivityResponse):
    enrollments: List[EnrollmentResponse]


class CompletionResponse(BaseModel):
    activity: ActivityResponse
    successor: Optional[ActivityResponse] = None
    marked_absent: int


class MemberEnrollmentResponse(BaseModel):
    """Row of a member's attendance history"""
    activity_id: UUID
    activity_name: str
    activity_start_at: datetime
    activity_status: ActivityStatus
    attendance_status: AttendanceStatus
    enrolled_at: datetime


class ActivityCreateRequest(BaseModel):
    """Request body for POST /activities"""
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=120)
    trainer_id: Optional[str] = Field(None, max_length=64)
    start_at: datetime
    duration_minutes: int = Field(..., gt=0, le=MAX_DURATION_MINUTES)
    max_participants: int = Field(..., gt=0, le=MAX_PARTICIPANTS)
    recurrence: Optional[List[int]] = Field(
        None, description="Weekdays to repeat on, 0 = Monday .. 6 = Sunday"
    )


class ActivityUpdateRequest(BaseModel):
    """Request body for PUT /activities/{id}; omitted fields stay unchanged"""
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=120)
    trainer_id: Optional[str] = Field(None, max_length=64)
    start_at: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(None, gt=0, le=MAX_DURATION_MINUTES)
    max_participants: Optional[int] = Field(None, gt=0, le=MAX_PARTICIPANTS)
    recurrence: Optional[List[int]] = Field(
        None, description="New weekday set; an empty list stops the weekly repeat"
    )


class EnrollRequest(BaseModel):
    user_id: Optional[str] = Field(None, description="Member to enroll (defaults to the caller)")


class AttendanceRequest(BaseModel):
    status: AttendanceStatus


class BulkAttendanceRequest(BaseModel):
    attendance: Dict[str, AttendanceStatus] = Field(..., description="user_id -> attendance status")


class MembershipSnapshotRequest(BaseModel):
    """Membership snapshot pushed by the payment ledger"""
    membership_status: MembershipStatus
    last_payment_at: Optional[datetime] = None
    has_pending_payment_under_review: bool = False


class EligibilityResponse(BaseModel):
    user_id: str
    allowed: bool
    reason: Optional[str] = None
    grace_days_remaining: Optional[int] = None


class PolicySettingsResponse(BaseModel):
    registration_cutoff_hours: int
    unregistration_cutoff_hours: int
    payment_grace_period_days: int


class PolicySettingsUpdate(BaseModel):
    """Request body for PUT /settings; omitted values stay unchanged"""
    registration_cutoff_hours: Optional[int] = None
    unregistration_cutoff_hours: Optional[int] = None
    payment_grace_period_days: Optional[int] = None
