"""
Activity API Endpoints

Scheduling:
    POST   /api/v1/activities                  - Create (one per weekday when recurring)
    GET    /api/v1/activities                  - List with filters
    GET    /api/v1/activities/{id}             - Detail with enrollments
    PUT    /api/v1/activities/{id}             - Edit while ACTIVE
    DELETE /api/v1/activities/{id}             - Delete with enrollments
    POST   /api/v1/activities/{id}/complete    - Complete (spawns weekly successor)
    POST   /api/v1/activities/{id}/cancel      - Cancel
    GET    /api/v1/activities/{id}/capacity    - Counter audit

Enrollment and attendance:
    POST   /api/v1/activities/{id}/enrollments            - Enroll
    GET    /api/v1/activities/{id}/enrollments/{user_id}  - Is enrolled
    DELETE /api/v1/activities/{id}/enrollments/{user_id}  - Unenroll
    PUT    /api/v1/activities/{id}/attendance/{user_id}   - Mark one
    POST   /api/v1/activities/{id}/attendance             - Mark several
    GET    /api/v1/activities/{id}/attendance/pending     - Take-attendance queue
"""
from datetime import date, datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status

from classroster.api.auth import get_current_actor
from classroster.api.responses import as_utc, envelope, unwrap
from classroster.api.schemas import (
    ActivityCreateRequest,
    ActivityDetailResponse,
    ActivityResponse,
    ActivityUpdateRequest,
    AttendanceRequest,
    BulkAttendanceRequest,
    CompletionResponse,
    EnrollmentResponse,
    EnrollRequest,
)
from classroster.models.enums import ActivityStatus
from classroster.services.activity_queries import ActivityQueries, get_activity_queries
from classroster.services.activity_scheduler import (
    ActivityChanges,
    ActivityDraft,
    ActivityScheduler,
    get_activity_scheduler,
)
from classroster.services.actors import Actor
from classroster.services.enrollment_coordinator import (
    EnrollmentCoordinator,
    get_enrollment_coordinator,
)
from classroster.services.repositories import ActivityFilter

router = APIRouter(prefix="/api/v1/activities", tags=["activities"])


def _activity(activity) -> dict:
    return ActivityResponse.model_validate(activity).model_dump(mode="json")


def _enrollment(enrollment) -> dict:
    return EnrollmentResponse.model_validate(enrollment).model_dump(mode="json")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_activity(
    request: ActivityCreateRequest,
    allow_past: bool = Query(False, description="Admin only: accept a start in the past"),
    actor: Actor = Depends(get_current_actor),
    scheduler: ActivityScheduler = Depends(get_activity_scheduler),
):
    """
    Create an activity, or one activity per selected weekday when
    `recurrence` is given.

    Returns:
        The created activities ordered by start time
    """
    draft = ActivityDraft(**request.model_dump())
    created = unwrap(await scheduler.create_activity(actor, draft, allow_past=allow_past))
    return envelope([_activity(a) for a in created], {"count": len(created)})


@router.get("")
async def list_activities(
    status_filter: Optional[ActivityStatus] = Query(None, alias="status"),
    trainer_id: Optional[str] = Query(None),
    start_from: Optional[datetime] = Query(None),
    start_to: Optional[datetime] = Query(None),
    week_of: Optional[date] = Query(None, description="Any day of the Sunday-Saturday week to list"),
    participant_id: Optional[str] = Query(None, description="Only activities this user is enrolled in"),
    actor: Actor = Depends(get_current_actor),
    queries: ActivityQueries = Depends(get_activity_queries),
):
    activity_filter = ActivityFilter(
        status=status_filter,
        trainer_id=trainer_id,
        start_from=as_utc(start_from),
        start_to=as_utc(start_to),
        week_of=week_of,
        participant_id=participant_id,
    )
    activities = unwrap(await queries.list_activities(activity_filter))
    return envelope([_activity(a) for a in activities], {"count": len(activities)})


@router.get("/{activity_id}")
async def get_activity(
    activity_id: UUID = Path(..., description="Activity id"),
    actor: Actor = Depends(get_current_actor),
    queries: ActivityQueries = Depends(get_activity_queries),
):
    detail = unwrap(await queries.get_activity_detail(activity_id))
    response = ActivityDetailResponse(
        **ActivityResponse.model_validate(detail.activity).model_dump(),
        enrollments=[EnrollmentResponse.model_validate(e) for e in detail.enrollments],
    )
    return envelope(response.model_dump(mode="json"))


@router.put("/{activity_id}")
async def update_activity(
    request: ActivityUpdateRequest,
    activity_id: UUID = Path(..., description="Activity id"),
    actor: Actor = Depends(get_current_actor),
    scheduler: ActivityScheduler = Depends(get_activity_scheduler),
):
    changes = ActivityChanges(**request.model_dump())
    activity = unwrap(await scheduler.update_activity(activity_id, actor, changes))
    return envelope(_activity(activity))


@router.delete("/{activity_id}")
async def delete_activity(
    activity_id: UUID = Path(..., description="Activity id"),
    actor: Actor = Depends(get_current_actor),
    scheduler: ActivityScheduler = Depends(get_activity_scheduler),
):
    deleted_id = unwrap(await scheduler.delete_activity(activity_id, actor))
    return envelope({"id": str(deleted_id), "deleted": True})


@router.post("/{activity_id}/complete")
async def complete_activity(
    activity_id: UUID = Path(..., description="Activity id"),
    actor: Actor = Depends(get_current_actor),
    scheduler: ActivityScheduler = Depends(get_activity_scheduler),
):
    outcome = unwrap(await scheduler.complete_activity(activity_id, actor))
    response = CompletionResponse(
        activity=ActivityResponse.model_validate(outcome.activity),
        successor=ActivityResponse.model_validate(outcome.successor) if outcome.successor else None,
        marked_absent=outcome.marked_absent,
    )
    return envelope(response.model_dump(mode="json"))


@router.post("/{activity_id}/cancel")
async def cancel_activity(
    activity_id: UUID = Path(..., description="Activity id"),
    actor: Actor = Depends(get_current_actor),
    scheduler: ActivityScheduler = Depends(get_activity_scheduler),
):
    activity = unwrap(await scheduler.cancel_activity(activity_id, actor))
    return envelope(_activity(activity))


@router.get("/{activity_id}/capacity")
async def audit_capacity(
    activity_id: UUID = Path(..., description="Activity id"),
    actor: Actor = Depends(get_current_actor),
    queries: ActivityQueries = Depends(get_activity_queries),
):
    """Compare the participant counter with the live enrollment count"""
    return envelope(unwrap(await queries.audit_capacity(actor, activity_id)))


@router.post("/{activity_id}/enrollments", status_code=status.HTTP_201_CREATED)
async def enroll(
    request: Optional[EnrollRequest] = None,
    activity_id: UUID = Path(..., description="Activity id"),
    actor: Actor = Depends(get_current_actor),
    coordinator: EnrollmentCoordinator = Depends(get_enrollment_coordinator),
):
    """
    Enroll a member. Without a body (or user_id) the caller enrolls themself.
    """
    target_user_id = (request.user_id if request else None) or actor.user_id
    enrollment = unwrap(await coordinator.enroll(activity_id, actor, target_user_id))
    return envelope(_enrollment(enrollment))


@router.get("/{activity_id}/enrollments/{user_id}")
async def is_enrolled(
    activity_id: UUID = Path(..., description="Activity id"),
    user_id: str = Path(..., description="Member id"),
    actor: Actor = Depends(get_current_actor),
    queries: ActivityQueries = Depends(get_activity_queries),
):
    enrolled = unwrap(await queries.is_enrolled(activity_id, user_id))
    return envelope({"activity_id": str(activity_id), "user_id": user_id, "enrolled": enrolled})


@router.delete("/{activity_id}/enrollments/{user_id}")
async def unenroll(
    activity_id: UUID = Path(..., description="Activity id"),
    user_id: str = Path(..., description="Member id"),
    actor: Actor = Depends(get_current_actor),
    coordinator: EnrollmentCoordinator = Depends(get_enrollment_coordinator),
):
    unwrap(await coordinator.unenroll(activity_id, actor, user_id))
    return envelope({"activity_id": str(activity_id), "user_id": user_id, "enrolled": False})


@router.put("/{activity_id}/attendance/{user_id}")
async def mark_attendance(
    request: AttendanceRequest,
    activity_id: UUID = Path(..., description="Activity id"),
    user_id: str = Path(..., description="Member id"),
    actor: Actor = Depends(get_current_actor),
    coordinator: EnrollmentCoordinator = Depends(get_enrollment_coordinator),
):
    enrollment = unwrap(await coordinator.mark_attendance(activity_id, actor, user_id, request.status))
    return envelope(_enrollment(enrollment))


@router.post("/{activity_id}/attendance")
async def mark_attendance_bulk(
    request: BulkAttendanceRequest,
    activity_id: UUID = Path(..., description="Activity id"),
    actor: Actor = Depends(get_current_actor),
    coordinator: EnrollmentCoordinator = Depends(get_enrollment_coordinator),
):
    """Commit a whole take-attendance sheet; nothing is saved if any entry fails"""
    enrollments = unwrap(await coordinator.mark_attendance_bulk(activity_id, actor, request.attendance))
    return envelope([_enrollment(e) for e in enrollments], {"count": len(enrollments)})


@router.get("/{activity_id}/attendance/pending")
async def pending_attendance(
    activity_id: UUID = Path(..., description="Activity id"),
    actor: Actor = Depends(get_current_actor),
    queries: ActivityQueries = Depends(get_activity_queries),
):
    queue = unwrap(await queries.get_pending_attendance_queue(activity_id))
    return envelope([_enrollment(e) for e in queue], {"count": len(queue)})
