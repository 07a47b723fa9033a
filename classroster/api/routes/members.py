"""
Member API Endpoints

GET /api/v1/members/{user_id}/eligibility - Preview enrollment eligibility
PUT /api/v1/members/{user_id}/eligibility - Sync membership snapshot (admin)
GET /api/v1/members/{user_id}/enrollments - Attendance history, newest first
"""
from fastapi import APIRouter, Depends, Path

from classroster.api.auth import get_current_actor
from classroster.api.responses import envelope, unwrap
from classroster.api.schemas import EligibilityResponse, MemberEnrollmentResponse, MembershipSnapshotRequest
from classroster.services.activity_queries import ActivityQueries, get_activity_queries
from classroster.services.actors import Actor
from classroster.services.eligibility import MembershipEligibility
from classroster.services.enrollment_coordinator import (
    EnrollmentCoordinator,
    get_enrollment_coordinator,
)

router = APIRouter(prefix="/api/v1/members", tags=["members"])


@router.get("/{user_id}/eligibility")
async def get_eligibility(
    user_id: str = Path(..., description="Member id"),
    actor: Actor = Depends(get_current_actor),
    coordinator: EnrollmentCoordinator = Depends(get_enrollment_coordinator),
):
    """
    Whether the member could enroll right now.

    Returns:
        allowed flag, user-facing reason and remaining grace days (if any)
    """
    decision = unwrap(await coordinator.evaluate_eligibility(actor, user_id))
    response = EligibilityResponse(
        user_id=user_id,
        allowed=decision.allowed,
        reason=decision.reason,
        grace_days_remaining=decision.grace_days_remaining,
    )
    return envelope(response.model_dump(mode="json"))


@router.put("/{user_id}/eligibility")
async def sync_membership(
    request: MembershipSnapshotRequest,
    user_id: str = Path(..., description="Member id"),
    actor: Actor = Depends(get_current_actor),
    coordinator: EnrollmentCoordinator = Depends(get_enrollment_coordinator),
):
    snapshot = MembershipEligibility(
        membership_status=request.membership_status,
        last_payment_at=request.last_payment_at,
        has_pending_payment_under_review=request.has_pending_payment_under_review,
    )
    stored = unwrap(await coordinator.set_membership(actor, user_id, snapshot))
    return envelope(
        {
            "user_id": user_id,
            "membership_status": stored.membership_status.value,
            "last_payment_at": stored.last_payment_at.isoformat() if stored.last_payment_at else None,
            "has_pending_payment_under_review": stored.has_pending_payment_under_review,
        }
    )


@router.get("/{user_id}/enrollments")
async def list_member_enrollments(
    user_id: str = Path(..., description="Member id"),
    actor: Actor = Depends(get_current_actor),
    queries: ActivityQueries = Depends(get_activity_queries),
):
    rows = unwrap(await queries.list_member_enrollments(actor, user_id))
    history = [
        MemberEnrollmentResponse(
            activity_id=row.activity.id,
            activity_name=row.activity.name,
            activity_start_at=row.activity.start_at,
            activity_status=row.activity.status,
            attendance_status=row.enrollment.attendance_status,
            enrolled_at=row.enrollment.enrolled_at,
        ).model_dump(mode="json")
        for row in rows
    ]
    return envelope(history, {"count": len(history)})
