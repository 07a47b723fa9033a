"""
Policy Settings API Endpoints

GET /api/v1/settings - Current enrollment policy
PUT /api/v1/settings - Change cutoffs / grace period (admin)
"""
from fastapi import APIRouter, Depends

from classroster.api.auth import get_current_actor
from classroster.api.responses import envelope, unwrap
from classroster.api.schemas import PolicySettingsResponse, PolicySettingsUpdate
from classroster.services.actors import Actor
from classroster.services.settings_service import SettingsService, get_settings_service

router = APIRouter(prefix="/api/v1/settings", tags=["settings"])


@router.get("")
async def get_policy_settings(
    actor: Actor = Depends(get_current_actor),
    service: SettingsService = Depends(get_settings_service),
):
    policy = unwrap(await service.get_policy())
    return envelope(PolicySettingsResponse(**SettingsService.as_dict(policy)).model_dump())


@router.put("")
async def update_policy_settings(
    request: PolicySettingsUpdate,
    actor: Actor = Depends(get_current_actor),
    service: SettingsService = Depends(get_settings_service),
):
    """
    Update policy values. A cutoff of 0 removes that time restriction.
    """
    policy = unwrap(await service.update_policy(actor, request.model_dump(exclude_none=True)))
    return envelope(PolicySettingsResponse(**SettingsService.as_dict(policy)).model_dump())
