"""Authenticated caller and the role checks shared by every operation"""
from dataclasses import dataclass

from classroster.models.enums import Role
from classroster.services.errors import Forbidden


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_staff(self) -> bool:
        return self.role in (Role.ADMIN, Role.TRAINER)

    def owns(self, activity) -> bool:
        """True when the actor is the trainer assigned to the activity"""
        return self.role is Role.TRAINER and activity.trainer_id == self.user_id


# Used by the completion sweep, which acts on behalf of nobody in particular
SYSTEM_ACTOR = Actor(user_id="system", role=Role.ADMIN)


def require_self_or_staff(actor: Actor, target_user_id: str) -> None:
    """Members act on themselves; ADMIN and TRAINER may act on anyone"""
    if actor.user_id != target_user_id and not actor.is_staff:
        raise Forbidden(
            "Only staff may act on behalf of another member",
            {"actor_id": actor.user_id, "target_user_id": target_user_id},
        )


def require_admin_or_owner(actor: Actor, activity) -> None:
    """ADMIN, or the TRAINER who owns the activity"""
    if not (actor.is_admin or actor.owns(activity)):
        raise Forbidden(
            "Only an admin or the activity's trainer may perform this operation",
            {"actor_id": actor.user_id, "activity_id": str(activity.id)},
        )
