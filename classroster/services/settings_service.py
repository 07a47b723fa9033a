"""
Policy Settings Service

Runtime-editable enrollment policy: registration/unregistration cutoffs and the
payment grace period. Values live in the engine_settings table; a missing key
falls back to the environment default.
"""
import logging
from dataclasses import dataclass, asdict, replace
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from classroster.config import get_settings
from classroster.models.engine_setting import EngineSetting
from classroster.services.actors import Actor
from classroster.services.clock import get_clock
from classroster.services.errors import Forbidden, InvalidInput
from classroster.services.results import Result
from classroster.services.unit_of_work import TransactionRunner, get_transaction_runner

logger = logging.getLogger(__name__)

SETTING_DESCRIPTIONS = {
    "registration_cutoff_hours": "Hours before start when enrollment opens (0 = unrestricted)",
    "unregistration_cutoff_hours": "Minimum hours before start to unenroll (0 = unrestricted)",
    "payment_grace_period_days": "Days a member with a payment under review may still enroll",
}


@dataclass(frozen=True)
class PolicySettings:
    registration_cutoff_hours: int
    unregistration_cutoff_hours: int
    payment_grace_period_days: int

    @classmethod
    def from_environment(cls) -> "PolicySettings":
        settings = get_settings()
        return cls(
            registration_cutoff_hours=settings.registration_cutoff_hours,
            unregistration_cutoff_hours=settings.unregistration_cutoff_hours,
            payment_grace_period_days=settings.payment_grace_period_days,
        )


async def load_policy(session: AsyncSession, defaults: PolicySettings) -> PolicySettings:
    """Read policy settings inside an existing session, overlaying stored values"""
    result = await session.execute(
        select(EngineSetting).where(EngineSetting.key.in_(SETTING_DESCRIPTIONS.keys()))
    )
    stored = {row.key: int(row.value) for row in result.scalars().all()}
    return replace(defaults, **stored)


def validate_policy_changes(changes: Dict[str, Optional[int]]) -> Dict[str, int]:
    """
    Drop unset keys and reject unknown or negative values.

    Raises:
        InvalidInput: On an unknown key or a negative value
    """
    clean = {}
    for key, value in changes.items():
        if value is None:
            continue
        if key not in SETTING_DESCRIPTIONS:
            raise InvalidInput(f"Unknown setting: {key}")
        if int(value) < 0:
            raise InvalidInput(f"{key} must be zero or a positive number", {"key": key, "value": value})
        clean[key] = int(value)
    return clean


class SettingsService:
    def __init__(self, runner: TransactionRunner, clock, defaults: Optional[PolicySettings] = None):
        self.runner = runner
        self.clock = clock
        self.defaults = defaults or PolicySettings.from_environment()

    async def get_policy(self) -> Result[PolicySettings]:
        async def work(session: AsyncSession) -> PolicySettings:
            return await load_policy(session, self.defaults)

        return await self.runner.run("get_policy", work)

    async def update_policy(self, actor: Actor, changes: Dict[str, Optional[int]]) -> Result[PolicySettings]:
        """
        Persist new policy values (ADMIN only).

        Args:
            actor: Caller
            changes: Subset of PolicySettings fields; None leaves a value untouched
        """

        async def work(session: AsyncSession) -> PolicySettings:
            if not actor.is_admin:
                raise Forbidden("Only an admin may change policy settings")

            clean = validate_policy_changes(changes)
            now = self.clock.now()

            for key, value in clean.items():
                row = await session.get(EngineSetting, key)
                if row is None:
                    row = EngineSetting(key=key, description=SETTING_DESCRIPTIONS[key])
                    session.add(row)
                row.value = str(value)
                row.updated_at = now

            await session.flush()
            policy = await load_policy(session, self.defaults)
            logger.info(f"Policy settings updated by {actor.user_id}: {clean}")
            return policy

        return await self.runner.run("update_policy", work)

    @staticmethod
    def as_dict(policy: PolicySettings) -> Dict[str, int]:
        return asdict(policy)


# Global settings service instance
_service: Optional[SettingsService] = None


def get_settings_service() -> SettingsService:
    """Get or create global SettingsService instance."""
    global _service
    if _service is None:
        _service = SettingsService(get_transaction_runner(), get_clock())
    return _service
