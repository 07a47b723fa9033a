"""Closed enumerations shared by models, services and API schemas"""
from enum import Enum


class Role(str, Enum):
    """Actor role supplied by the identity provider"""

    ADMIN = "ADMIN"
    TRAINER = "TRAINER"
    CLIENT = "CLIENT"

    @classmethod
    def parse(cls, value: str) -> "Role":
        """
        Parse a role literal case-insensitively.

        Raises:
            ValueError: If the literal is not a known role
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown role: {value!r}. Must be one of: {[r.value for r in cls]}")


class MembershipStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class ActivityStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class AttendanceStatus(str, Enum):
    PENDING = "PENDING"
    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    LATE = "LATE"
