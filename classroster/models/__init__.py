"""SQLAlchemy ORM Models for ClassRoster Database Schema"""
from classroster.models.activity import Activity
from classroster.models.enrollment import Enrollment
from classroster.models.member_eligibility import MemberEligibility
from classroster.models.engine_setting import EngineSetting

__all__ = [
    "Activity",
    "Enrollment",
    "MemberEligibility",
    "EngineSetting",
]
