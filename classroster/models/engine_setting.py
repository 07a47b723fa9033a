"""EngineSetting model - Key/value policy settings editable at runtime"""
from sqlalchemy import Column, String

from classroster.database import Base, UTCDateTime


class EngineSetting(Base):
    __tablename__ = "engine_settings"

    key = Column(String(100), primary_key=True)
    value = Column(String(255), nullable=False)
    description = Column(String(255), nullable=True)
    updated_at = Column(UTCDateTime, nullable=False)

    def __repr__(self):
        return f"<EngineSetting(key={self.key}, value={self.value})>"
