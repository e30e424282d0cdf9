"""
SystemSetting model: process-wide key/value configuration persisted across restarts.
"""
from sqlalchemy import Column, String, DateTime, Text
from ..database import Base, utcnow


class SystemSetting(Base):
    __tablename__ = "system_settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
