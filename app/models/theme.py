"""
Theme model: prompt seed, tone and audience guiding AI generation.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, JSON
from ..database import Base, utcnow


class Theme(Base):
    __tablename__ = "themes"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    prompt = Column(Text, nullable=False)
    keywords = Column(JSON, default=list)  # ordered
    tone = Column(String(100), nullable=True)
    target_audience = Column(String(255), nullable=True)
    guidelines = Column(Text, nullable=True)
    active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
