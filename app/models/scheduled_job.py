"""
ScheduledJob model: a persisted intent to generate and publish a blog post.
"""
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from ..database import Base, utcnow


class JobStatus(str, Enum):
    SCHEDULED = "scheduled"
    PENDING = "pending"        # due, not yet claimed
    PROCESSING = "processing"  # claimed, generation in flight
    PUBLISHED = "published"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JobSource(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class ScheduledJob(Base):
    __tablename__ = "scheduled_jobs"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=True)  # custom content skips generation
    theme_id = Column(Integer, ForeignKey("themes.id", ondelete="SET NULL"), nullable=True, index=True)
    scheduled_for = Column(DateTime, nullable=False, index=True)
    status = Column(String(20), nullable=False, default=JobStatus.SCHEDULED.value, index=True)
    source = Column(String(20), nullable=False, default=JobSource.MANUAL.value)
    slot_key = Column(String(64), unique=True, nullable=True)  # automatic jobs only
    published_post_id = Column(Integer, ForeignKey("blog_posts.id"), nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    theme = relationship("Theme", lazy="joined")
