"""
BlogPost model: a published, AI-generated (or custom) blog post.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON
from ..database import Base, utcnow


class BlogPost(Base):
    __tablename__ = "blog_posts"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(300), nullable=False)
    slug = Column(String(300), unique=True, nullable=False, index=True)
    summary = Column(Text, nullable=True)
    content_markdown = Column(Text, nullable=False)
    tags = Column(JSON, default=list)
    cover_image_url = Column(String(1000), nullable=True)
    status = Column(String(20), default="published", index=True)
    published_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)
