from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional


class BlogPostResponse(BaseModel):
    id: int
    title: str
    slug: str
    summary: Optional[str] = None
    content_markdown: str
    tags: List[str] = []
    cover_image_url: Optional[str] = None
    status: str
    published_at: datetime

    class Config:
        from_attributes = True
