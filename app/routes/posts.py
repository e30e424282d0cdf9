"""
Posts routes: read access to published blog posts.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from ..database import get_db
from ..models.blog_post import BlogPost
from ..models.user import User
from ..auth import get_admin_user
from ..responses import not_found, paginated
from ..schemas.blog_post import BlogPostResponse

router = APIRouter(prefix="/api/posts", tags=["posts"])


def post_to_dict(post: BlogPost) -> dict:
    return BlogPostResponse.model_validate(post).model_dump(mode="json")


@router.get("")
def get_posts(
    tag: Optional[str] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_admin_user),
):
    """Published posts, newest first."""
    posts = db.query(BlogPost).order_by(BlogPost.published_at.desc(), BlogPost.id.desc()).all()
    if tag:
        # tags is a JSON list column
        posts = [p for p in posts if tag in (p.tags or [])]
    total = len(posts)
    start = (page - 1) * per_page
    return paginated([post_to_dict(p) for p in posts[start:start + per_page]], total, page, per_page)


@router.get("/{slug}", response_model=BlogPostResponse)
def get_post(
    slug: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_admin_user),
):
    post = db.query(BlogPost).filter(BlogPost.slug == slug).first()
    if not post:
        not_found("Post", slug)
    return post
