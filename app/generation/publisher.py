"""
Post Publisher

Turns a generation result into a published BlogPost with a unique slug and
moves the job to ``published`` in the same transaction.
"""
import re
import unicodedata
from typing import Iterator, Optional

from sqlalchemy.exc import IntegrityError

from ..database import utcnow
from ..errors import ConflictError
from ..logging_config import generation_logger as logger
from ..models.blog_post import BlogPost
from ..models.scheduled_job import JobStatus, ScheduledJob

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """
    "Olá Mundo!" -> "ola-mundo"
    """
    normalized = unicodedata.normalize("NFKD", text or "").encode("ascii", "ignore").decode("ascii")
    slug = _NON_ALNUM.sub("-", normalized.lower()).strip("-")
    return slug or "post"


def candidate_slugs(base: str, max_attempts: int) -> Iterator[str]:
    yield base
    for n in range(2, max_attempts + 1):
        yield f"{base}-{n}"


class PostPublisher:

    def __init__(self, session_factory, controller, max_slug_attempts: int = 50, now_fn=utcnow):
        self.session_factory = session_factory
        self.controller = controller
        self.max_slug_attempts = max_slug_attempts
        self.now_fn = now_fn

    def publish(self, job_id: int, result) -> Optional[BlogPost]:
        """
        Commit the post and the job's ``published`` status together.

        Returns None, committing nothing, when the job is no longer
        processing (for instance failed or cancelled while the agent call was
        in flight).
        """
        base = slugify(result.suggested_slug or result.title)

        for slug in candidate_slugs(base, self.max_slug_attempts):
            with self.session_factory() as session:
                if session.query(BlogPost.id).filter(BlogPost.slug == slug).first():
                    continue

                job = session.get(ScheduledJob, job_id)
                if job is None or job.status != JobStatus.PROCESSING.value:
                    logger.warning(
                        "Discarding generation result; job left processing",
                        job_id=job_id,
                        status=job.status if job else None,
                    )
                    return None

                now = self.now_fn()
                post = BlogPost(
                    title=result.title,
                    slug=slug,
                    summary=result.summary or None,
                    content_markdown=result.content_markdown,
                    tags=list(result.tags or []),
                    cover_image_url=result.cover_image_url,
                    status="published",
                    published_at=job.scheduled_for if job.scheduled_for <= now else now,
                )
                session.add(post)
                try:
                    session.flush()
                except IntegrityError:
                    # Lost a race for this slug; try the next suffix.
                    session.rollback()
                    continue

                if not self.controller.mark_published(session, job_id, post.id, now):
                    session.rollback()
                    logger.warning("Discarding generation result; publish transition lost", job_id=job_id)
                    return None

                session.commit()
                session.refresh(post)
                logger.info("Post published", job_id=job_id, post_id=post.id, slug=slug)
                return post

        raise ConflictError(f"Could not find a free slug for '{base}' after {self.max_slug_attempts} attempts")
