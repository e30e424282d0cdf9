"""
Job lifecycle: the transition table and the controller that enforces it.

    scheduled ──► pending ──► processing ──► published
        │            │          │
        └────────────┴─► cancelled   └──► failed ──► processing (manual retry)

Every status write goes through a compare-and-swap UPDATE whose WHERE clause
lists the legal source states, taken from TRANSITIONS, so two racing callers
can never both win and no write can take an edge the table does not have.
"""
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, Optional

from ..database import utcnow
from ..errors import StateError
from ..logging_config import scheduler_logger as logger
from ..models.scheduled_job import JobStatus, ScheduledJob

TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.SCHEDULED: frozenset({JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.CANCELLED}),
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.CANCELLED}),
    JobStatus.PROCESSING: frozenset({JobStatus.PUBLISHED, JobStatus.FAILED}),
    JobStatus.FAILED: frozenset({JobStatus.PROCESSING}),
    JobStatus.PUBLISHED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}

INTERRUPTED_ERROR = "interrupted by restart"


def sources_for(target: JobStatus, among: Optional[Iterable[JobStatus]] = None) -> FrozenSet[JobStatus]:
    """
    States with a legal edge into ``target``, optionally narrowed to ``among``.

    Raises StateError when the narrowing leaves nothing, i.e. the operation
    asks for an edge the table does not have.
    """
    sources = frozenset(state for state, targets in TRANSITIONS.items() if target in targets)
    if among is not None:
        sources &= frozenset(JobStatus(s) for s in among)
    if not sources:
        raise StateError(f"No transition into '{JobStatus(target).value}' from the requested states")
    return sources


# Still waiting to run: the states a job can be cancelled, edited or claimed from.
OPEN_STATES: FrozenSet[JobStatus] = sources_for(JobStatus.CANCELLED)

CLAIM_SOURCES = sources_for(JobStatus.PROCESSING, among=OPEN_STATES)
RETRY_SOURCES = sources_for(JobStatus.PROCESSING, among={JobStatus.FAILED})


class JobStateController:
    """
    The only component that changes a job's status.

    Wraps the schedule store's CAS primitives with the transition table and
    turns illegal requests into ``StateError``.
    """

    def __init__(self, store, now_fn=utcnow):
        self.store = store
        self.now_fn = now_fn

    def require(self, job_id: int, allowed: Iterable[JobStatus], action: str) -> ScheduledJob:
        """Fetch a job, raising StateError unless it is in one of ``allowed``."""
        job = self.store.get(job_id)
        if JobStatus(job.status) not in frozenset(allowed):
            raise StateError(f"Job {job_id} is '{job.status}'; {action}")
        return job

    def claim(self, job_id: int, now: Optional[datetime] = None) -> bool:
        """
        Admit an open job into generation.

        Returns False when another worker or process won the race or the job
        is no longer open; exactly one concurrent caller gets True.
        """
        now = now or self.now_fn()
        won = self.store.transition(job_id, JobStatus.PROCESSING, CLAIM_SOURCES, now, started_at=now)
        if won:
            logger.info("Job claimed", job_id=job_id)
        else:
            logger.debug("Claim lost", job_id=job_id)
        return won

    def retry(self, job_id: int, now: Optional[datetime] = None) -> bool:
        """Manual ``failed → processing``; resets the attempt counter."""
        now = now or self.now_fn()
        won = self.store.transition(
            job_id,
            JobStatus.PROCESSING,
            RETRY_SOURCES,
            now,
            retry_count=0,
            last_error=None,
            started_at=now,
            completed_at=None,
        )
        if won:
            logger.info("Job retry started", job_id=job_id)
        return won

    def cancel(self, job_id: int, now: Optional[datetime] = None):
        now = now or self.now_fn()
        if not self.store.transition(
            job_id, JobStatus.CANCELLED, sources_for(JobStatus.CANCELLED), now, completed_at=now
        ):
            job = self.store.get(job_id)
            raise StateError(
                f"Job {job_id} is '{job.status}'; only scheduled or pending jobs can be cancelled"
            )
        logger.info("Job cancelled", job_id=job_id)

    def promote_due(self, now: Optional[datetime] = None) -> int:
        """``scheduled → pending`` for every job whose time has come."""
        now = now or self.now_fn()
        return self.store.transition_many(
            JobStatus.PENDING, sources_for(JobStatus.PENDING), now, due_by=now
        )

    def fail_interrupted(self, now: Optional[datetime] = None) -> int:
        """Fail jobs a previous process was running when it went away."""
        now = now or self.now_fn()
        changed = self.store.transition_many(
            JobStatus.FAILED,
            sources_for(JobStatus.FAILED),
            now,
            last_error=INTERRUPTED_ERROR,
            completed_at=now,
        )
        if changed:
            logger.warning("Failed jobs interrupted by restart", count=changed)
        return changed

    def mark_failed(self, job_id: int, error: str, now: Optional[datetime] = None) -> bool:
        now = now or self.now_fn()
        changed = self.store.transition(
            job_id,
            JobStatus.FAILED,
            sources_for(JobStatus.FAILED),
            now,
            last_error=error,
            completed_at=now,
        )
        if changed:
            logger.warning("Job failed", job_id=job_id, last_error=error)
        else:
            logger.info("Failure discarded; job already left processing", job_id=job_id)
        return changed

    def mark_published(self, session, job_id: int, post_id: int, now: Optional[datetime] = None) -> bool:
        """
        Move ``processing → published`` inside the caller's transaction.

        The caller commits only when this returns True, which keeps the post
        insert and the status change atomic.
        """
        now = now or self.now_fn()
        return self.store.transition_in(
            session,
            job_id,
            JobStatus.PUBLISHED,
            sources_for(JobStatus.PUBLISHED),
            now,
            published_post_id=post_id,
            completed_at=now,
        )
