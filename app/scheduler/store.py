"""
Schedule Store

Durable record of scheduled generation jobs. Status changes are single
compare-and-swap UPDATE statements issued on behalf of the
JobStateController; nothing else writes the status column.
"""
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..database import utcnow
from ..errors import NotFoundError, StateError, ValidationError
from ..logging_config import scheduler_logger as logger
from ..models.scheduled_job import JobSource, JobStatus, ScheduledJob
from .state_machine import OPEN_STATES

EDITABLE_FIELDS = ("title", "content", "theme_id", "scheduled_for")


def _values(statuses: Iterable[JobStatus]) -> List[str]:
    return [JobStatus(s).value for s in statuses]


class ScheduleStore:
    """SQLAlchemy-backed job store; each method runs in its own session."""

    def __init__(self, session_factory, now_fn=utcnow):
        self.session_factory = session_factory
        self.now_fn = now_fn

    # ------------------------------------------------------------------
    # Creation and reads
    # ------------------------------------------------------------------

    def create(
        self,
        title: str,
        scheduled_for: datetime,
        content: Optional[str] = None,
        theme_id: Optional[int] = None,
    ) -> ScheduledJob:
        if not title or not title.strip():
            raise ValidationError("title is required")
        if scheduled_for is None:
            raise ValidationError("scheduled_for is required")

        with self.session_factory() as session:
            job = ScheduledJob(
                title=title.strip(),
                content=content,
                theme_id=theme_id,
                scheduled_for=scheduled_for,
                status=JobStatus.SCHEDULED.value,
                source=JobSource.MANUAL.value,
            )
            session.add(job)
            session.commit()
            session.refresh(job)
            logger.info("Job created", job_id=job.id, scheduled_for=job.scheduled_for)
            return job

    def create_for_slot(self, slot_key: str, title: str, scheduled_for: datetime) -> Optional[ScheduledJob]:
        """
        Materialize an automatic job for one cadence slot.

        Returns None when the slot already has a job; the unique slot_key
        makes this safe under duplicate ticks and concurrent processes.
        """
        with self.session_factory() as session:
            job = ScheduledJob(
                title=title,
                scheduled_for=scheduled_for,
                status=JobStatus.SCHEDULED.value,
                source=JobSource.AUTOMATIC.value,
                slot_key=slot_key,
            )
            session.add(job)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return None
            session.refresh(job)
            logger.info("Automatic job materialized", job_id=job.id, slot_key=slot_key)
            return job

    def get(self, job_id: int) -> ScheduledJob:
        with self.session_factory() as session:
            job = session.get(ScheduledJob, job_id)
            if job is None:
                raise NotFoundError(f"Scheduled job {job_id} not found")
            return job

    def list(
        self,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[ScheduledJob], int]:
        """Page of jobs ordered by scheduled_for, plus the filtered total."""
        if page < 1 or per_page < 1:
            raise ValidationError("page and per_page must be positive")
        if status:
            try:
                status = JobStatus(status).value
            except ValueError:
                raise ValidationError(f"Unknown status '{status}'")

        with self.session_factory() as session:
            query = session.query(ScheduledJob)
            if status:
                query = query.filter(ScheduledJob.status == status)
            if start:
                query = query.filter(ScheduledJob.scheduled_for >= start)
            if end:
                query = query.filter(ScheduledJob.scheduled_for <= end)

            total = query.count()
            jobs = (
                query.order_by(ScheduledJob.scheduled_for, ScheduledJob.id)
                .offset((page - 1) * per_page)
                .limit(per_page)
                .all()
            )
            return jobs, total

    def due_jobs(self, now: datetime) -> List[ScheduledJob]:
        """Open jobs whose time has come, earliest first."""
        with self.session_factory() as session:
            return (
                session.query(ScheduledJob)
                .filter(
                    ScheduledJob.status.in_(_values(OPEN_STATES)),
                    ScheduledJob.scheduled_for <= now,
                )
                .order_by(ScheduledJob.scheduled_for, ScheduledJob.id)
                .all()
            )

    def upcoming(self, now: datetime, limit: int = 10) -> List[ScheduledJob]:
        with self.session_factory() as session:
            return (
                session.query(ScheduledJob)
                .filter(
                    ScheduledJob.status == JobStatus.SCHEDULED.value,
                    ScheduledJob.scheduled_for >= now,
                )
                .order_by(ScheduledJob.scheduled_for, ScheduledJob.id)
                .limit(limit)
                .all()
            )

    def stats(self, now: datetime) -> Dict:
        """Counts by status plus jobs due within the next 24 hours."""
        with self.session_factory() as session:
            rows = (
                session.query(ScheduledJob.status, func.count(ScheduledJob.id))
                .group_by(ScheduledJob.status)
                .all()
            )
            by_status = {status.value: 0 for status in JobStatus}
            for status, count in rows:
                by_status[status] = count

            next_24h = (
                session.query(func.count(ScheduledJob.id))
                .filter(
                    ScheduledJob.status == JobStatus.SCHEDULED.value,
                    ScheduledJob.scheduled_for >= now,
                    ScheduledJob.scheduled_for <= now + timedelta(days=1),
                )
                .scalar()
            )

            return {
                "by_status": by_status,
                "total": sum(by_status.values()),
                "upcoming_24h": next_24h or 0,
            }

    # ------------------------------------------------------------------
    # Compare-and-swap writes
    # ------------------------------------------------------------------

    def transition_in(
        self,
        session,
        job_id: int,
        target: JobStatus,
        sources: Iterable[JobStatus],
        now: datetime,
        **values,
    ) -> bool:
        """CAS ``sources → target`` inside an open session; does not commit."""
        changed = (
            session.query(ScheduledJob)
            .filter(
                ScheduledJob.id == job_id,
                ScheduledJob.status.in_(_values(sources)),
            )
            .update(
                {"status": JobStatus(target).value, "updated_at": now, **values},
                synchronize_session=False,
            )
        )
        return changed == 1

    def transition(
        self,
        job_id: int,
        target: JobStatus,
        sources: Iterable[JobStatus],
        now: Optional[datetime] = None,
        **values,
    ) -> bool:
        with self.session_factory() as session:
            changed = self.transition_in(session, job_id, target, sources, now or self.now_fn(), **values)
            session.commit()
            return changed

    def transition_many(
        self,
        target: JobStatus,
        sources: Iterable[JobStatus],
        now: datetime,
        due_by: Optional[datetime] = None,
        **values,
    ) -> int:
        """Bulk CAS ``sources → target``, optionally only for jobs due by ``due_by``."""
        with self.session_factory() as session:
            query = session.query(ScheduledJob).filter(ScheduledJob.status.in_(_values(sources)))
            if due_by is not None:
                query = query.filter(ScheduledJob.scheduled_for <= due_by)
            changed = query.update(
                {"status": JobStatus(target).value, "updated_at": now, **values},
                synchronize_session=False,
            )
            session.commit()
            return changed

    def update(self, job_id: int, delta: Dict) -> ScheduledJob:
        """Edit admin fields; only allowed while the job is still open."""
        unknown = set(delta) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields not editable: {', '.join(sorted(unknown))}")
        if "title" in delta and (not delta["title"] or not delta["title"].strip()):
            raise ValidationError("title is required")
        if "scheduled_for" in delta and delta["scheduled_for"] is None:
            raise ValidationError("scheduled_for is required")
        if not delta:
            return self.get(job_id)

        values = dict(delta)
        if "title" in values:
            values["title"] = values["title"].strip()
        values["updated_at"] = self.now_fn()

        with self.session_factory() as session:
            changed = (
                session.query(ScheduledJob)
                .filter(
                    ScheduledJob.id == job_id,
                    ScheduledJob.status.in_(_values(OPEN_STATES)),
                )
                .update(values, synchronize_session=False)
            )
            session.commit()

        if changed != 1:
            job = self.get(job_id)
            raise StateError(f"Job {job_id} is '{job.status}' and can no longer be edited")
        return self.get(job_id)

    def record_attempt_error(self, job_id: int, error: str) -> bool:
        """Count one failed generation attempt; only while processing."""
        with self.session_factory() as session:
            changed = (
                session.query(ScheduledJob)
                .filter(
                    ScheduledJob.id == job_id,
                    ScheduledJob.status == JobStatus.PROCESSING.value,
                )
                .update(
                    {
                        "retry_count": ScheduledJob.retry_count + 1,
                        "last_error": error,
                        "updated_at": self.now_fn(),
                    },
                    synchronize_session=False,
                )
            )
            session.commit()
            return changed == 1

