"""
Generation service: wires the scheduling components together and exposes
the admin operations used by the HTTP layer.
"""
import asyncio
import random
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from ..config import Settings
from ..database import utcnow
from ..errors import NotFoundError, SchedulerError, StateError, ValidationError
from ..generation.adapter import GeneratorAdapter
from ..generation.orchestrator import GenerationOrchestrator
from ..generation.publisher import PostPublisher
from ..logging_config import scheduler_logger as logger
from ..models.scheduled_job import JobStatus, ScheduledJob
from ..models.theme import Theme
from .clock import TriggerClock
from .dispatcher import GenerationDispatcher
from .runner import SchedulerRunner, TickResult
from .state_machine import OPEN_STATES, JobStateController
from .store import ScheduleStore
from .switch import AutoGenerationSwitch


class GenerationService:

    def __init__(
        self,
        session_factory,
        settings: Settings,
        adapter=None,
        rng: Optional[random.Random] = None,
        sleep=asyncio.sleep,
        now_fn=utcnow,
    ):
        self.session_factory = session_factory
        self.settings = settings
        self.now_fn = now_fn

        self.store = ScheduleStore(session_factory, now_fn=now_fn)
        self.controller = JobStateController(self.store, now_fn=now_fn)
        self.clock = TriggerClock(
            settings.generation_slots,
            settings.scheduler_timezone,
            settings.auto_slot_grace_minutes,
            now_fn=now_fn,
        )
        self.switch = AutoGenerationSwitch(session_factory, default=settings.auto_generation_enabled)

        self.adapter = adapter or GeneratorAdapter(
            session_factory,
            default_agent_id=settings.blog_agent_id,
            request_timeout=settings.generation_timeout_seconds,
            now_fn=now_fn,
        )
        self.publisher = PostPublisher(
            session_factory,
            self.controller,
            max_slug_attempts=settings.slug_max_attempts,
            now_fn=now_fn,
        )
        self.orchestrator = GenerationOrchestrator(
            session_factory,
            self.store,
            self.controller,
            self.adapter,
            self.publisher,
            max_attempts=settings.generation_max_attempts,
            timeout_seconds=settings.generation_timeout_seconds,
            base_delay=settings.retry_base_delay_seconds,
            max_delay=settings.retry_max_delay_seconds,
            rng=rng,
            sleep=sleep,
            now_fn=now_fn,
        )
        self.dispatcher = GenerationDispatcher(
            self.orchestrator.run,
            concurrency=settings.generation_concurrency,
            admit=self.controller.claim,
        )
        self.runner = SchedulerRunner(
            self.store,
            self.controller,
            self.clock,
            self.switch,
            self.dispatcher,
            poll_seconds=settings.scheduler_poll_seconds,
            recover_interrupted=settings.recover_interrupted_jobs,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, run_scheduler: Optional[bool] = None):
        """Start the dispatcher and, unless disabled, the polling scheduler."""
        self.switch.load()
        if run_scheduler is None:
            run_scheduler = self.settings.scheduler_autostart
        if run_scheduler:
            await self.runner.start()
        else:
            await self.dispatcher.start()

    async def stop(self):
        if self.runner.running:
            await self.runner.stop()
        else:
            await self.dispatcher.stop()
        aclose = getattr(self.adapter, "aclose", None)
        if aclose is not None:
            await aclose()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    def _check_theme(self, theme_id: Optional[int]):
        if theme_id is None:
            return
        with self.session_factory() as session:
            if session.get(Theme, theme_id) is None:
                raise ValidationError(f"Theme {theme_id} does not exist")

    def create_job(
        self,
        title: str,
        scheduled_for: datetime,
        content: Optional[str] = None,
        theme_id: Optional[int] = None,
    ) -> ScheduledJob:
        self._check_theme(theme_id)
        return self.store.create(title, scheduled_for, content=content, theme_id=theme_id)

    def get_job(self, job_id: int) -> ScheduledJob:
        return self.store.get(job_id)

    def list_jobs(self, **filters) -> Tuple[List[ScheduledJob], int]:
        return self.store.list(**filters)

    def update_job(self, job_id: int, delta: Dict) -> ScheduledJob:
        if "theme_id" in delta:
            self._check_theme(delta["theme_id"])
        return self.store.update(job_id, delta)

    def cancel_job(self, job_id: int) -> ScheduledJob:
        self.controller.cancel(job_id)
        return self.store.get(job_id)

    def _require_dispatcher(self):
        if not self.dispatcher.running:
            raise SchedulerError("Generation dispatcher is not running")

    async def generate_now(self, job_id: int, wait: bool = False) -> ScheduledJob:
        """Queue an open job right away, bypassing its scheduled time."""
        self._require_dispatcher()
        job = self.controller.require(job_id, OPEN_STATES, "only scheduled or pending jobs can be generated")
        done = self.dispatcher.submit(job.id, min(job.scheduled_for, self.now_fn()))
        logger.info("Immediate generation requested", job_id=job_id)
        if wait:
            await done
        return self.store.get(job_id)

    async def generate_immediately(
        self,
        title: Optional[str] = None,
        content: Optional[str] = None,
        theme_id: Optional[int] = None,
        wait: bool = False,
    ) -> ScheduledJob:
        job = self.create_job(title or "Immediate post", self.now_fn(), content=content, theme_id=theme_id)
        return await self.generate_now(job.id, wait=wait)

    async def retry_job(self, job_id: int, wait: bool = False) -> ScheduledJob:
        self._require_dispatcher()
        job = self.controller.require(job_id, {JobStatus.FAILED}, "only failed jobs can be retried")
        done = self.dispatcher.submit(job.id, job.scheduled_for, admit=self.controller.retry)
        logger.info("Retry requested", job_id=job_id)
        if wait:
            await done
        return self.store.get(job_id)

    async def bulk_action(self, action: str, job_ids: List[int]) -> Dict:
        """
        Apply ``generate`` or ``cancel`` to many jobs.

        Each id is handled independently; per-id state or lookup errors are
        collected instead of aborting the batch.
        """
        if action not in ("generate", "cancel"):
            raise ValidationError(f"Unknown bulk action '{action}'")

        succeeded: List[int] = []
        errors: Dict[int, str] = {}
        for job_id in dict.fromkeys(job_ids):
            try:
                if action == "generate":
                    await self.generate_now(job_id)
                else:
                    self.cancel_job(job_id)
            except (StateError, NotFoundError) as e:
                errors[job_id] = e.message
            else:
                succeeded.append(job_id)

        logger.info("Bulk action applied", action=action, succeeded=len(succeeded), failed=len(errors))
        return {"action": action, "succeeded": len(succeeded), "job_ids": succeeded, "errors": errors}

    async def process_due(self) -> TickResult:
        return await self.runner.tick()

    def set_auto_generation(self, enabled: bool) -> bool:
        self.switch.set(enabled)
        return self.switch.snapshot()

    def upcoming(self, limit: int = 10) -> List[ScheduledJob]:
        return self.store.upcoming(self.now_fn(), limit)

    def status(self) -> Dict:
        now = self.now_fn()
        last = self.runner.last_tick
        return {
            "scheduler_running": self.runner.running,
            "auto_generation_enabled": self.switch.snapshot(),
            "timezone": self.clock.tz_name,
            "slots": [s.strftime("%H:%M") for s in self.clock.slots],
            "next_slot": self.clock.next_slot(now).isoformat(),
            "poll_seconds": self.runner.poll_seconds,
            "queued": self.dispatcher.queued,
            "last_tick": last.at.isoformat() if last else None,
            "jobs": self.store.stats(now),
        }
