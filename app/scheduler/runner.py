"""
Scheduler runner: the single owned polling task.

    async with SchedulerRunner(...) as runner:
        ...  # ticks every poll interval until the block exits

Each tick snapshots the auto-generation switch, materializes the current
cadence slot when enabled, promotes due jobs to pending and queues every due
job not already waiting. Dispatcher workers claim jobs as they take them.
"""
import asyncio
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ..errors import SchedulerError
from ..logging_config import scheduler_logger as logger

# At most one live runner per process.
_active_runner = None
_active_lock = threading.Lock()


@dataclass
class TickResult:
    """What one evaluation of the clock did."""
    at: datetime
    auto_generation: bool
    materialized_job_id: Optional[int] = None
    queued: List[int] = field(default_factory=list)
    already_queued: List[int] = field(default_factory=list)


class SchedulerRunner:

    def __init__(
        self,
        store,
        controller,
        clock,
        switch,
        dispatcher,
        poll_seconds: float = 30.0,
        recover_interrupted: bool = True,
    ):
        self.store = store
        self.controller = controller
        self.clock = clock
        self.switch = switch
        self.dispatcher = dispatcher
        self.poll_seconds = poll_seconds
        self.recover_interrupted = recover_interrupted
        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None
        self._tick_lock = asyncio.Lock()
        self.last_tick: Optional[TickResult] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        global _active_runner
        with _active_lock:
            if _active_runner is self:
                logger.info("Scheduler already running")
                return
            if _active_runner is not None:
                raise SchedulerError("Another scheduler runner is already active in this process")
            _active_runner = self

        try:
            if self.recover_interrupted:
                self.controller.fail_interrupted(self.clock.now())
            await self.dispatcher.start()
            self._stopping = asyncio.Event()
            self._task = asyncio.create_task(self._loop(), name="pulse-scheduler")
        except BaseException:
            self._release()
            raise

        logger.info(
            "Scheduler started",
            poll_seconds=self.poll_seconds,
            timezone=self.clock.tz_name,
            slots=[s.strftime("%H:%M") for s in self.clock.slots],
        )

    async def stop(self):
        if self._task is None:
            logger.info("No scheduler to stop")
            return
        self._stopping.set()
        try:
            await self._task
        finally:
            self._task = None
            await self.dispatcher.stop()
            self._release()
        logger.info("Scheduler stopped")

    def _release(self):
        global _active_runner
        with _active_lock:
            if _active_runner is self:
                _active_runner = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    async def _loop(self):
        while not self._stopping.is_set():
            try:
                await self.tick()
            except Exception as e:
                logger.error("Scheduler tick failed", error=e)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_seconds)
            except asyncio.TimeoutError:
                pass

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def tick(self, now: Optional[datetime] = None) -> TickResult:
        """Evaluate due work once. Ticks never overlap."""
        if not self.dispatcher.running:
            # Nothing would drain the queue.
            raise SchedulerError("Dispatcher is not running")

        async with self._tick_lock:
            auto_generation = self.switch.snapshot()
            now = now or self.clock.now()
            result = TickResult(at=now, auto_generation=auto_generation)

            if auto_generation:
                result.materialized_job_id = self._materialize_slot(now)

            self.controller.promote_due(now)

            for job in self.store.due_jobs(now):
                if self.dispatcher.is_queued(job.id):
                    result.already_queued.append(job.id)
                    continue
                self.dispatcher.submit(job.id, job.scheduled_for)
                result.queued.append(job.id)

            if result.queued or result.materialized_job_id:
                logger.info(
                    "Tick queued jobs",
                    queued=result.queued,
                    materialized=result.materialized_job_id,
                    already_queued=result.already_queued,
                )
            self.last_tick = result
            return result

    def _materialize_slot(self, now: datetime) -> Optional[int]:
        slot = self.clock.latest_slot(now)
        if not self.clock.slot_is_fresh(slot, now):
            logger.debug("Latest slot outside grace window, skipped", slot=slot)
            return None
        job = self.store.create_for_slot(
            self.clock.slot_key(slot),
            self.clock.slot_title(slot),
            slot,
        )
        return job.id if job else None
