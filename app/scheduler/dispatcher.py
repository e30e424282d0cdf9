"""
Generation dispatcher: admission control for due jobs.

Due jobs wait in a priority queue ordered by ``scheduled_for`` (earliest
first) and are drained by a fixed pool of worker tasks, so no more than
``concurrency`` external agent calls are in flight at once. A worker claims a
job only when it takes it off the queue; until then the job stays open in the
store, so stopping the process loses nothing and the next tick queues it
again.
"""
import asyncio
import itertools
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional

from ..errors import SchedulerError
from ..logging_config import scheduler_logger as logger

JobHandler = Callable[[int], Awaitable[object]]
Admission = Callable[[int], bool]


def _admit_all(job_id: int) -> bool:
    return True


def _consume_exception(future: asyncio.Future):
    # Marks the exception retrieved when nobody awaits the future.
    if not future.cancelled():
        future.exception()


class GenerationDispatcher:

    def __init__(self, handler: JobHandler, concurrency: int = 2, admit: Optional[Admission] = None):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.handler = handler
        self.admit = admit or _admit_all
        self.concurrency = concurrency
        self._queue: Optional[asyncio.PriorityQueue] = None
        self._workers: List[asyncio.Task] = []
        self._queued: Dict[int, asyncio.Future] = {}
        self._sequence = itertools.count()  # keeps callables and futures out of comparisons

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def queued(self) -> int:
        return len(self._queued)

    def is_queued(self, job_id: int) -> bool:
        return job_id in self._queued

    async def start(self):
        if self.running:
            return
        self._queue = asyncio.PriorityQueue()
        self._queued = {}
        self._workers = [
            asyncio.create_task(self._worker(n), name=f"pulse-generation-{n}")
            for n in range(self.concurrency)
        ]
        logger.info("Dispatcher started", concurrency=self.concurrency)

    async def stop(self):
        """Cancel the workers and release jobs still waiting in the queue."""
        workers, self._workers = self._workers, []
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)

        released = 0
        while self._queue is not None and not self._queue.empty():
            *_, done = self._queue.get_nowait()
            self._queue.task_done()
            if not done.done():
                done.cancel()
            released += 1
        self._queued = {}
        if workers:
            logger.info("Dispatcher stopped", released=released)

    def submit(self, job_id: int, scheduled_for: datetime, admit: Optional[Admission] = None) -> asyncio.Future:
        """
        Queue a job for generation.

        ``admit`` runs when a worker picks the job up and must return True for
        the handler to run; it defaults to the dispatcher's claim. A job that
        is already waiting is not queued twice; its existing future is
        returned. The future resolves with the handler's result, or None when
        admission was refused.
        """
        if not self.running:
            raise SchedulerError("Dispatcher is not running")
        if job_id in self._queued:
            return self._queued[job_id]

        done = asyncio.get_running_loop().create_future()
        done.add_done_callback(_consume_exception)
        self._queued[job_id] = done
        self._queue.put_nowait((scheduled_for, job_id, next(self._sequence), admit or self.admit, done))
        logger.debug("Job queued", job_id=job_id, queued=self.queued)
        return done

    async def join(self):
        """Wait until every queued job has been handled."""
        if self._queue is not None:
            await self._queue.join()

    async def _worker(self, number: int):
        while True:
            _, job_id, _, admit, done = await self._queue.get()
            self._queued.pop(job_id, None)
            try:
                # No await between dequeue and admission: a job is always
                # either visibly queued or already claimed.
                if not admit(job_id):
                    logger.debug("Admission refused", job_id=job_id, worker=number)
                    result = None
                else:
                    result = await self.handler(job_id)
                if not done.done():
                    done.set_result(result)
            except asyncio.CancelledError:
                if not done.done():
                    done.cancel()
                raise
            except Exception as e:
                # One job's failure must not take the worker down.
                logger.error("Generation handler crashed", error=e, job_id=job_id, worker=number)
                if not done.done():
                    done.set_exception(e)
            finally:
                self._queue.task_done()
