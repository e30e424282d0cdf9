"""
Generation Orchestrator

Runs one claimed job to a terminal state:
- custom content is published as-is, with no agent call
- otherwise a theme is resolved (explicit, or random among active themes),
  a request is composed and the adapter is called under a timeout with
  exponential backoff on transient errors
- success goes to the publisher; exhausted retries, permanent errors and
  configuration errors fail the job with the last error recorded
"""
import asyncio
import random
from typing import Optional

from ..database import utcnow
from ..errors import (
    ConfigurationError,
    ConflictError,
    PermanentGenerationError,
    TransientGenerationError,
)
from ..logging_config import generation_logger as logger
from ..models.scheduled_job import JobStatus
from ..models.theme import Theme
from .adapter import GenerationResult
from .prompts import GenerationRequest, ThemeContext, build_generation_request


class GenerationOrchestrator:

    def __init__(
        self,
        session_factory,
        store,
        controller,
        adapter,
        publisher,
        max_attempts: int = 3,
        timeout_seconds: float = 60.0,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        rng: Optional[random.Random] = None,
        sleep=asyncio.sleep,
        now_fn=utcnow,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.session_factory = session_factory
        self.store = store
        self.controller = controller
        self.adapter = adapter
        self.publisher = publisher
        self.max_attempts = max_attempts
        self.timeout_seconds = timeout_seconds
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.rng = rng or random.Random()
        self._sleep = sleep
        self.now_fn = now_fn

    async def run(self, job_id: int):
        """Process a claimed job; returns the published post or None."""
        log = logger.bind(job_id=job_id)
        job = self.store.get(job_id)
        if job.status != JobStatus.PROCESSING.value:
            log.warning("Skipping job that is not processing", status=job.status)
            return None

        try:
            if job.content:
                log.info("Publishing custom content without generation")
                result = GenerationResult(title=job.title, content_markdown=job.content)
            else:
                theme = self.resolve_theme(job.theme_id)
                request = build_generation_request(theme, working_title=job.title)
                log.info("Generating post", theme=theme.name, source=job.source)
                result = await self._generate_with_retry(job_id, request)

            return self.publisher.publish(job_id, result)

        except (ConfigurationError, PermanentGenerationError, TransientGenerationError, ConflictError) as e:
            self.controller.mark_failed(job_id, e.message)
        except Exception as e:
            log.error("Unexpected generation failure", error=e)
            self.controller.mark_failed(job_id, f"Unexpected error: {e}")
        return None

    def resolve_theme(self, theme_id: Optional[int]) -> ThemeContext:
        with self.session_factory() as session:
            if theme_id is not None:
                theme = session.get(Theme, theme_id)
                if theme is None:
                    raise ConfigurationError(f"Theme {theme_id} not found")
                if not theme.active:
                    raise ConfigurationError(f"Theme '{theme.name}' is inactive")
                return ThemeContext.from_model(theme)

            themes = session.query(Theme).filter(Theme.active.is_(True)).order_by(Theme.id).all()
            if not themes:
                raise ConfigurationError("No active themes available")
            return ThemeContext.from_model(self.rng.choice(themes))

    def backoff(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based), with up to 10% jitter."""
        delay = min(self.base_delay * (2 ** attempt), self.max_delay)
        return delay + self.rng.uniform(0, 0.1 * delay)

    async def _generate_with_retry(self, job_id: int, request: GenerationRequest) -> GenerationResult:
        last_error: Optional[TransientGenerationError] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await asyncio.wait_for(
                    self.adapter.generate(request.prompt, request.theme_metadata),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError:
                last_error = TransientGenerationError(
                    f"Agent call timed out after {self.timeout_seconds}s"
                )
            except TransientGenerationError as e:
                last_error = e

            self.store.record_attempt_error(job_id, last_error.message)
            logger.warning(
                "Generation attempt failed",
                job_id=job_id,
                attempt=attempt,
                max_attempts=self.max_attempts,
                error=last_error.message,
            )
            if attempt < self.max_attempts:
                await self._sleep(self.backoff(attempt - 1))

        raise last_error
