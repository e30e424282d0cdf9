"""
Tests for the generation orchestrator: theme resolution, retries and outcomes.
"""
import random
from datetime import timedelta

import pytest

from app.errors import PermanentGenerationError, TransientGenerationError
from app.models.blog_post import BlogPost
from app.models.scheduled_job import JobStatus
from app.models.theme import Theme

from .conftest import HANG, START, FakeAdapter, make_result


def claimed_job(store, controller, **fields):
    fields.setdefault("title", "Working title")
    fields.setdefault("scheduled_for", START - timedelta(minutes=1))
    job = store.create(**fields)
    controller.claim(job.id)
    return job


class TestRetries:
    """Timeouts and transient errors are retried with backoff."""

    @pytest.mark.asyncio
    async def test_two_timeouts_then_success(self, store, controller, make_orchestrator, sleep, theme, db):
        adapter = FakeAdapter(HANG, HANG, make_result("Third Time Lucky"))
        orchestrator = make_orchestrator(adapter, timeout_seconds=0.05)
        job = claimed_job(store, controller)

        post = await orchestrator.run(job.id)

        assert post is not None
        assert post.slug == "third-time-lucky"
        job = store.get(job.id)
        assert job.status == JobStatus.PUBLISHED.value
        assert job.retry_count == 2
        assert job.published_post_id == post.id
        assert len(adapter.calls) == 3
        assert len(sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_fail_job(self, store, controller, make_orchestrator, sleep, theme, db):
        adapter = FakeAdapter(
            TransientGenerationError("agent down"),
            TransientGenerationError("agent down"),
            TransientGenerationError("agent still down"),
        )
        orchestrator = make_orchestrator(adapter, max_attempts=3)
        job = claimed_job(store, controller)

        assert await orchestrator.run(job.id) is None

        job = store.get(job.id)
        assert job.status == JobStatus.FAILED.value
        assert job.retry_count == 3
        assert job.last_error == "agent still down"
        assert len(sleep.delays) == 2
        assert db.query(BlogPost).count() == 0

    @pytest.mark.asyncio
    async def test_permanent_error_not_retried(self, store, controller, make_orchestrator, sleep, theme):
        adapter = FakeAdapter(PermanentGenerationError("Agent reply is not JSON"))
        orchestrator = make_orchestrator(adapter)
        job = claimed_job(store, controller)

        await orchestrator.run(job.id)

        job = store.get(job.id)
        assert job.status == JobStatus.FAILED.value
        assert job.last_error == "Agent reply is not JSON"
        assert job.retry_count == 0
        assert len(adapter.calls) == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_job(self, store, controller, make_orchestrator, theme):
        adapter = FakeAdapter(RuntimeError("kaboom"))
        orchestrator = make_orchestrator(adapter)
        job = claimed_job(store, controller)

        await orchestrator.run(job.id)

        job = store.get(job.id)
        assert job.status == JobStatus.FAILED.value
        assert job.last_error == "Unexpected error: kaboom"

    def test_backoff_is_capped_with_jitter(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeAdapter(), base_delay=1.0, max_delay=10.0)

        assert 1.0 <= orchestrator.backoff(0) <= 1.1
        assert 4.0 <= orchestrator.backoff(2) <= 4.4
        assert 10.0 <= orchestrator.backoff(6) <= 11.0


class TestThemeResolution:

    @pytest.mark.asyncio
    async def test_no_active_themes_fails_without_calling_agent(self, store, controller, make_orchestrator):
        adapter = FakeAdapter()
        orchestrator = make_orchestrator(adapter)
        job = claimed_job(store, controller)

        await orchestrator.run(job.id)

        job = store.get(job.id)
        assert job.status == JobStatus.FAILED.value
        assert job.last_error == "No active themes available"
        assert adapter.calls == []

    @pytest.mark.asyncio
    async def test_inactive_explicit_theme(self, store, controller, make_orchestrator, theme, db):
        theme.active = False
        db.commit()
        adapter = FakeAdapter()
        orchestrator = make_orchestrator(adapter)
        job = claimed_job(store, controller, theme_id=theme.id)

        await orchestrator.run(job.id)

        job = store.get(job.id)
        assert job.status == JobStatus.FAILED.value
        assert "inactive" in job.last_error
        assert adapter.calls == []

    @pytest.mark.asyncio
    async def test_explicit_theme_shapes_prompt(self, store, controller, make_orchestrator, theme):
        adapter = FakeAdapter()
        orchestrator = make_orchestrator(adapter)
        job = claimed_job(store, controller, title="SEO in 2024", theme_id=theme.id)

        await orchestrator.run(job.id)

        call = adapter.calls[0]
        assert "digital marketing for small businesses" in call["prompt"]
        assert 'Working title: "SEO in 2024"' in call["prompt"]
        assert "seo, social media" in call["prompt"]
        assert "Tone: friendly" in call["prompt"]
        assert "Target audience: small business owners" in call["prompt"]
        assert call["theme"]["theme_id"] == theme.id

    @pytest.mark.asyncio
    async def test_random_theme_is_reproducible(self, store, controller, make_orchestrator, db):
        themes = [Theme(name=f"Theme {n}", prompt=f"Prompt {n}", active=True) for n in range(5)]
        themes.append(Theme(name="Retired", prompt="Old", active=False))
        db.add_all(themes)
        db.commit()
        active_ids = sorted(t.id for t in themes if t.active)

        adapter = FakeAdapter()
        orchestrator = make_orchestrator(adapter, rng=random.Random(1234))
        job = claimed_job(store, controller)

        await orchestrator.run(job.id)

        expected = random.Random(1234).choice(active_ids)
        assert adapter.calls[0]["theme"]["theme_id"] == expected


class TestOutcomes:

    @pytest.mark.asyncio
    async def test_custom_content_skips_generation(self, store, controller, make_orchestrator, db):
        adapter = FakeAdapter()
        orchestrator = make_orchestrator(adapter)
        job = claimed_job(store, controller, title="Hand Written", content="# Mine\n\nAll mine.")

        post = await orchestrator.run(job.id)

        assert adapter.calls == []
        assert post.title == "Hand Written"
        assert post.content_markdown == "# Mine\n\nAll mine."
        assert store.get(job.id).status == JobStatus.PUBLISHED.value

    @pytest.mark.asyncio
    async def test_job_not_processing_is_skipped(self, store, make_orchestrator, theme):
        adapter = FakeAdapter()
        orchestrator = make_orchestrator(adapter)
        job = store.create("Not claimed", START)

        assert await orchestrator.run(job.id) is None
        assert adapter.calls == []
        assert store.get(job.id).status == JobStatus.SCHEDULED.value

    @pytest.mark.asyncio
    async def test_result_discarded_when_job_failed_meanwhile(self, store, controller, make_orchestrator, theme, db):
        job = claimed_job(store, controller)

        class FailingMidFlight(FakeAdapter):
            async def generate(self, prompt, theme_metadata=None):
                controller.mark_failed(job.id, "failed by admin")
                return make_result()

        orchestrator = make_orchestrator(FailingMidFlight())

        assert await orchestrator.run(job.id) is None
        job = store.get(job.id)
        assert job.status == JobStatus.FAILED.value
        assert job.last_error == "failed by admin"
        assert db.query(BlogPost).count() == 0

    @pytest.mark.asyncio
    async def test_published_at_uses_scheduled_time(self, store, controller, make_orchestrator, theme):
        scheduled_for = START - timedelta(hours=2)
        job = claimed_job(store, controller, scheduled_for=scheduled_for)

        post = await make_orchestrator(FakeAdapter()).run(job.id)

        assert post.published_at == scheduled_for
