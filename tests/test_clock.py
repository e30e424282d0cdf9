"""
Tests for the trigger clock, the auto-generation switch and scheduler ticks.
"""
import asyncio
from datetime import datetime, timedelta

import pytest

from app.errors import ConfigurationError, SchedulerError
from app.models.blog_post import BlogPost
from app.models.scheduled_job import JobSource, JobStatus
from app.scheduler.clock import TriggerClock, parse_slots
from app.scheduler.service import GenerationService
from app.scheduler.state_machine import INTERRUPTED_ERROR
from app.scheduler.switch import AutoGenerationSwitch

from .conftest import HANG, START, FakeAdapter, make_result


async def wait_until(predicate, turns=200):
    """Yield to the event loop until ``predicate()`` holds."""
    for _ in range(turns):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


class TestParseSlots:

    def test_sorted_and_deduplicated(self):
        slots = parse_slots("20:00, 08:00,14:00,08:00")
        assert [s.strftime("%H:%M") for s in slots] == ["08:00", "14:00", "20:00"]

    def test_accepts_list(self):
        assert len(parse_slots(["09:30"])) == 1

    @pytest.mark.parametrize("raw", ["", "8am", "25:00", "12:75"])
    def test_invalid(self, raw):
        with pytest.raises(ConfigurationError):
            parse_slots(raw)


class TestTriggerClock:
    """Cadence computed in the configured timezone, returned as naive UTC."""

    def test_sao_paulo_cadence(self):
        # 10:00 UTC is 07:00 in Sao Paulo (UTC-3)
        clock = TriggerClock("08:00,14:00,20:00", "America/Sao_Paulo")

        assert clock.next_slot(START) == datetime(2024, 3, 1, 11, 0)
        assert clock.latest_slot(START) == datetime(2024, 2, 29, 23, 0)

    def test_slot_boundaries(self):
        clock = TriggerClock("08:00,14:00", "UTC")
        at_slot = datetime(2024, 3, 1, 8, 0)

        assert clock.latest_slot(at_slot) == at_slot
        assert clock.next_slot(at_slot) == datetime(2024, 3, 1, 14, 0)

    def test_next_slot_rolls_over_midnight(self):
        clock = TriggerClock("08:00,14:00", "UTC")
        assert clock.next_slot(datetime(2024, 3, 1, 22, 0)) == datetime(2024, 3, 2, 8, 0)

    def test_grace_window(self):
        clock = TriggerClock("08:00", "UTC", grace_minutes=60)
        slot = datetime(2024, 3, 1, 8, 0)

        assert clock.slot_is_fresh(slot, slot + timedelta(minutes=59))
        assert not clock.slot_is_fresh(slot, slot + timedelta(minutes=61))

    def test_slot_key_and_title(self):
        clock = TriggerClock("08:00", "America/Sao_Paulo")
        slot = datetime(2024, 3, 1, 11, 0)

        assert clock.slot_key(slot) == "auto:2024-03-01T11:00"
        assert clock.slot_title(slot) == "Automatic post 2024-03-01 08:00"

    def test_unknown_timezone(self):
        with pytest.raises(ConfigurationError):
            TriggerClock("08:00", "Mars/Olympus_Mons")


class TestAutoGenerationSwitch:

    def test_defaults_until_set(self, session_factory):
        switch = AutoGenerationSwitch(session_factory, default=False)
        assert switch.load() is False

    def test_persisted_across_instances(self, session_factory):
        switch = AutoGenerationSwitch(session_factory, default=True)
        previous = switch.set(False)

        assert previous is True
        assert switch.snapshot() is False
        assert AutoGenerationSwitch(session_factory, default=True).load() is False


class TestSchedulerTick:
    """Scheduler evaluation with a started dispatcher."""

    @pytest.mark.asyncio
    async def test_tick_requires_dispatcher(self, service):
        with pytest.raises(SchedulerError):
            await service.runner.tick()

    @pytest.mark.asyncio
    async def test_slot_materialized_once(self, service, theme, clock, fake_adapter):
        clock.now = datetime(2024, 3, 1, 8, 10)
        await service.start()
        try:
            first = await service.runner.tick()
            await service.dispatcher.join()
            second = await service.runner.tick()
            await service.dispatcher.join()
        finally:
            await service.stop()

        assert first.materialized_job_id is not None
        assert first.queued == [first.materialized_job_id]
        assert second.materialized_job_id is None
        assert second.queued == []

        jobs, total = service.store.list()
        assert total == 1
        assert jobs[0].source == JobSource.AUTOMATIC.value
        assert jobs[0].status == JobStatus.PUBLISHED.value
        assert len(fake_adapter.calls) == 1

    @pytest.mark.asyncio
    async def test_missed_slot_outside_grace_is_skipped(self, service, theme, clock):
        clock.now = datetime(2024, 3, 1, 10, 30)
        await service.start()
        try:
            result = await service.runner.tick()
        finally:
            await service.stop()

        assert result.materialized_job_id is None
        assert service.store.list()[1] == 0

    @pytest.mark.asyncio
    async def test_overdue_manual_job_runs_on_first_tick(self, service, theme, clock):
        missed = service.create_job("Missed while down", START - timedelta(hours=3), theme_id=theme.id)
        await service.start()
        try:
            result = await service.runner.tick()
            await service.dispatcher.join()
        finally:
            await service.stop()

        assert result.queued == [missed.id]
        job = service.get_job(missed.id)
        assert job.status == JobStatus.PUBLISHED.value
        assert job.published_post_id is not None

    @pytest.mark.asyncio
    async def test_cancelled_job_never_dispatched(self, service, theme, fake_adapter):
        job = service.create_job("Cancelled", START - timedelta(minutes=5), theme_id=theme.id)
        service.cancel_job(job.id)
        await service.start()
        try:
            result = await service.runner.tick()
            await service.dispatcher.join()
        finally:
            await service.stop()

        assert result.queued == []
        assert fake_adapter.calls == []
        assert service.get_job(job.id).status == JobStatus.CANCELLED.value

    @pytest.mark.asyncio
    async def test_future_job_waits(self, service, theme):
        job = service.create_job("Later", START + timedelta(minutes=5), theme_id=theme.id)
        await service.start()
        try:
            result = await service.runner.tick()
        finally:
            await service.stop()

        assert result.queued == []
        assert service.get_job(job.id).status == JobStatus.SCHEDULED.value

    @pytest.mark.asyncio
    async def test_disabled_switch_still_runs_manual_jobs(self, service, theme, clock):
        clock.now = datetime(2024, 3, 1, 8, 10)
        manual = service.create_job("Manual", clock.now - timedelta(minutes=1), theme_id=theme.id)
        service.set_auto_generation(False)
        await service.start()
        try:
            result = await service.runner.tick()
            await service.dispatcher.join()
        finally:
            await service.stop()

        assert result.auto_generation is False
        assert result.materialized_job_id is None
        assert result.queued == [manual.id]

    @pytest.mark.asyncio
    async def test_toggle_during_tick_applies_to_next_tick(self, service, theme, clock):
        clock.now = datetime(2024, 3, 1, 8, 10)
        original = service.controller.promote_due

        def toggle_then_mark(now):
            service.switch.set(False)
            return original(now)

        service.controller.promote_due = toggle_then_mark
        await service.start()
        try:
            during = await service.runner.tick()
            await service.dispatcher.join()
            service.controller.promote_due = original
            clock.now = datetime(2024, 3, 1, 14, 5)
            after = await service.runner.tick()
        finally:
            await service.stop()

        assert during.auto_generation is True
        assert during.materialized_job_id is not None
        assert after.auto_generation is False
        assert after.materialized_job_id is None


    @pytest.mark.asyncio
    async def test_job_runs_once_when_its_time_comes(self, service, theme, clock, fake_adapter, db):
        fake_adapter.outcomes.append(make_result("A"))
        job = service.create_job("A", clock.now + timedelta(hours=1), theme_id=theme.id)

        await service.start()
        try:
            early = await service.runner.tick()
            clock.advance(timedelta(hours=1))
            due = await service.runner.tick()
            await service.dispatcher.join()
            again = await service.runner.tick()
            await service.dispatcher.join()
        finally:
            await service.stop()

        assert early.queued == []
        assert due.queued == [job.id]
        assert again.queued == []
        assert len(fake_adapter.calls) == 1

        job = service.get_job(job.id)
        assert job.status == JobStatus.PUBLISHED.value
        assert db.get(BlogPost, job.published_post_id).slug == "a"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("manual_first", [False, True])
    async def test_tick_and_generate_now_run_the_job_once(self, service, theme, fake_adapter, db, manual_first):
        job = service.create_job("Contested", START - timedelta(minutes=1), theme_id=theme.id)

        await service.start()
        try:
            calls = [service.runner.tick(), service.generate_now(job.id, wait=True)]
            if manual_first:
                calls.reverse()
            await asyncio.gather(*calls)
            await service.dispatcher.join()
            await service.runner.tick()
            await service.dispatcher.join()
        finally:
            await service.stop()

        assert len(fake_adapter.calls) == 1
        assert service.get_job(job.id).status == JobStatus.PUBLISHED.value
        assert db.query(BlogPost).count() == 1

class TestRunnerLifecycle:

    @pytest.mark.asyncio
    async def test_second_runner_refused(self, service, session_factory, settings, clock):
        other = GenerationService(session_factory, settings, adapter=FakeAdapter(), now_fn=clock)
        await service.start(run_scheduler=True)
        try:
            with pytest.raises(SchedulerError):
                await other.start(run_scheduler=True)
            # starting the same runner again is a no-op
            await service.runner.start()
            assert service.runner.running
        finally:
            await service.stop()

        await other.start(run_scheduler=True)
        await other.stop()

    @pytest.mark.asyncio
    async def test_interrupted_jobs_failed_on_start(self, service, clock):
        job = service.create_job("Half done", START + timedelta(hours=1))
        service.controller.claim(job.id)

        await service.start(run_scheduler=True)
        try:
            recovered = service.get_job(job.id)
        finally:
            await service.stop()

        assert recovered.status == JobStatus.FAILED.value
        assert recovered.last_error == INTERRUPTED_ERROR

    @pytest.mark.asyncio
    async def test_stop_closes_adapter(self, service, fake_adapter):
        await service.start()
        await service.stop()
        assert fake_adapter.closed is True

    @pytest.mark.asyncio
    async def test_generate_now_without_dispatcher_leaves_job_open(self, service, theme):
        job = service.create_job("Not yet", START + timedelta(hours=1), theme_id=theme.id)

        with pytest.raises(SchedulerError):
            await service.generate_now(job.id)

        assert service.get_job(job.id).status == JobStatus.SCHEDULED.value

    @pytest.mark.asyncio
    async def test_restart_keeps_queued_backlog(self, session_factory, settings, theme, clock, sleep):
        settings = settings.model_copy(update={"generation_concurrency": 1, "generation_timeout_seconds": 30})
        hanging = FakeAdapter(HANG)
        before = GenerationService(session_factory, settings, adapter=hanging, sleep=sleep, now_fn=clock)
        jobs = [
            before.create_job(f"Backlog {n}", START - timedelta(minutes=n), theme_id=theme.id)
            for n in (3, 2, 1)
        ]

        await before.start()
        try:
            result = await before.runner.tick()
            await wait_until(lambda: hanging.calls)
        finally:
            await before.stop()
        assert result.queued == [j.id for j in jobs]
        assert len(hanging.calls) == 1

        after = GenerationService(session_factory, settings, adapter=FakeAdapter(), sleep=sleep, now_fn=clock)
        await after.start(run_scheduler=True)
        try:
            in_flight = after.get_job(jobs[0].id)
            waiting = [after.get_job(j.id) for j in jobs[1:]]
            assert in_flight.status == JobStatus.FAILED.value
            assert in_flight.last_error == INTERRUPTED_ERROR
            assert [j.status for j in waiting] == [JobStatus.PENDING.value] * 2

            await after.process_due()
            await after.dispatcher.join()
        finally:
            await after.stop()

        assert [after.get_job(j.id).status for j in jobs[1:]] == [JobStatus.PUBLISHED.value] * 2
        assert after.get_job(jobs[0].id).status == JobStatus.FAILED.value
