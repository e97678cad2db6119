"""Tests for the job status sync engine and render sampling."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, Mock

import pytest

from payeebatch.application.dtos import JobSaveResult
from payeebatch.application.retry import RetryPolicy
from payeebatch.application.services import JobStatusSyncEngine, RenderSampler
from payeebatch.application.state import ApplicationState
from payeebatch.domain.batch import (
    BatchJobStateMachine,
    BatchJobStatus,
    ProviderJobNotFoundError,
)
from tests.shared.fixtures.factories import T0, TestJobFactory, minutes
from tests.shared.fixtures.fakes import FakeProvider


def _rng(value: float) -> Mock:
    return Mock(random=Mock(return_value=value))


async def _wait_until(predicate, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


@pytest.fixture
def state() -> ApplicationState:
    return ApplicationState()


@pytest.fixture
def persistence() -> AsyncMock:
    mock = AsyncMock()
    mock.save_job.side_effect = lambda job, *args: JobSaveResult(job_id=job.id, persisted=True)
    return mock


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


def _engine(provider, state, persistence, rng_value: float = 0.99, **kwargs) -> JobStatusSyncEngine:
    return JobStatusSyncEngine(
        provider,
        BatchJobStateMachine(),
        state,
        persistence,
        sampler=RenderSampler(rng=_rng(rng_value)),
        retry_policy=RetryPolicy(base_delay=0),
        **kwargs,
    )


class TestRenderSampler:
    @pytest.mark.parametrize(
        ("age", "expected"),
        [
            (timedelta(minutes=30), 1.0),
            (timedelta(hours=3), 0.5),
            (timedelta(hours=12), 0.2),
            (timedelta(hours=48), 0.05),
        ],
    )
    def test_probability_falls_with_age(self, age, expected):
        job = TestJobFactory.in_progress()

        assert RenderSampler().probability(job, T0 + age) == expected

    def test_non_in_progress_jobs_always_render(self):
        sampler = RenderSampler(rng=_rng(0.99))

        assert sampler.should_render(TestJobFactory.validating(), T0 + timedelta(days=3))
        assert sampler.should_render(TestJobFactory.completed(), T0 + timedelta(days=3))

    def test_sampling_uses_rng(self):
        job = TestJobFactory.in_progress()
        now = T0 + timedelta(hours=3)

        assert RenderSampler(rng=_rng(0.3)).should_render(job, now)
        assert not RenderSampler(rng=_rng(0.6)).should_render(job, now)


class TestApply:
    @pytest.mark.asyncio
    async def test_unknown_job_is_dropped(self, provider, state, persistence):
        engine = _engine(provider, state, persistence)

        result = await engine.apply(TestJobFactory.update(BatchJobStatus.IN_PROGRESS, T0))

        assert result is None
        persistence.save_job.assert_not_called()

    @pytest.mark.asyncio
    async def test_progress_is_persisted_even_when_render_is_skipped(
        self,
        provider,
        state,
        persistence,
    ):
        # Created in 2024, so the job is old and sampled at the floor
        job = TestJobFactory.in_progress(total=10, completed=1, last_update_at=T0)
        state.upsert_job(job)
        engine = _engine(provider, state, persistence, rng_value=0.99)

        updated = await engine.apply(
            TestJobFactory.update(BatchJobStatus.IN_PROGRESS, T0 + minutes(1), total=10, completed=4),
        )

        assert state.get_job(job.id) == updated
        assert state.rendered_job(job.id) == job
        assert engine.suppressed_renders == 1
        persistence.save_job.assert_awaited_once_with(updated)

    @pytest.mark.asyncio
    async def test_status_change_is_always_rendered(self, provider, state, persistence):
        job = TestJobFactory.validating(last_update_at=T0)
        state.upsert_job(job)
        engine = _engine(provider, state, persistence, rng_value=0.99)

        updated = await engine.apply(
            TestJobFactory.update(BatchJobStatus.IN_PROGRESS, T0 + minutes(1)),
        )

        assert state.rendered_job(job.id) == updated

    @pytest.mark.asyncio
    async def test_ignored_update_is_not_persisted(self, provider, state, persistence):
        job = TestJobFactory.in_progress(completed=1, last_update_at=T0)
        state.upsert_job(job)
        engine = _engine(provider, state, persistence)

        result = await engine.apply(
            TestJobFactory.update(BatchJobStatus.IN_PROGRESS, T0 - minutes(1), completed=2),
        )

        assert result is job
        persistence.save_job.assert_not_called()

    @pytest.mark.asyncio
    async def test_emergency_stop_suppresses_renders_but_not_terminal_ones(
        self,
        provider,
        state,
        persistence,
    ):
        job = TestJobFactory.validating(last_update_at=T0)
        state.upsert_job(job)
        state.activate_emergency_stop("too many renders")
        engine = _engine(provider, state, persistence, rng_value=0.0)

        await engine.apply(TestJobFactory.update(BatchJobStatus.IN_PROGRESS, T0 + minutes(1)))
        assert state.rendered_job(job.id) == job
        assert engine.suppressed_renders == 1

        completed = await engine.apply(
            TestJobFactory.update(BatchJobStatus.COMPLETED, T0 + minutes(2), completed=2),
        )
        assert state.rendered_job(job.id) == completed
        assert persistence.save_job.await_count == 2

    @pytest.mark.asyncio
    async def test_completion_runs_handler_in_background(self, provider, state, persistence):
        handler = AsyncMock()
        job = TestJobFactory.in_progress(last_update_at=T0)
        state.upsert_job(job)
        engine = _engine(provider, state, persistence, on_completed=handler)

        completed = await engine.apply(
            TestJobFactory.update(
                BatchJobStatus.COMPLETED,
                T0 + minutes(5),
                completed=2,
                output_file_id="file-out",
            ),
        )
        await engine.wait_for_background()

        handler.assert_awaited_once_with(completed)

    @pytest.mark.asyncio
    async def test_failed_job_does_not_run_handler(self, provider, state, persistence):
        handler = AsyncMock()
        state.upsert_job(TestJobFactory.in_progress(last_update_at=T0))
        engine = _engine(provider, state, persistence, on_completed=handler)

        await engine.apply(TestJobFactory.update(BatchJobStatus.FAILED, T0 + minutes(5)))
        await engine.wait_for_background()

        handler.assert_not_called()


class TestQueueAndPolling:
    @pytest.mark.asyncio
    async def test_push_then_drain_applies_inline(self, provider, state, persistence):
        job = TestJobFactory.in_progress(last_update_at=T0)
        state.upsert_job(job)
        engine = _engine(provider, state, persistence)

        await engine.push(TestJobFactory.update(BatchJobStatus.FINALIZING, T0 + minutes(1), completed=2))
        assert state.get_job(job.id) == job

        await engine.drain()

        assert state.get_job(job.id).status == BatchJobStatus.FINALIZING

    @pytest.mark.asyncio
    async def test_poll_once_applies_provider_status(self, provider, state, persistence):
        job = TestJobFactory.in_progress(last_update_at=T0)
        state.upsert_job(job)
        provider.statuses[job.id] = provider.update(
            job.id,
            BatchJobStatus.FINALIZING,
            completed=2,
            total=2,
        )
        engine = _engine(provider, state, persistence)

        updated = await engine.poll_once(job.id)

        assert updated.status == BatchJobStatus.FINALIZING
        assert provider.calls["get_job"] == 1

    @pytest.mark.asyncio
    async def test_polling_loop_runs_until_terminal(self, provider, state, persistence):
        job = TestJobFactory.in_progress(last_update_at=T0)
        state.upsert_job(job)
        provider.statuses[job.id] = provider.update(
            job.id,
            BatchJobStatus.COMPLETED,
            completed=2,
            total=2,
            output_file_id="file-out",
        )
        engine = _engine(provider, state, persistence, poll_interval=0)

        await engine.start()
        try:
            assert engine.running
            await _wait_until(lambda: state.get_job(job.id).is_terminal)
            await _wait_until(lambda: not engine.is_tracking(job.id))
        finally:
            await engine.stop()

        assert state.get_job(job.id).status == BatchJobStatus.COMPLETED
        assert not engine.running

    @pytest.mark.asyncio
    async def test_track_is_idempotent(self, provider, state, persistence):
        engine = _engine(provider, state, persistence, poll_interval=3600)
        state.upsert_job(TestJobFactory.in_progress())

        engine.track(TestJobFactory.JOB_ID)
        engine.track(TestJobFactory.JOB_ID)

        assert engine.is_tracking(TestJobFactory.JOB_ID)
        engine.untrack(TestJobFactory.JOB_ID)
        await asyncio.sleep(0)
        assert not engine.is_tracking(TestJobFactory.JOB_ID)
        await engine.stop()


class TestPerJobPolling:
    @staticmethod
    def _two_jobs(state) -> tuple[str, str]:
        state.upsert_job(TestJobFactory.in_progress(job_id="batch_a", last_update_at=T0))
        state.upsert_job(TestJobFactory.in_progress(job_id="batch_b", last_update_at=T0))
        return "batch_a", "batch_b"

    @pytest.mark.asyncio
    async def test_unknown_job_stops_only_its_own_polling(self, provider, state, persistence):
        job_a, job_b = self._two_jobs(state)
        provider_get_job = provider.get_job

        async def get_job(job_id):
            if job_id == job_a:
                raise ProviderJobNotFoundError(job_id)
            return await provider_get_job(job_id)

        provider.get_job = get_job
        engine = _engine(provider, state, persistence, poll_interval=0)

        await engine.start()
        try:
            await _wait_until(lambda: not engine.is_tracking(job_a))
            assert engine.is_tracking(job_b)

            provider.statuses[job_b] = provider.update(job_b, BatchJobStatus.COMPLETED, 2, 0, 2)
            await _wait_until(lambda: state.get_job(job_b).is_terminal)
        finally:
            await engine.stop()

        assert state.get_job(job_b).status == BatchJobStatus.COMPLETED
        assert state.get_job(job_a).status == BatchJobStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_untrack_leaves_other_jobs_polling(self, provider, state, persistence):
        job_a, job_b = self._two_jobs(state)
        engine = _engine(provider, state, persistence, poll_interval=0)

        await engine.start()
        try:
            engine.untrack(job_a)
            await asyncio.sleep(0)

            assert not engine.is_tracking(job_a)
            assert engine.is_tracking(job_b)

            provider.statuses[job_b] = provider.update(job_b, BatchJobStatus.FAILED)
            await _wait_until(lambda: state.get_job(job_b).is_terminal)
        finally:
            await engine.stop()

        assert state.get_job(job_b).status == BatchJobStatus.FAILED
        assert state.get_job(job_a).status == BatchJobStatus.IN_PROGRESS
        assert not engine.is_tracking(job_b)
