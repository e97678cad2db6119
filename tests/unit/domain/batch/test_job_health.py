"""Tests for stuck and stalled job detection."""

from datetime import timedelta

import pytest

from payeebatch.domain.batch import BatchJob, BatchJobStatus, HealthFlag, JobHealthPolicy
from tests.shared.fixtures.factories import T0, TestJobFactory


def hours(n: float) -> timedelta:
    return timedelta(hours=n)


@pytest.fixture
def policy() -> JobHealthPolicy:
    return JobHealthPolicy(
        queue_timeout=hours(4),
        stall_timeout=hours(6),
        stall_progress_ratio=0.10,
        auto_cancel_after=hours(24),
    )


class TestJobHealthPolicy:
    def test_young_job_is_healthy(self, policy):
        health = policy.assess(TestJobFactory.in_progress(total=10), T0 + hours(1))

        assert health.healthy
        assert health.message is None

    def test_queued_too_long_is_advisory_only(self, policy):
        job = TestJobFactory.in_progress(total=10, completed=0)

        health = policy.assess(job, T0 + hours(5))

        assert health.flags == frozenset({HealthFlag.QUEUED_TOO_LONG})
        assert not health.should_auto_cancel
        assert "No progress after 5.0h" in health.message

    def test_slow_job_is_possibly_stalled(self, policy):
        job = TestJobFactory.in_progress(total=100, completed=5)

        health = policy.assess(job, T0 + hours(7))

        assert health.flags == frozenset({HealthFlag.POSSIBLY_STALLED})
        assert "consider cancelling" in health.message

    def test_progressing_job_is_not_stalled(self, policy):
        job = TestJobFactory.in_progress(total=100, completed=50)

        assert policy.assess(job, T0 + hours(7)).healthy

    def test_auto_cancel_only_past_the_ceiling(self, policy):
        job = TestJobFactory.in_progress(total=10, completed=0)

        assert not policy.assess(job, T0 + hours(23)).should_auto_cancel
        health = policy.assess(job, T0 + hours(25))
        assert health.should_auto_cancel
        assert HealthFlag.QUEUED_TOO_LONG in health.flags

    def test_auto_cancel_can_be_disabled(self):
        policy = JobHealthPolicy(auto_cancel_after=None)

        job = TestJobFactory.in_progress(total=10)

        assert not policy.assess(job, T0 + hours(100)).should_auto_cancel

    @pytest.mark.parametrize(
        "status",
        [BatchJobStatus.COMPLETED, BatchJobStatus.FAILED, BatchJobStatus.CANCELLING],
    )
    def test_terminal_and_cancelling_jobs_are_not_flagged(self, policy, status):
        job = TestJobFactory.job(status=status, total=10, completed=0)

        assert policy.assess(job, T0 + hours(48)).healthy

    def test_invalid_thresholds(self):
        with pytest.raises(ValueError):
            JobHealthPolicy(stall_progress_ratio=0)
        with pytest.raises(ValueError):
            JobHealthPolicy(queue_timeout=hours(4), auto_cancel_after=hours(2))


class TestSuggestedPollDelay:
    @pytest.mark.parametrize(
        ("age", "completed", "expected"),
        [
            (timedelta(minutes=10), 1, timedelta(seconds=15)),
            (timedelta(minutes=10), 0, timedelta(seconds=45)),
            (hours(3), 0, timedelta(minutes=2)),
            (hours(13), 0, timedelta(minutes=10)),
            (hours(13), 4, timedelta(minutes=5)),
            (hours(30), 4, timedelta(minutes=10)),
        ],
    )
    def test_cadence_slows_with_age(self, age, completed, expected):
        job = TestJobFactory.in_progress(total=10, completed=completed)

        assert JobHealthPolicy.suggested_poll_delay(job, T0 + age) == expected


class TestBatchJob:
    def test_dict_round_trip(self):
        job = TestJobFactory.completed(
            total=3,
            last_update_at=T0 + hours(1),
            errors=("late result",),
            metadata={"file_name": "vendors.csv"},
        )

        assert BatchJob.from_dict(job.to_dict()) == job

    def test_timestamp_is_set_once(self):
        job = TestJobFactory.in_progress()

        assert job.with_timestamp(BatchJobStatus.IN_PROGRESS, T0 + hours(1)) is job

    def test_terminal_at(self):
        assert TestJobFactory.in_progress().terminal_at() is None
        assert TestJobFactory.completed(last_update_at=T0 + hours(2)).terminal_at() == T0 + hours(2)
