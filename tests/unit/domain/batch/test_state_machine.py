"""Tests for the batch job lifecycle rules."""

import pytest

from payeebatch.domain.batch import (
    BatchJobStateMachine,
    BatchJobStatus,
    InvalidTransitionError,
    RequestCounts,
)
from payeebatch.domain.shared.exceptions import ErrorCode, ValidationError
from tests.shared.fixtures.factories import T0, TestJobFactory, minutes


@pytest.fixture
def machine() -> BatchJobStateMachine:
    return BatchJobStateMachine()


class TestCreate:
    def test_new_job_is_validating(self, machine):
        job = machine.create("batch_abc", ["Acme Inc", "Jane Doe"], "March", now=T0)

        assert job.status == BatchJobStatus.VALIDATING
        assert job.request_counts == RequestCounts(total=2)
        assert job.payee_count == 2
        assert job.validating_at == T0
        assert job.last_update_at is None

    def test_empty_payee_set_is_rejected(self, machine):
        with pytest.raises(ValidationError) as exc_info:
            machine.create("batch_abc", [], now=T0)

        assert exc_info.value.code == ErrorCode.EMPTY_PAYEE_SET

    def test_empty_id_is_rejected(self, machine):
        with pytest.raises(ValidationError):
            machine.create("", ["Acme Inc"], now=T0)


class TestApplyStatusUpdate:
    """Monotonic application of remote observations."""

    def test_progress_update_is_applied(self, machine):
        job = TestJobFactory.in_progress(total=10, completed=2, last_update_at=T0)

        updated = machine.apply_status_update(
            job,
            TestJobFactory.update(BatchJobStatus.IN_PROGRESS, T0 + minutes(1), total=10, completed=5),
        )

        assert updated.request_counts.completed == 5
        assert updated.last_update_at == T0 + minutes(1)

    def test_stale_update_is_ignored(self, machine):
        job = TestJobFactory.in_progress(total=10, completed=5, last_update_at=T0)

        result = machine.apply_status_update(
            job,
            TestJobFactory.update(BatchJobStatus.FINALIZING, T0 - minutes(1), total=10, completed=9),
        )

        assert result is job

    def test_counter_regression_is_ignored(self, machine):
        job = TestJobFactory.in_progress(total=10, completed=5, last_update_at=T0)

        result = machine.apply_status_update(
            job,
            TestJobFactory.update(BatchJobStatus.IN_PROGRESS, T0 + minutes(1), total=10, completed=3),
        )

        assert result is job

    def test_terminal_state_is_never_left(self, machine):
        job = TestJobFactory.completed(total=2, last_update_at=T0)

        result = machine.apply_status_update(
            job,
            TestJobFactory.update(BatchJobStatus.IN_PROGRESS, T0 + minutes(5), completed=2),
        )

        assert result is job

    def test_backward_transition_is_ignored(self, machine):
        job = TestJobFactory.job(status=BatchJobStatus.FINALIZING, completed=2, last_update_at=T0)

        result = machine.apply_status_update(
            job,
            TestJobFactory.update(BatchJobStatus.IN_PROGRESS, T0 + minutes(1), completed=2),
        )

        assert result is job

    def test_forward_skip_is_allowed(self, machine):
        job = TestJobFactory.validating(last_update_at=T0)

        updated = machine.apply_status_update(
            job,
            TestJobFactory.update(
                BatchJobStatus.COMPLETED,
                T0 + minutes(30),
                completed=2,
                output_file_id="file-out",
            ),
        )

        assert updated.status == BatchJobStatus.COMPLETED
        assert updated.completed_at == T0 + minutes(30)
        assert updated.output_file_id == "file-out"

    def test_identical_observation_is_a_no_op(self, machine):
        job = TestJobFactory.in_progress(completed=1, last_update_at=T0)

        result = machine.apply_status_update(
            job,
            TestJobFactory.update(BatchJobStatus.IN_PROGRESS, T0 + minutes(1), completed=1),
        )

        assert result is job

    def test_provider_timestamps_are_set_once(self, machine):
        job = TestJobFactory.in_progress(last_update_at=T0)
        reported = T0 - minutes(10)

        updated = machine.apply_status_update(
            job,
            TestJobFactory.update(
                BatchJobStatus.FINALIZING,
                T0 + minutes(1),
                completed=2,
                timestamps={
                    BatchJobStatus.IN_PROGRESS: reported,
                    BatchJobStatus.FINALIZING: T0 + minutes(1),
                },
            ),
        )

        # in_progress_at was already recorded by the earlier snapshot
        assert updated.in_progress_at == T0
        assert updated.finalizing_at == T0 + minutes(1)

    def test_zero_total_keeps_known_total(self, machine):
        job = TestJobFactory.in_progress(total=7, last_update_at=T0)

        updated = machine.apply_status_update(
            job,
            TestJobFactory.update(BatchJobStatus.IN_PROGRESS, T0 + minutes(1), total=0, completed=1),
        )

        assert updated.request_counts.total == 7

    def test_update_for_other_job_is_rejected(self, machine):
        job = TestJobFactory.in_progress()

        with pytest.raises(ValidationError):
            machine.apply_status_update(
                job,
                TestJobFactory.update(BatchJobStatus.IN_PROGRESS, T0, job_id="batch_other"),
            )


class TestTransition:
    def test_local_transition_sets_timestamp_and_error(self, machine):
        job = TestJobFactory.in_progress(last_update_at=T0)

        updated = machine.transition(
            job,
            BatchJobStatus.CANCELLED,
            now=T0 + minutes(2),
            error="Replaced by batch_new",
        )

        assert updated.status == BatchJobStatus.CANCELLED
        assert updated.cancelled_at == T0 + minutes(2)
        assert updated.errors == ("Replaced by batch_new",)

    def test_invalid_transition_raises(self, machine):
        job = TestJobFactory.completed()

        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.transition(job, BatchJobStatus.CANCELLED)

        assert exc_info.value.code == ErrorCode.INVALID_TRANSITION

    def test_record_error_is_idempotent(self, machine):
        job = TestJobFactory.completed()

        once = machine.record_error(job, "Industry code lost")

        assert machine.record_error(once, "Industry code lost") is once
        assert once.status == BatchJobStatus.COMPLETED


class TestStatusRules:
    @pytest.mark.parametrize("status", list(BatchJobStatus))
    def test_terminal_states_have_no_exits(self, status):
        if status.is_terminal:
            assert not any(status.can_transition_to(t) for t in BatchJobStatus)

    def test_cancelling_can_still_complete(self):
        assert BatchJobStatus.CANCELLING.can_transition_to(BatchJobStatus.COMPLETED)
        assert not BatchJobStatus.CANCELLING.can_transition_to(BatchJobStatus.IN_PROGRESS)
