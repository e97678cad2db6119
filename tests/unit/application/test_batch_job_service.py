"""Tests for BatchJobService: create, cancel, recover, results and delete.

Services are wired by the ``container`` fixture on in-memory SQLite with a
scripted provider.
"""

import pytest

from payeebatch.application.services import RecoveryMode
from payeebatch.domain.batch import (
    BatchJobNotFoundError,
    BatchJobStatus,
    ProviderAuthError,
    ProviderError,
    ProviderJobNotFoundError,
    ProviderUnavailableError,
)
from payeebatch.domain.classification import Classification
from payeebatch.domain.classification.local_classifier import LOCAL_PROCESSING_METHOD
from payeebatch.domain.shared.exceptions import ErrorCode, ValidationError
from tests.shared.fixtures.factories import TestJobFactory, TestUploadFactory

PROVIDER_RESULTS = {
    0: {
        "classification": "Business",
        "confidence": 92,
        "reasoning": "Corporate suffix",
        "sicCode": "7372",
        "sicDescription": "Prepackaged Software",
    },
    1: {"classification": "Individual", "confidence": 88, "reasoning": "Personal name"},
}


@pytest.fixture
def job_service(container):
    return container.job_service


async def _create(job_service):
    return await job_service.create_job(
        TestUploadFactory.vendor_rows(),
        description="March vendors",
        file_name="vendors.csv",
    )


class TestCreateJob:
    @pytest.mark.asyncio
    async def test_submits_unique_payees_and_tracks_job(
        self,
        job_service,
        container,
        fake_provider,
    ):
        job = await _create(job_service)

        assert job.id == TestJobFactory.JOB_ID
        assert job.status == BatchJobStatus.VALIDATING
        assert job.payee_count == 2
        assert job.metadata["payee_column"] == "Payee"
        assert job.metadata["row_count"] == 3
        assert fake_provider.created == [(job.id, ["Acme Inc", "Jane Doe"])]
        assert container.sync_engine.is_tracking(job.id)

        stored = await container.persistence.load_payee_row_data(job.id)
        assert stored.row_count == 3
        assert await container.persistence.load_job(job.id) is not None

    @pytest.mark.asyncio
    async def test_undetectable_column_is_rejected(self, job_service, fake_provider):
        with pytest.raises(ValidationError) as exc_info:
            await job_service.create_job([{"Amount": "10.00", "Memo": "x"}])

        assert exc_info.value.code == ErrorCode.MISSING_PAYEE_COLUMN
        assert fake_provider.created == []

    @pytest.mark.asyncio
    async def test_empty_upload_is_rejected(self, job_service):
        with pytest.raises(ValidationError) as exc_info:
            await job_service.create_job([], payee_column="Payee")

        assert exc_info.value.code == ErrorCode.EMPTY_PAYEE_SET

    @pytest.mark.asyncio
    async def test_transient_create_failure_is_retried(self, job_service, fake_provider):
        fake_provider.fail("create_job", ProviderUnavailableError("timeout"))

        job = await _create(job_service)

        assert job.id == TestJobFactory.JOB_ID
        assert fake_provider.calls["create_job"] == 2


class TestCancelJob:
    @pytest.mark.asyncio
    async def test_accepted_cancel_moves_to_cancelling(self, job_service):
        job = await _create(job_service)

        result = await job_service.cancel_job(job.id)

        assert result.success
        assert result.message == "Cancellation requested"
        assert job_service.get_job(job.id).status == BatchJobStatus.CANCELLING

    @pytest.mark.asyncio
    async def test_retries_then_reports_failure_without_state_change(
        self,
        job_service,
        fake_provider,
    ):
        job = await _create(job_service)
        fake_provider.fail(
            "cancel_job",
            ProviderUnavailableError("rate limited"),
            ProviderUnavailableError("rate limited"),
            ProviderUnavailableError("rate limited"),
        )

        result = await job_service.cancel_job(job.id)

        assert not result.success
        assert result.message == "Cancellation failed: rate limited"
        assert fake_provider.calls["cancel_job"] == 3
        assert job_service.get_job(job.id).status == BatchJobStatus.VALIDATING

    @pytest.mark.asyncio
    async def test_terminal_job_cannot_be_cancelled(self, job_service, container):
        container.state.upsert_job(TestJobFactory.completed())

        result = await job_service.cancel_job(TestJobFactory.JOB_ID)

        assert not result.success
        assert result.message == "Job is already completed"

    @pytest.mark.asyncio
    async def test_phantom_job_suggests_cleanup(self, job_service, fake_provider):
        job = await _create(job_service)
        fake_provider.fail("cancel_job", ProviderJobNotFoundError(job.id))

        result = await job_service.cancel_job(job.id)

        assert not result.success
        assert "phantom" in result.suggested_action

    @pytest.mark.asyncio
    async def test_unknown_job_raises(self, job_service):
        with pytest.raises(BatchJobNotFoundError):
            await job_service.cancel_job("batch_missing")


class TestRecoverJob:
    @pytest.mark.asyncio
    async def test_local_processing_completes_job(self, job_service, container):
        job = await _create(job_service)

        result = await job_service.recover_job(job.id, RecoveryMode.LOCAL)

        assert result.success
        assert result.message == "Processed 2 payees locally (3 rows)"
        recovered = job_service.get_job(job.id)
        assert recovered.status == BatchJobStatus.COMPLETED
        assert recovered.metadata["processing_method"] == LOCAL_PROCESSING_METHOD
        assert not container.sync_engine.is_tracking(job.id)
        assert await container.persistence.count_rows(job.id) == 3

    @pytest.mark.asyncio
    async def test_local_processing_keeps_progress_observed_during_cancel(
        self,
        job_service,
        container,
        fake_provider,
    ):
        job = await _create(job_service)
        provider_cancel = fake_provider.cancel_job

        async def cancel_after_progress(job_id):
            await container.sync_engine.apply(
                fake_provider.update(job_id, BatchJobStatus.IN_PROGRESS, completed=1, total=2),
            )
            return await provider_cancel(job_id)

        fake_provider.cancel_job = cancel_after_progress

        result = await job_service.recover_job(job.id, RecoveryMode.LOCAL)

        assert result.success
        recovered = job_service.get_job(job.id)
        assert recovered.status == BatchJobStatus.COMPLETED
        assert recovered.in_progress_at is not None
        assert recovered.request_counts.completed == 1
        assert recovered.metadata["processing_method"] == LOCAL_PROCESSING_METHOD
        assert (await container.persistence.load_job(job.id)).in_progress_at is not None

    @pytest.mark.asyncio
    async def test_auto_falls_back_to_local_when_provider_refuses(
        self,
        job_service,
        fake_provider,
    ):
        job = await _create(job_service)
        fake_provider.fail("create_job", ProviderAuthError("invalid api key"))

        result = await job_service.recover_job(job.id, RecoveryMode.AUTO)

        assert result.success
        assert "locally" in result.message
        assert len(fake_provider.created) == 1

    @pytest.mark.asyncio
    async def test_recreate_replaces_job(self, job_service, container, fake_provider):
        job = await _create(job_service)

        result = await job_service.recover_job(job.id, RecoveryMode.RECREATE)

        assert result.success
        assert result.message == "Job recreated as batch_001"
        new_job = job_service.get_job("batch_001")
        assert new_job.metadata["recovered_from"] == job.id
        assert container.sync_engine.is_tracking("batch_001")

        old = job_service.get_job(job.id)
        assert old.status == BatchJobStatus.CANCELLED
        assert old.metadata["replaced_reason"] == "Replaced by batch_001"
        assert fake_provider.created[-1] == ("batch_001", ["Acme Inc", "Jane Doe"])

    @pytest.mark.asyncio
    async def test_recreate_failure_is_reported(self, job_service, fake_provider):
        job = await _create(job_service)
        fake_provider.fail("create_job", ProviderAuthError("invalid api key"))

        result = await job_service.recover_job(job.id, RecoveryMode.RECREATE)

        assert not result.success
        assert result.message == "Could not recreate job: invalid api key"
        assert job_service.get_job(job.id).status == BatchJobStatus.VALIDATING

    @pytest.mark.asyncio
    async def test_completed_job_is_not_recovered(self, job_service, container):
        container.state.upsert_job(TestJobFactory.completed())

        result = await job_service.recover_job(TestJobFactory.JOB_ID)

        assert not result.success
        assert result.message == "Job already completed"


class TestHandleCompleted:
    @pytest.mark.asyncio
    async def test_results_are_expanded_and_stored(self, job_service, container, fake_provider):
        job = await _create(job_service)
        fake_provider.results = PROVIDER_RESULTS

        await job_service.handle_completed(job)

        rows = await container.persistence.find_rows(job.id)
        assert [row.row_index for row in rows] == [0, 1, 2]
        assert rows[1].record.classification == Classification.INDIVIDUAL
        assert rows[0].record.sic_code == "7372"
        assert rows[2].record.sic_code == "7372"
        assert rows[2].original_data["Amount"] == "7.50"

    @pytest.mark.asyncio
    async def test_failure_is_recorded_on_job(self, job_service, fake_provider):
        job = await _create(job_service)
        fake_provider.fail("get_job_results", ProviderError("output file missing"))

        await job_service.handle_completed(job)

        errors = job_service.get_job(job.id).errors
        assert errors == ("Results could not be processed: output file missing",)

    @pytest.mark.asyncio
    async def test_job_deleted_during_download_is_discarded(
        self,
        job_service,
        container,
        fake_provider,
    ):
        job = await _create(job_service)
        payee_data = await job_service.payee_data(job.id)
        container.state.remove_job(job.id)
        container.state.set_payee_data(job.id, payee_data)
        fake_provider.results = PROVIDER_RESULTS

        await job_service.handle_completed(job)

        assert await container.persistence.count_rows(job.id) == 0


class TestDeleteAndResume:
    @pytest.mark.asyncio
    async def test_delete_removes_job_everywhere(self, job_service, container):
        job = await _create(job_service)

        result = await job_service.delete_job(job.id)

        assert result.success
        assert result.message == "Job deleted"
        assert not container.state.has_job(job.id)
        assert not container.sync_engine.is_tracking(job.id)
        assert await container.persistence.load_job(job.id) is None

    @pytest.mark.asyncio
    async def test_resume_loads_stored_jobs_and_tracks_active_ones(
        self,
        job_service,
        container,
    ):
        active = TestJobFactory.in_progress(job_id="batch_active")
        done = TestJobFactory.completed(job_id="batch_done")
        await container.persistence.save_job(active)
        await container.persistence.save_job(done)

        count = await job_service.resume()

        assert count == 2
        assert container.state.has_job("batch_done")
        assert container.sync_engine.is_tracking("batch_active")
        assert not container.sync_engine.is_tracking("batch_done")
