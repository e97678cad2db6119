"""Tests for download generation and artifact reuse."""

from dataclasses import replace
from pathlib import Path

import pytest
import pytest_asyncio

from payeebatch.application.services import export_headers
from payeebatch.application.services.export_service import artifact_key
from payeebatch.domain.batch import JobNotCompletedError
from payeebatch.domain.payees.row_mapping import OUTPUT_COLUMNS
from payeebatch.domain.shared.exceptions import EntityNotFoundError, ErrorCode, ValidationError
from tests.shared.fixtures.factories import TestJobFactory, TestRecordFactory

JOB_ID = TestJobFactory.JOB_ID


@pytest.fixture
def export_service(container):
    return container.export_service


@pytest_asyncio.fixture
async def completed_job(container):
    job = TestJobFactory.completed(total=2)
    container.state.upsert_job(job)
    await container.persistence.save_job(job)
    await container.persistence.save_classifications(
        job.id,
        TestRecordFactory.expanded_vendor_rows(),
    )
    return job


class TestExportHeaders:
    def test_original_columns_first(self):
        headers = export_headers(TestRecordFactory.expanded_vendor_rows())

        assert headers[:2] == ["Payee", "Amount"]
        assert headers[2:] == list(OUTPUT_COLUMNS)


class TestGetDownload:
    @pytest.mark.asyncio
    async def test_generates_then_reuses_artifact(self, export_service, completed_job):
        first = await export_service.get_download(JOB_ID, "csv")
        second = await export_service.get_download(JOB_ID, "CSV")

        assert first.storage_key == artifact_key(JOB_ID, "csv")
        assert first.row_count == 3
        assert first.size_bytes > 0
        assert second.generated_at == first.generated_at

    @pytest.mark.asyncio
    async def test_changed_results_regenerate_the_file(
        self,
        export_service,
        container,
        completed_job,
    ):
        _, before = await export_service.download(JOB_ID, "csv")
        rows = TestRecordFactory.expanded_vendor_rows()
        reviewed = replace(rows[1].record, reasoning="Reviewed by hand")
        await container.persistence.save_classifications(
            JOB_ID,
            [rows[0], replace(rows[1], record=reviewed), rows[2]],
        )

        artifact, after = await export_service.download(JOB_ID, "csv")

        assert b"Reviewed by hand" not in before
        assert b"Reviewed by hand" in after
        assert not artifact.is_stale

    @pytest.mark.asyncio
    async def test_missing_blob_is_regenerated(
        self,
        export_service,
        test_settings,
        completed_job,
    ):
        artifact = await export_service.get_download(JOB_ID, "csv")
        (Path(test_settings.blob_store_path) / artifact.storage_key).unlink()

        _, body = await export_service.download(JOB_ID, "csv")

        assert body.startswith(b"\xef\xbb\xbf")
        assert b"Jane Doe" in body

    @pytest.mark.asyncio
    async def test_xlsx_download(self, export_service, completed_job):
        artifact, body = await export_service.download(JOB_ID, "xlsx")

        assert artifact.storage_key.endswith(".xlsx")
        assert body[:2] == b"PK"
        assert "spreadsheetml" in export_service.content_type("xlsx")

    @pytest.mark.asyncio
    async def test_unknown_format_is_rejected(self, export_service, completed_job):
        with pytest.raises(ValidationError) as exc_info:
            await export_service.get_download(JOB_ID, "pdf")

        assert exc_info.value.code == ErrorCode.INVALID_FORMAT

    @pytest.mark.asyncio
    async def test_active_job_has_no_download(self, export_service, container):
        container.state.upsert_job(TestJobFactory.in_progress())

        with pytest.raises(JobNotCompletedError):
            await export_service.get_download(JOB_ID, "csv")

    @pytest.mark.asyncio
    async def test_completed_job_without_rows(self, export_service, container):
        container.state.upsert_job(TestJobFactory.completed())

        with pytest.raises(EntityNotFoundError) as exc_info:
            await export_service.get_download(JOB_ID, "csv")

        assert exc_info.value.code == ErrorCode.ARTIFACT_NOT_FOUND
