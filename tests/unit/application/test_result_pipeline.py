"""Tests for the consistency checks of the result pipeline."""

from dataclasses import replace
from unittest.mock import AsyncMock

import pytest

from payeebatch.application.services.result_pipeline import (
    ResultPipeline,
    check_expansion,
    check_persisted,
)
from payeebatch.domain.batch import JobNotCompletedError
from payeebatch.domain.classification import (
    ClassificationReconciler,
    IndustryCodeLostError,
)
from payeebatch.domain.classification.exceptions import RowCountMismatchError
from tests.shared.fixtures.factories import TestJobFactory, TestRecordFactory, TestUploadFactory


@pytest.fixture
def records():
    return [TestRecordFactory.business(), TestRecordFactory.individual()]


class TestCheckExpansion:
    def test_consistent_expansion_passes(self, records):
        check_expansion(
            records,
            TestUploadFactory.mapping(),
            TestRecordFactory.expanded_vendor_rows(),
        )

    def test_missing_row_is_a_count_mismatch(self, records):
        rows = TestRecordFactory.expanded_vendor_rows()[:2]

        with pytest.raises(RowCountMismatchError) as exc_info:
            check_expansion(records, TestUploadFactory.mapping(), rows)

        assert (exc_info.value.expected, exc_info.value.actual) == (3, 2)

    def test_lost_code_on_a_duplicate_row(self, records):
        rows = TestRecordFactory.expanded_vendor_rows()
        rows[2] = replace(rows[2], record=TestRecordFactory.business(sic_code=None))

        with pytest.raises(IndustryCodeLostError, match="row 2"):
            check_expansion(records, TestUploadFactory.mapping(), rows)


class TestCheckPersisted:
    def test_readback_must_keep_codes(self):
        rows = TestRecordFactory.expanded_vendor_rows()
        readback = [*rows[:2], replace(rows[2], record=TestRecordFactory.business(sic_code="7371"))]

        with pytest.raises(IndustryCodeLostError):
            check_persisted(rows, readback)

    def test_missing_readback_rows(self):
        rows = TestRecordFactory.expanded_vendor_rows()

        with pytest.raises(RowCountMismatchError, match="after persistence"):
            check_persisted(rows, rows[:1])


class TestProcess:
    @pytest.mark.asyncio
    async def test_only_completed_jobs_are_processed(self):
        provider = AsyncMock()
        pipeline = ResultPipeline(provider, ClassificationReconciler(), AsyncMock())

        with pytest.raises(JobNotCompletedError):
            await pipeline.process(TestJobFactory.in_progress(), TestUploadFactory.mapping())

        provider.get_job_results.assert_not_called()
