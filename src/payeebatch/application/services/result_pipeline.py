"""Download, reconcile, expand and persist the results of a completed job."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from payeebatch.application.dtos import PipelineResult
from payeebatch.application.retry import RetryPolicy
from payeebatch.application.services.persistence_service import JobPersistenceService
from payeebatch.domain.batch.batch_job import BatchJob
from payeebatch.domain.batch.exceptions import JobNotCompletedError
from payeebatch.domain.batch.ports import BatchClassificationProvider
from payeebatch.domain.batch.value_objects import BatchJobStatus
from payeebatch.domain.classification.exceptions import RowCountMismatchError
from payeebatch.domain.classification.industry_codes import ensure_code_preserved
from payeebatch.domain.classification.reconciler import ClassificationReconciler
from payeebatch.domain.classification.value_objects import ClassificationRecord
from payeebatch.domain.payees.row_mapper import ProgressCallback, expand_chunked
from payeebatch.domain.payees.row_mapping import ExpandedRow, PayeeRowData

logger = logging.getLogger(__name__)


def check_expansion(
    records: Sequence[ClassificationRecord],
    payee_row_data: PayeeRowData,
    expanded: Sequence[ExpandedRow],
) -> None:
    """Row count and industry codes must survive expansion unchanged."""
    if len(expanded) != payee_row_data.row_count:
        raise RowCountMismatchError(payee_row_data.row_count, len(expanded))
    for row in expanded:
        unique_index = row.mapping.unique_payee_index
        before = records[unique_index].sic_code if unique_index < len(records) else None
        ensure_code_preserved(
            before,
            row.record.sic_code,
            stage="expansion",
            payee_name=row.mapping.payee_name,
            row_index=row.row_index,
        )


def check_persisted(
    expanded: Sequence[ExpandedRow],
    persisted: Sequence[ExpandedRow],
) -> None:
    """Every industry code written must read back identically."""
    if len(persisted) != len(expanded):
        raise RowCountMismatchError(len(expanded), len(persisted), stage="persistence")
    stored = {row.row_index: row for row in persisted}
    for row in expanded:
        readback = stored.get(row.row_index)
        ensure_code_preserved(
            row.record.sic_code,
            readback.record.sic_code if readback else None,
            stage="persistence",
            payee_name=row.mapping.payee_name,
            row_index=row.row_index,
        )


class ResultPipeline:
    """Turns a completed remote job into persisted per-row results.

    Consistency errors (lost industry code, row-count mismatch) propagate
    and abort the job's completion; nothing is reported as done unless every
    check passed.
    """

    def __init__(
        self,
        provider: BatchClassificationProvider,
        reconciler: ClassificationReconciler,
        persistence: JobPersistenceService,
        retry_policy: Optional[RetryPolicy] = None,
        chunk_size: Optional[int] = None,
    ):
        self._provider = provider
        self._reconciler = reconciler
        self._persistence = persistence
        self._retry = retry_policy or RetryPolicy()
        self._chunk_size = chunk_size or None

    async def fetch_records(
        self,
        job: BatchJob,
        payee_row_data: PayeeRowData,
    ) -> list[ClassificationRecord]:
        names = list(payee_row_data.unique_payee_names)
        raw_results = await self._retry.call(
            lambda: self._provider.get_job_results(job, names),
            description=f"download results of {job.id}",
        )
        return self._reconciler.reconcile_batch(raw_results, names)

    async def process(
        self,
        job: BatchJob,
        payee_row_data: PayeeRowData,
        on_progress: Optional[ProgressCallback] = None,
    ) -> PipelineResult:
        if job.status != BatchJobStatus.COMPLETED:
            raise JobNotCompletedError(job.id, job.status)

        records = await self.fetch_records(job, payee_row_data)
        return await self.persist_records(job.id, records, payee_row_data, on_progress)

    async def persist_records(
        self,
        job_id: str,
        records: Sequence[ClassificationRecord],
        payee_row_data: PayeeRowData,
        on_progress: Optional[ProgressCallback] = None,
    ) -> PipelineResult:
        """Expand unique records onto all rows, verify and save them."""
        expanded = await expand_chunked(
            records,
            payee_row_data,
            chunk_size=self._chunk_size,
            on_progress=on_progress,
        )
        check_expansion(records, payee_row_data, expanded)

        stats = await self._persistence.save_classifications(job_id, expanded)
        if not stats.cached:
            persisted = await self._persistence.find_rows(job_id)
            check_persisted(expanded, persisted)

        result = PipelineResult(
            job_id=job_id,
            row_count=len(expanded),
            unique_count=len(records),
            failed_payees=sum(1 for r in records if r.failed),
            placeholder_rows=sum(1 for r in expanded if r.is_placeholder),
            save_stats=stats,
        )
        logger.info(
            "Job %s results stored: %d rows from %d unique payees (%d failed)",
            job_id,
            result.row_count,
            result.unique_count,
            result.failed_payees,
        )
        return result
