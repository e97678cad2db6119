"""Persistence of jobs, payee data and classification rows.

Writes go to the relational store first. When the store is unreachable the
payload is written to the local cache instead and a warning is returned;
``flush_pending`` replays cached payloads once the store is back.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Sequence

from payeebatch.application.dtos import DeleteReport, JobSaveResult, SaveStats
from payeebatch.application.ports import UnitOfWorkFactory
from payeebatch.application.retry import RetryPolicy
from payeebatch.domain.batch.batch_job import BatchJob
from payeebatch.domain.batch.exceptions import StoreUnavailableError
from payeebatch.domain.batch.ports import BlobStore, LocalCache
from payeebatch.domain.batch.repositories import DownloadArtifact, RowSaveStats
from payeebatch.domain.payees.row_mapping import ExpandedRow, PayeeRowData

logger = logging.getLogger(__name__)

JOBS_NAMESPACE = "jobs"
ROWS_NAMESPACE = "classifications"

_STORE_FAILURES = (StoreUnavailableError, ConnectionError, TimeoutError)


def payload_blob_key(job_id: str) -> str:
    return f"payloads/{job_id}/original_file_data.json"


class JobPersistenceService:
    """Store access for jobs and results with local-cache fallback."""

    def __init__(
        self,
        unit_of_work: UnitOfWorkFactory,
        blob_store: BlobStore,
        local_cache: LocalCache,
        retry_policy: Optional[RetryPolicy] = None,
        inline_payload_max_rows: int = 5000,
    ):
        self._uow = unit_of_work
        self._blob_store = blob_store
        self._cache = local_cache
        self._retry = retry_policy or RetryPolicy()
        self._inline_max_rows = inline_payload_max_rows

    # -------------------------------------------------------------------------
    # Jobs
    # -------------------------------------------------------------------------

    async def save_job(
        self,
        job: BatchJob,
        payee_row_data: Optional[PayeeRowData] = None,
    ) -> JobSaveResult:
        """Upsert a job (and optionally its payee data); idempotent."""
        try:
            blob_key = None
            if payee_row_data is not None and payee_row_data.row_count > self._inline_max_rows:
                blob_key = await self._offload_file_data(job.id, payee_row_data)
            await self._retry.call(
                lambda: self._write_job(job, payee_row_data, blob_key),
                description=f"save job {job.id}",
            )
        except _STORE_FAILURES as e:
            warning = f"Store unavailable, job {job.id} cached locally: {e}"
            logger.warning(warning)
            await self._cache.put(
                JOBS_NAMESPACE,
                job.id,
                {
                    "job": job.to_dict(),
                    "payeeRowData": payee_row_data.to_dict() if payee_row_data else None,
                },
            )
            return JobSaveResult(job_id=job.id, persisted=False, cached=True, warning=warning)

        return JobSaveResult(job_id=job.id, persisted=True)

    async def _offload_file_data(self, job_id: str, data: PayeeRowData) -> str:
        key = payload_blob_key(job_id)
        body = json.dumps(list(data.original_file_data), ensure_ascii=False, default=str)
        await self._retry.call(
            lambda: self._blob_store.upload(key, body.encode("utf-8"), "application/json"),
            description=f"offload payload for {job_id}",
        )
        logger.info(
            "Offloaded %d original rows of job %s to blob %s",
            data.row_count,
            job_id,
            key,
        )
        return key

    async def _write_job(
        self,
        job: BatchJob,
        payee_row_data: Optional[PayeeRowData],
        blob_key: Optional[str],
    ) -> None:
        async with self._uow() as repos:
            await repos.batch_jobs().save(job, payee_row_data, payload_blob_key=blob_key)

    async def load_job(self, job_id: str) -> Optional[BatchJob]:
        async def _load() -> Optional[BatchJob]:
            async with self._uow() as repos:
                return await repos.batch_jobs().find_by_id(job_id)

        return await self._retry.call(_load, description=f"load job {job_id}")

    async def load_jobs(self) -> list[BatchJob]:
        async def _load() -> list[BatchJob]:
            async with self._uow() as repos:
                return await repos.batch_jobs().find_all()

        return await self._retry.call(_load, description="load jobs")

    async def load_payee_row_data(self, job_id: str) -> Optional[PayeeRowData]:
        """Load payee data, pulling offloaded rows from the blob store."""

        async def _load():
            async with self._uow() as repos:
                return await repos.batch_jobs().find_payee_data(job_id)

        try:
            stored = await self._retry.call(_load, description=f"load payee data {job_id}")
        except _STORE_FAILURES:
            cached = await self._cache.get(JOBS_NAMESPACE, job_id)
            if cached and cached.get("payeeRowData"):
                logger.warning("Using locally cached payee data for job %s", job_id)
                return PayeeRowData.from_dict(cached["payeeRowData"])
            raise

        if stored is None:
            return None
        if stored.payload_blob_key and stored.original_file_data is None:
            raw = await self._retry.call(
                lambda: self._blob_store.download(stored.payload_blob_key),
                description=f"download payload {job_id}",
            )
            return stored.assemble(json.loads(raw.decode("utf-8")))
        return stored.assemble()

    # -------------------------------------------------------------------------
    # Classification rows
    # -------------------------------------------------------------------------

    async def save_classifications(
        self,
        job_id: str,
        rows: Sequence[ExpandedRow],
    ) -> SaveStats:
        """Deduplicating upsert of expanded rows.

        Industry-code problems are reported in the stats and do not fail the
        save. Generated downloads for the job are marked stale whenever a
        row was inserted or changed.
        """
        try:
            row_stats = await self._retry.call(
                lambda: self._write_rows(job_id, rows),
                description=f"save classifications {job_id}",
            )
        except _STORE_FAILURES as e:
            warning = f"Store unavailable, {len(rows)} rows of job {job_id} cached locally: {e}"
            logger.warning(warning)
            await self._cache.put(
                ROWS_NAMESPACE,
                job_id,
                {"rows": [row.to_dict() for row in rows]},
            )
            return SaveStats(job_id=job_id, cached=True, warning=warning)

        if row_stats.industry_code_errors:
            logger.warning(
                "Job %s saved with %d industry code issue(s)",
                job_id,
                len(row_stats.industry_code_errors),
            )
        if row_stats.rejected:
            logger.warning(
                "Job %s: %d malformed row(s) rejected",
                job_id,
                len(row_stats.rejected),
            )
        return SaveStats(job_id=job_id, row_stats=row_stats)

    async def _write_rows(self, job_id: str, rows: Sequence[ExpandedRow]) -> RowSaveStats:
        async with self._uow() as repos:
            stats = await repos.classification_rows().save_rows(job_id, rows)
            if stats.inserted or stats.updated:
                stale = await repos.download_artifacts().mark_stale(job_id)
                if stale:
                    logger.info("Marked %d download artifact(s) of %s stale", stale, job_id)
            return stats

    async def find_rows(self, job_id: str) -> list[ExpandedRow]:
        async def _load() -> list[ExpandedRow]:
            async with self._uow() as repos:
                return await repos.classification_rows().find_by_job(job_id)

        return await self._retry.call(_load, description=f"load rows {job_id}")

    async def count_rows(self, job_id: str) -> int:
        async def _count() -> int:
            async with self._uow() as repos:
                return await repos.classification_rows().count_by_job(job_id)

        return await self._retry.call(_count, description=f"count rows {job_id}")

    async def count_rows_by_jobs(self, job_ids: Sequence[str]) -> dict[str, int]:
        async def _count() -> dict[str, int]:
            async with self._uow() as repos:
                return await repos.classification_rows().count_by_jobs(job_ids)

        return await self._retry.call(_count, description="count rows")

    # -------------------------------------------------------------------------
    # Download artifacts
    # -------------------------------------------------------------------------

    async def find_artifact(self, job_id: str, file_format: str) -> Optional[DownloadArtifact]:
        async def _load() -> Optional[DownloadArtifact]:
            async with self._uow() as repos:
                return await repos.download_artifacts().find(job_id, file_format)

        return await self._retry.call(_load, description=f"load {file_format} artifact {job_id}")

    async def save_artifact(self, artifact: DownloadArtifact) -> None:
        async def _save() -> None:
            async with self._uow() as repos:
                await repos.download_artifacts().save(artifact)

        await self._retry.call(_save, description=f"save artifact {artifact.storage_key}")

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    async def delete_job(self, job_id: str) -> DeleteReport:
        """Remove job metadata, row mapping, rows and artifacts, in that order.

        A failing step is logged and skipped; later steps still run.
        """
        completed: list[str] = []
        failed: list[str] = []

        blob_key: Optional[str] = None
        try:
            async with self._uow() as repos:
                stored = await repos.batch_jobs().find_payee_data(job_id)
            blob_key = stored.payload_blob_key if stored else None
        except Exception as e:
            logger.warning("Could not look up payload location for %s: %s", job_id, e)

        async def _delete_job_row() -> None:
            async with self._uow() as repos:
                await repos.batch_jobs().delete(job_id)

        async def _delete_mapping() -> None:
            if blob_key:
                await self._blob_store.remove(blob_key)
            await self._cache.delete(JOBS_NAMESPACE, job_id)

        async def _delete_rows() -> None:
            async with self._uow() as repos:
                await repos.classification_rows().delete_by_job(job_id)
            await self._cache.delete(ROWS_NAMESPACE, job_id)

        async def _delete_artifacts() -> None:
            async with self._uow() as repos:
                artifacts = await repos.download_artifacts().find_by_job(job_id)
                for artifact in artifacts:
                    await self._blob_store.remove(artifact.storage_key)
                await repos.download_artifacts().delete_by_job(job_id)

        steps = (
            ("job", _delete_job_row),
            ("row_mapping", _delete_mapping),
            ("classifications", _delete_rows),
            ("artifacts", _delete_artifacts),
        )
        for name, step in steps:
            try:
                await step()
                completed.append(name)
            except Exception as e:
                logger.error("Deleting %s of job %s failed: %s", name, job_id, e)
                failed.append(name)

        if failed:
            logger.warning("Job %s partially deleted, failed steps: %s", job_id, failed)
        else:
            logger.info("Deleted job %s", job_id)
        return DeleteReport(
            job_id=job_id,
            completed_steps=tuple(completed),
            failed_steps=tuple(failed),
        )

    # -------------------------------------------------------------------------
    # Local cache replay
    # -------------------------------------------------------------------------

    async def flush_pending(self) -> int:
        """Replay cached payloads into the store; returns entries flushed.

        A cached job snapshot never overwrites a newer stored one.
        """
        flushed = 0
        for job_id in await self._cache.keys(JOBS_NAMESPACE):
            payload = await self._cache.get(JOBS_NAMESPACE, job_id)
            if payload is None:
                continue
            try:
                await self._replay_job(job_id, payload)
            except _STORE_FAILURES as e:
                logger.warning("Store still unavailable, keeping cached job %s: %s", job_id, e)
                return flushed
            await self._cache.delete(JOBS_NAMESPACE, job_id)
            flushed += 1

        for job_id in await self._cache.keys(ROWS_NAMESPACE):
            payload = await self._cache.get(ROWS_NAMESPACE, job_id)
            if payload is None:
                continue
            rows = [ExpandedRow.from_dict(r) for r in payload.get("rows", [])]
            try:
                await self._retry.call(lambda: self._write_rows(job_id, rows))
            except _STORE_FAILURES as e:
                logger.warning("Store still unavailable, keeping cached rows %s: %s", job_id, e)
                return flushed
            await self._cache.delete(ROWS_NAMESPACE, job_id)
            flushed += 1

        if flushed:
            logger.info("Flushed %d cached payload(s) to the store", flushed)
        return flushed

    async def _replay_job(self, job_id: str, payload: dict[str, Any]) -> None:
        cached_job = BatchJob.from_dict(payload["job"])
        payee_row_data = (
            PayeeRowData.from_dict(payload["payeeRowData"])
            if payload.get("payeeRowData")
            else None
        )
        stored = await self.load_job(job_id)
        job = cached_job
        if stored is not None and _is_newer_or_same(stored, cached_job):
            job = stored

        blob_key = None
        if payee_row_data is not None and payee_row_data.row_count > self._inline_max_rows:
            blob_key = await self._offload_file_data(job_id, payee_row_data)
        await self._retry.call(lambda: self._write_job(job, payee_row_data, blob_key))


def _is_newer_or_same(stored: BatchJob, cached: BatchJob) -> bool:
    if stored.last_update_at is None or cached.last_update_at is None:
        return stored.last_update_at is not None
    return stored.last_update_at >= cached.last_update_at
