"""Generation and caching of CSV/XLSX downloads for completed jobs."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Mapping, Sequence

from payeebatch.application.ports import ReportGenerator
from payeebatch.application.services.persistence_service import JobPersistenceService
from payeebatch.application.state import ApplicationState
from payeebatch.domain.batch.exceptions import BatchJobNotFoundError, JobNotCompletedError
from payeebatch.domain.batch.ports import BlobStore
from payeebatch.domain.batch.repositories import DownloadArtifact
from payeebatch.domain.batch.value_objects import BatchJobStatus
from payeebatch.domain.payees.row_mapping import OUTPUT_COLUMNS, ExpandedRow
from payeebatch.domain.shared.exceptions import (
    EntityNotFoundError,
    ErrorCode,
    ValidationError,
)
from payeebatch.domain.shared.time import utc_now

logger = logging.getLogger(__name__)


def export_headers(rows: Sequence[ExpandedRow]) -> list[str]:
    """Original columns in first-seen order, then the classification columns."""
    headers: dict[str, None] = {}
    for row in rows:
        headers.update(dict.fromkeys(row.original_data))
    for column in OUTPUT_COLUMNS:
        headers.setdefault(column, None)
    return list(headers)


def artifact_key(job_id: str, file_format: str) -> str:
    return f"downloads/{job_id}/classified_payees_{job_id}.{file_format}"


class ExportService:
    """Serves download artifacts, regenerating them when missing or stale."""

    def __init__(
        self,
        state: ApplicationState,
        persistence: JobPersistenceService,
        blob_store: BlobStore,
        generators: Mapping[str, ReportGenerator],
    ):
        self._state = state
        self._persistence = persistence
        self._blob_store = blob_store
        self._generators = dict(generators)

    @property
    def formats(self) -> list[str]:
        return sorted(self._generators)

    def content_type(self, file_format: str) -> str:
        return self._generator(file_format).content_type

    def _generator(self, file_format: str) -> ReportGenerator:
        generator = self._generators.get(file_format.lower())
        if generator is None:
            raise ValidationError(
                f"Unsupported download format {file_format!r}",
                code=ErrorCode.INVALID_FORMAT,
                details={"supported": self.formats},
            )
        return generator

    async def get_download(self, job_id: str, file_format: str) -> DownloadArtifact:
        """Return a fresh artifact for the job, generating it if needed.

        Raises
        ------
        ValidationError
            Unknown format.
        BatchJobNotFoundError
            Unknown job.
        JobNotCompletedError
            The job has not completed.
        EntityNotFoundError
            The job completed but no classification rows are stored.
        """
        generator = self._generator(file_format)
        file_format = generator.file_format

        job = self._state.get_job(job_id) or await self._persistence.load_job(job_id)
        if job is None:
            raise BatchJobNotFoundError(job_id)
        if job.status != BatchJobStatus.COMPLETED:
            raise JobNotCompletedError(job_id, job.status)

        artifact = await self._persistence.find_artifact(job_id, file_format)
        if artifact is not None and not artifact.is_stale:
            return artifact

        rows = await self._persistence.find_rows(job_id)
        if not rows:
            raise EntityNotFoundError(
                f"No results stored for batch job {job_id!r}",
                code=ErrorCode.ARTIFACT_NOT_FOUND,
                details={"job_id": job_id, "suggested_action": "ensure-results"},
            )

        body = generator.generate(export_headers(rows), rows)
        key = artifact_key(job_id, file_format)
        url = await self._blob_store.upload(key, body, generator.content_type)
        artifact = DownloadArtifact(
            job_id=job_id,
            file_format=file_format,
            storage_key=key,
            url=url,
            size_bytes=len(body),
            generated_at=utc_now(),
            row_count=len(rows),
        )
        await self._persistence.save_artifact(artifact)
        logger.info(
            "Generated %s download for %s (%d rows, %d bytes)",
            file_format,
            job_id,
            len(rows),
            len(body),
        )
        return artifact

    async def read(self, artifact: DownloadArtifact) -> bytes:
        return await self._blob_store.download(artifact.storage_key)

    async def download(self, job_id: str, file_format: str) -> tuple[DownloadArtifact, bytes]:
        """Artifact plus its bytes; a vanished blob triggers one regeneration."""
        artifact = await self.get_download(job_id, file_format)
        try:
            return artifact, await self.read(artifact)
        except FileNotFoundError:
            logger.warning("Artifact %s missing from blob store, regenerating", artifact.storage_key)
        await self._persistence.save_artifact(replace(artifact, is_stale=True))
        artifact = await self.get_download(job_id, file_format)
        return artifact, await self.read(artifact)
