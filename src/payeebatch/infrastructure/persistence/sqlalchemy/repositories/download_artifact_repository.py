"""SQLAlchemy implementation of DownloadArtifactRepository."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from payeebatch.domain.batch.repositories import DownloadArtifact, DownloadArtifactRepository
from payeebatch.domain.shared.time import ensure_tz_aware
from payeebatch.infrastructure.persistence.sqlalchemy.models import DownloadArtifactModel


class DownloadArtifactRepositorySQLAlchemy(DownloadArtifactRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def save(self, artifact: DownloadArtifact) -> None:
        model = await self._find_model(artifact.job_id, artifact.file_format)
        if model is None:
            model = DownloadArtifactModel(
                batch_id=artifact.job_id,
                file_format=artifact.file_format,
            )
            self._session.add(model)

        model.storage_key = artifact.storage_key
        model.url = artifact.url
        model.size_bytes = artifact.size_bytes
        model.row_count = artifact.row_count
        model.generated_at = artifact.generated_at
        model.is_stale = artifact.is_stale
        await self._session.flush()

    async def find(self, job_id: str, file_format: str) -> Optional[DownloadArtifact]:
        model = await self._find_model(job_id, file_format)
        return self._model_to_domain(model) if model else None

    async def find_by_job(self, job_id: str) -> list[DownloadArtifact]:
        stmt = select(DownloadArtifactModel).where(DownloadArtifactModel.batch_id == job_id)
        result = await self._session.execute(stmt)
        return [self._model_to_domain(m) for m in result.scalars().all()]

    async def mark_stale(self, job_id: str) -> int:
        result = await self._session.execute(
            update(DownloadArtifactModel)
            .where(
                DownloadArtifactModel.batch_id == job_id,
                DownloadArtifactModel.is_stale.is_(False),
            )
            .values(is_stale=True),
        )
        return result.rowcount or 0

    async def delete_by_job(self, job_id: str) -> int:
        result = await self._session.execute(
            delete(DownloadArtifactModel).where(DownloadArtifactModel.batch_id == job_id),
        )
        await self._session.flush()
        return result.rowcount or 0

    async def _find_model(self, job_id: str, file_format: str) -> Optional[DownloadArtifactModel]:
        stmt = select(DownloadArtifactModel).where(
            DownloadArtifactModel.batch_id == job_id,
            DownloadArtifactModel.file_format == file_format,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _model_to_domain(model: DownloadArtifactModel) -> DownloadArtifact:
        return DownloadArtifact(
            job_id=model.batch_id,
            file_format=model.file_format,
            storage_key=model.storage_key,
            url=model.url,
            size_bytes=model.size_bytes,
            generated_at=ensure_tz_aware(model.generated_at),
            row_count=model.row_count,
            is_stale=model.is_stale,
        )
