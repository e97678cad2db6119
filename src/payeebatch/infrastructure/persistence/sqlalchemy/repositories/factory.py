"""SQLAlchemy repository factory bound to one session."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from payeebatch.application.ports import Repositories
from payeebatch.infrastructure.persistence.sqlalchemy.repositories.batch_job_repository import (  # noqa: E501
    BatchJobRepositorySQLAlchemy,
)
from payeebatch.infrastructure.persistence.sqlalchemy.repositories.classification_row_repository import (  # noqa: E501
    ClassificationRowRepositorySQLAlchemy,
)
from payeebatch.infrastructure.persistence.sqlalchemy.repositories.download_artifact_repository import (  # noqa: E501
    DownloadArtifactRepositorySQLAlchemy,
)


class SQLAlchemyRepositoryFactory(Repositories):
    """SQLAlchemy implementation of the Repositories port."""

    def __init__(self, session: AsyncSession):
        self._session = session

        # Cached instances (created on demand)
        self._batch_job_repo: BatchJobRepositorySQLAlchemy | None = None
        self._row_repo: ClassificationRowRepositorySQLAlchemy | None = None
        self._artifact_repo: DownloadArtifactRepositorySQLAlchemy | None = None

    @property
    def session(self) -> AsyncSession:
        return self._session

    def batch_jobs(self) -> BatchJobRepositorySQLAlchemy:
        if self._batch_job_repo is None:
            self._batch_job_repo = BatchJobRepositorySQLAlchemy(self._session)
        return self._batch_job_repo

    def classification_rows(self) -> ClassificationRowRepositorySQLAlchemy:
        if self._row_repo is None:
            self._row_repo = ClassificationRowRepositorySQLAlchemy(self._session)
        return self._row_repo

    def download_artifacts(self) -> DownloadArtifactRepositorySQLAlchemy:
        if self._artifact_repo is None:
            self._artifact_repo = DownloadArtifactRepositorySQLAlchemy(self._session)
        return self._artifact_repo
