"""Application ports implemented by infrastructure."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Sequence

from payeebatch.domain.batch.repositories import (
    BatchJobRepository,
    ClassificationRowRepository,
    DownloadArtifactRepository,
)
from payeebatch.domain.payees.row_mapping import ExpandedRow


class Repositories(ABC):
    """Repositories bound to one store session."""

    @abstractmethod
    def batch_jobs(self) -> BatchJobRepository:
        pass

    @abstractmethod
    def classification_rows(self) -> ClassificationRowRepository:
        pass

    @abstractmethod
    def download_artifacts(self) -> DownloadArtifactRepository:
        pass


class ReportGenerator(ABC):
    """Renders expanded rows into a downloadable file."""

    file_format: str
    content_type: str

    @abstractmethod
    def generate(self, headers: Sequence[str], rows: Sequence[ExpandedRow]) -> bytes:
        pass


class UnitOfWorkFactory(ABC):
    """Opens a store session; commits on success, rolls back on error.

    Connection failures surface as ``StoreUnavailableError``.
    """

    @abstractmethod
    def __call__(self) -> AbstractAsyncContextManager[Repositories]:
        pass
