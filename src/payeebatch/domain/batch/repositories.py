"""Repository interfaces for batch jobs, classification rows and artifacts."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Sequence

from payeebatch.domain.batch.batch_job import BatchJob
from payeebatch.domain.payees.row_mapping import ExpandedRow, PayeeRowData


@dataclass(frozen=True)
class StoredPayeeData:
    """Payee data as persisted next to a job.

    ``original_file_data`` is None when the rows were offloaded to the blob
    store under ``payload_blob_key``.
    """

    mapping: dict[str, Any]
    original_file_data: Optional[list[dict[str, Any]]] = None
    payload_blob_key: Optional[str] = None

    def assemble(
        self,
        original_file_data: Optional[list[dict[str, Any]]] = None,
    ) -> PayeeRowData:
        rows = original_file_data if original_file_data is not None else self.original_file_data
        return PayeeRowData.from_dict(self.mapping, original_file_data=rows or [])


@dataclass
class RowSaveStats:
    """Outcome of one classification-row save."""

    attempted: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    duplicates_skipped: int = 0
    rejected: list[tuple[int, str]] = field(default_factory=list)
    industry_code_errors: list[str] = field(default_factory=list)

    @property
    def saved(self) -> int:
        return self.inserted + self.updated + self.unchanged


class BatchJobRepository(ABC):
    @abstractmethod
    async def save(
        self,
        job: BatchJob,
        payee_row_data: Optional[PayeeRowData] = None,
        payload_blob_key: Optional[str] = None,
    ) -> None:
        """Upsert by job id. Payee data is only written when provided."""

    @abstractmethod
    async def find_by_id(self, job_id: str) -> Optional[BatchJob]:
        pass

    @abstractmethod
    async def find_all(self) -> list[BatchJob]:
        pass

    @abstractmethod
    async def find_payee_data(self, job_id: str) -> Optional[StoredPayeeData]:
        pass

    @abstractmethod
    async def delete(self, job_id: str) -> bool:
        pass


class ClassificationRowRepository(ABC):
    @abstractmethod
    async def save_rows(
        self,
        job_id: str,
        rows: Sequence[ExpandedRow],
    ) -> RowSaveStats:
        """Upsert rows keyed by (job_id, row_index); identical rows are no-ops."""

    @abstractmethod
    async def find_by_job(self, job_id: str) -> list[ExpandedRow]:
        pass

    @abstractmethod
    async def count_by_job(self, job_id: str) -> int:
        pass

    @abstractmethod
    async def count_by_jobs(self, job_ids: Sequence[str]) -> dict[str, int]:
        pass

    @abstractmethod
    async def delete_by_job(self, job_id: str) -> int:
        pass


@dataclass(frozen=True)
class DownloadArtifact:
    """Generated export file for a job."""

    job_id: str
    file_format: str
    storage_key: str
    url: str
    size_bytes: int
    generated_at: datetime
    row_count: int
    is_stale: bool = False


class DownloadArtifactRepository(ABC):
    @abstractmethod
    async def save(self, artifact: DownloadArtifact) -> None:
        pass

    @abstractmethod
    async def find(self, job_id: str, file_format: str) -> Optional[DownloadArtifact]:
        pass

    @abstractmethod
    async def find_by_job(self, job_id: str) -> list[DownloadArtifact]:
        pass

    @abstractmethod
    async def mark_stale(self, job_id: str) -> int:
        pass

    @abstractmethod
    async def delete_by_job(self, job_id: str) -> int:
        pass
