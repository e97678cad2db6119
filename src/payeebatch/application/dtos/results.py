"""Result objects returned by application services."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from payeebatch.domain.batch.batch_job import BatchJob
from payeebatch.domain.batch.repositories import RowSaveStats


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a user-initiated action (cancel, delete, recover, ...)."""

    success: bool
    message: str
    job_id: Optional[str] = None
    suggested_action: Optional[str] = None
    job: Optional[BatchJob] = None

    @classmethod
    def ok(
        cls,
        message: str,
        job_id: Optional[str] = None,
        job: Optional[BatchJob] = None,
    ) -> ActionResult:
        return cls(success=True, message=message, job_id=job_id, job=job)

    @classmethod
    def failed(
        cls,
        message: str,
        job_id: Optional[str] = None,
        suggested_action: Optional[str] = None,
        job: Optional[BatchJob] = None,
    ) -> ActionResult:
        return cls(
            success=False,
            message=message,
            job_id=job_id,
            suggested_action=suggested_action,
            job=job,
        )


@dataclass(frozen=True)
class JobSaveResult:
    """Outcome of persisting a job; ``cached`` means the store was down."""

    job_id: str
    persisted: bool
    cached: bool = False
    warning: Optional[str] = None


@dataclass
class SaveStats:
    """Classification save outcome, including industry-code findings."""

    job_id: str
    row_stats: RowSaveStats = field(default_factory=RowSaveStats)
    cached: bool = False
    warning: Optional[str] = None

    @property
    def industry_code_errors(self) -> list[str]:
        return self.row_stats.industry_code_errors

    @property
    def saved(self) -> int:
        return self.row_stats.saved


@dataclass(frozen=True)
class DeleteReport:
    job_id: str
    completed_steps: tuple[str, ...]
    failed_steps: tuple[str, ...]

    @property
    def success(self) -> bool:
        return not self.failed_steps


@dataclass(frozen=True)
class PipelineResult:
    job_id: str
    row_count: int
    unique_count: int
    failed_payees: int
    placeholder_rows: int
    save_stats: SaveStats


@dataclass(frozen=True)
class PhantomCleanupReport:
    removed: tuple[str, ...]
    kept: tuple[str, ...]
    errors: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CleanupReport:
    released: tuple[str, ...]
    auto_cancelled: tuple[str, ...]
    cancel_failures: tuple[str, ...] = ()
