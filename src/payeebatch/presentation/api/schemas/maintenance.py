"""Maintenance schemas (orphans, phantom jobs, working-set cleanup)."""

from pydantic import BaseModel, Field

from payeebatch.application.dtos import CleanupReport, PhantomCleanupReport
from payeebatch.presentation.api.schemas.jobs import JobResponse


class OrphanListResponse(BaseModel):
    """Completed jobs with no stored classification rows."""

    jobs: list[JobResponse]
    total: int


class PhantomCleanupResponse(BaseModel):
    removed: list[str] = Field(..., description="Jobs the provider no longer knows")
    kept: list[str] = Field(..., description="Jobs confirmed or not checkable")
    errors: dict[str, str] = Field(
        default_factory=dict,
        description="Transient lookup errors by job id (job kept)",
    )

    @classmethod
    def from_report(cls, report: PhantomCleanupReport) -> "PhantomCleanupResponse":
        return cls(
            removed=list(report.removed),
            kept=list(report.kept),
            errors=dict(report.errors),
        )


class CleanupResponse(BaseModel):
    released: list[str] = Field(..., description="Terminal jobs dropped from the working set")
    auto_cancelled: list[str] = Field(..., description="Active jobs past the hard ceiling")
    cancel_failures: list[str] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: CleanupReport) -> "CleanupResponse":
        return cls(
            released=list(report.released),
            auto_cancelled=list(report.auto_cancelled),
            cancel_failures=list(report.cancel_failures),
        )
