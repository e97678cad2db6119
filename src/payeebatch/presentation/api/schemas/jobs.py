"""Batch job schemas for API request/response models."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from payeebatch.application.dtos import ActionResult
from payeebatch.domain.batch.batch_job import BatchJob
from payeebatch.domain.batch.health import JobHealth, JobHealthPolicy
from payeebatch.domain.batch.status_update import JobStatusUpdate, UpdateSource
from payeebatch.domain.batch.value_objects import BatchJobStatus, HealthFlag, RequestCounts
from payeebatch.domain.shared.time import utc_now


class JobCreateRequest(BaseModel):
    """Request schema for submitting an uploaded file as a batch job.

    The upload is sent as parsed rows (one object per spreadsheet row).
    When `payee_column` is omitted the column is detected from the headers.
    """

    rows: list[dict[str, Any]] = Field(
        ...,
        min_length=1,
        description="Parsed upload rows; keys are the original column headers",
    )
    payee_column: Optional[str] = Field(
        None,
        description="Column holding the payee name (auto-detected if omitted)",
    )
    description: str = Field("", max_length=512, description="Free-text job description")
    file_name: Optional[str] = Field(None, description="Name of the uploaded file")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "rows": [
                    {"Payee": "Acme Inc", "Amount": "10.00"},
                    {"Payee": "Jane Doe", "Amount": "5.00"},
                    {"Payee": "ACME INC.", "Amount": "7.50"},
                ],
                "payee_column": "Payee",
                "description": "March vendor list",
                "file_name": "vendors.xlsx",
            },
        },
    )


class RequestCountsSchema(BaseModel):
    total: int = Field(0, ge=0)
    completed: int = Field(0, ge=0)
    failed: int = Field(0, ge=0)


class JobResponse(BaseModel):
    """Batch job as seen by the client."""

    id: str = Field(..., description="Provider job id")
    status: BatchJobStatus = Field(..., description="Lifecycle status")
    request_counts: RequestCountsSchema
    progress: float = Field(..., description="Processed share of requests (0-1)")
    created_at: datetime
    description: str
    payee_count: int = Field(..., description="Number of unique payees submitted")
    timestamps: dict[str, Optional[datetime]] = Field(
        ...,
        description="Lifecycle timestamps by status",
    )
    last_update_at: Optional[datetime] = None
    output_file_id: Optional[str] = None
    error_file_id: Optional[str] = None
    errors: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    health_flags: list[HealthFlag] = Field(
        default_factory=list,
        description="Advisory findings (queued too long, possibly stalled, ...)",
    )
    health_message: Optional[str] = None
    suggested_poll_seconds: Optional[float] = Field(
        None,
        description="How long to wait before asking again; null once the job is terminal",
    )

    @classmethod
    def from_domain(cls, job: BatchJob, health: Optional[JobHealth] = None) -> "JobResponse":
        return cls(
            id=job.id,
            status=job.status,
            request_counts=RequestCountsSchema(
                total=job.request_counts.total,
                completed=job.request_counts.completed,
                failed=job.request_counts.failed,
            ),
            progress=job.request_counts.progress_ratio,
            created_at=job.created_at,
            description=job.description,
            payee_count=job.payee_count,
            timestamps=job.lifecycle_timestamps(),
            last_update_at=job.last_update_at,
            output_file_id=job.output_file_id,
            error_file_id=job.error_file_id,
            errors=list(job.errors),
            metadata=dict(job.metadata),
            health_flags=sorted(health.flags, key=lambda f: f.value) if health else [],
            health_message=health.message if health else None,
            suggested_poll_seconds=(
                JobHealthPolicy.suggested_poll_delay(job).total_seconds()
                if job.is_active
                else None
            ),
        )


class JobListResponse(BaseModel):
    jobs: list[JobResponse]
    total: int


class ActionResultResponse(BaseModel):
    """Outcome of a user-initiated action."""

    success: bool
    message: str
    job_id: Optional[str] = None
    suggested_action: Optional[str] = None
    job: Optional[JobResponse] = None

    @classmethod
    def from_result(cls, result: ActionResult) -> "ActionResultResponse":
        return cls(
            success=result.success,
            message=result.message,
            job_id=result.job_id,
            suggested_action=result.suggested_action,
            job=JobResponse.from_domain(result.job) if result.job else None,
        )


class StatusEventRequest(BaseModel):
    """Out-of-band status observation (e.g. a provider webhook)."""

    status: BatchJobStatus
    request_counts: RequestCountsSchema = Field(default_factory=RequestCountsSchema)
    observed_at: Optional[datetime] = Field(
        None,
        description="When the status was observed (defaults to now)",
    )
    timestamps: dict[BatchJobStatus, datetime] = Field(default_factory=dict)
    output_file_id: Optional[str] = None
    error_file_id: Optional[str] = None
    errors: list[str] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "in_progress",
                "request_counts": {"total": 3, "completed": 2, "failed": 0},
                "observed_at": "2024-03-01T12:00:00Z",
            },
        },
    )

    def to_update(self, job_id: str) -> JobStatusUpdate:
        return JobStatusUpdate(
            job_id=job_id,
            status=self.status,
            request_counts=RequestCounts(
                total=self.request_counts.total,
                completed=self.request_counts.completed,
                failed=self.request_counts.failed,
            ),
            observed_at=self.observed_at or utc_now(),
            timestamps=dict(self.timestamps),
            output_file_id=self.output_file_id,
            error_file_id=self.error_file_id,
            errors=tuple(self.errors),
            source=UpdateSource.PUSH,
        )
