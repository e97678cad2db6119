"""SQLAlchemy model for batch jobs and their embedded row mapping."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from payeebatch.domain.batch.value_objects import BatchJobStatus
from payeebatch.infrastructure.persistence.sqlalchemy.models.base import (
    Base,
    TimestampMixin,
)


class BatchJobModel(Base, TimestampMixin):
    """One provider batch job.

    ``payee_mapping`` holds the unique names and row mappings. The original
    upload rows live in ``original_file_data`` unless the upload was large,
    in which case they were offloaded to the blob store under
    ``payload_blob_key`` and the column is NULL.
    """

    __tablename__ = "batch_jobs"

    __table_args__ = (Index("ix_batch_jobs_status", "status"),)

    # Provider-assigned id
    id: Mapped[str] = mapped_column(String(255), primary_key=True)

    status: Mapped[BatchJobStatus] = mapped_column(
        SQLEnum(
            BatchJobStatus,
            values_callable=lambda x: [e.value for e in x],
            native_enum=False,
            length=20,
        ),
        nullable=False,
    )
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    payee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Provider request counters
    total_requests: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_requests: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_requests: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Lifecycle
    job_created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    validating_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    in_progress_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    finalizing_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancelling_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    failed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    expired_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_update_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    output_file_id: Mapped[Optional[str]] = mapped_column(String(255))
    error_file_id: Mapped[Optional[str]] = mapped_column(String(255))
    errors: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    job_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
    )

    # Payee data
    payee_mapping: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)
    original_file_data: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(JSON)
    payload_blob_key: Mapped[Optional[str]] = mapped_column(String(512))

    def __repr__(self) -> str:
        return f"<BatchJobModel(id={self.id}, status={self.status})>"
