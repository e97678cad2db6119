"""Status observations reported by the provider (poll or push)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from payeebatch.domain.batch.value_objects import BatchJobStatus, RequestCounts
from payeebatch.domain.shared.time import utc_now


class UpdateSource(str, Enum):
    CREATE = "create"
    POLL = "poll"
    PUSH = "push"
    CANCEL = "cancel"


@dataclass(frozen=True)
class JobStatusUpdate:
    """One observation of a job's remote state.

    ``timestamps`` holds provider-reported lifecycle times by status.
    ``observed_at`` is when the observation was made and orders updates.
    """

    job_id: str
    status: BatchJobStatus
    request_counts: RequestCounts
    observed_at: datetime = field(default_factory=utc_now)
    timestamps: dict[BatchJobStatus, datetime] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    output_file_id: Optional[str] = None
    error_file_id: Optional[str] = None
    errors: tuple[str, ...] = ()
    source: UpdateSource = UpdateSource.POLL
