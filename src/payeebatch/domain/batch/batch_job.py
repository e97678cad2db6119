"""Batch job entity."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from payeebatch.domain.batch.value_objects import BatchJobStatus, RequestCounts
from payeebatch.domain.shared.time import ensure_tz_aware, utc_now

_TIMESTAMP_FIELD: dict[BatchJobStatus, str] = {
    BatchJobStatus.VALIDATING: "validating_at",
    BatchJobStatus.IN_PROGRESS: "in_progress_at",
    BatchJobStatus.FINALIZING: "finalizing_at",
    BatchJobStatus.CANCELLING: "cancelling_at",
    BatchJobStatus.COMPLETED: "completed_at",
    BatchJobStatus.FAILED: "failed_at",
    BatchJobStatus.EXPIRED: "expired_at",
    BatchJobStatus.CANCELLED: "cancelled_at",
}


@dataclass(frozen=True)
class BatchJob:
    """Immutable snapshot of one remote batch classification job.

    New snapshots are produced by ``BatchJobStateMachine``; nothing mutates
    a job in place. Lifecycle timestamps are set at most once.
    ``last_update_at`` is the observation time of the most recent status
    update that was applied and orders later updates.
    """

    id: str
    status: BatchJobStatus
    request_counts: RequestCounts
    created_at: datetime
    description: str = ""
    payee_count: int = 0
    validating_at: Optional[datetime] = None
    in_progress_at: Optional[datetime] = None
    finalizing_at: Optional[datetime] = None
    cancelling_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    output_file_id: Optional[str] = None
    error_file_id: Optional[str] = None
    errors: tuple[str, ...] = ()
    last_update_at: Optional[datetime] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    def age(self, now: Optional[datetime] = None) -> timedelta:
        return ensure_tz_aware(now or utc_now()) - ensure_tz_aware(self.created_at)

    def timestamp_for(self, status: BatchJobStatus) -> Optional[datetime]:
        return getattr(self, _TIMESTAMP_FIELD[status])

    def terminal_at(self) -> Optional[datetime]:
        if not self.is_terminal:
            return None
        return self.timestamp_for(self.status)

    def with_timestamp(self, status: BatchJobStatus, when: datetime) -> BatchJob:
        """Set the lifecycle timestamp for ``status`` unless already set."""
        if self.timestamp_for(status) is not None:
            return self
        return replace(self, **{_TIMESTAMP_FIELD[status]: ensure_tz_aware(when)})

    def lifecycle_timestamps(self) -> dict[str, Optional[datetime]]:
        return {status.value: self.timestamp_for(status) for status in BatchJobStatus}

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation used by the local cache."""
        return {
            "id": self.id,
            "status": self.status.value,
            "requestCounts": {
                "total": self.request_counts.total,
                "completed": self.request_counts.completed,
                "failed": self.request_counts.failed,
            },
            "createdAt": self.created_at.isoformat(),
            "description": self.description,
            "payeeCount": self.payee_count,
            "timestamps": {
                status: when.isoformat() if when else None
                for status, when in self.lifecycle_timestamps().items()
            },
            "outputFileId": self.output_file_id,
            "errorFileId": self.error_file_id,
            "errors": list(self.errors),
            "lastUpdateAt": self.last_update_at.isoformat() if self.last_update_at else None,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BatchJob:
        counts = data.get("requestCounts") or {}
        timestamps = {
            _TIMESTAMP_FIELD[BatchJobStatus(status)]: _parse_dt(value)
            for status, value in (data.get("timestamps") or {}).items()
        }
        return cls(
            id=data["id"],
            status=BatchJobStatus(data["status"]),
            request_counts=RequestCounts(
                total=int(counts.get("total", 0)),
                completed=int(counts.get("completed", 0)),
                failed=int(counts.get("failed", 0)),
            ),
            created_at=_parse_dt(data["createdAt"]),
            description=data.get("description", ""),
            payee_count=int(data.get("payeeCount", 0)),
            output_file_id=data.get("outputFileId"),
            error_file_id=data.get("errorFileId"),
            errors=tuple(data.get("errors") or ()),
            last_update_at=_parse_dt(data.get("lastUpdateAt")),
            metadata=dict(data.get("metadata") or {}),
            **timestamps,
        )


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return ensure_tz_aware(datetime.fromisoformat(value))
