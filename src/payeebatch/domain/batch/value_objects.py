"""Value objects for the batch job lifecycle."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class BatchJobStatus(str, Enum):
    """Lifecycle state of a remote batch job."""

    VALIDATING = "validating"
    IN_PROGRESS = "in_progress"
    FINALIZING = "finalizing"
    CANCELLING = "cancelling"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    @property
    def is_active(self) -> bool:
        return not self.is_terminal

    def can_transition_to(self, target: BatchJobStatus) -> bool:
        return target in _ALLOWED_TRANSITIONS[self]


_TERMINAL = frozenset({
    BatchJobStatus.COMPLETED,
    BatchJobStatus.FAILED,
    BatchJobStatus.EXPIRED,
    BatchJobStatus.CANCELLED,
})

# Forward skips are allowed: polling can miss intermediate states.
_ALLOWED_TRANSITIONS: dict[BatchJobStatus, frozenset[BatchJobStatus]] = {
    BatchJobStatus.VALIDATING: frozenset({
        BatchJobStatus.IN_PROGRESS,
        BatchJobStatus.FINALIZING,
        BatchJobStatus.CANCELLING,
        *_TERMINAL,
    }),
    BatchJobStatus.IN_PROGRESS: frozenset({
        BatchJobStatus.FINALIZING,
        BatchJobStatus.CANCELLING,
        *_TERMINAL,
    }),
    BatchJobStatus.FINALIZING: frozenset({
        BatchJobStatus.COMPLETED,
        BatchJobStatus.FAILED,
        BatchJobStatus.EXPIRED,
        BatchJobStatus.CANCELLED,
    }),
    BatchJobStatus.CANCELLING: frozenset({
        BatchJobStatus.CANCELLED,
        BatchJobStatus.FAILED,
        BatchJobStatus.EXPIRED,
        BatchJobStatus.COMPLETED,
    }),
    BatchJobStatus.COMPLETED: frozenset(),
    BatchJobStatus.FAILED: frozenset(),
    BatchJobStatus.EXPIRED: frozenset(),
    BatchJobStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class RequestCounts:
    """Provider-side request counters for one job."""

    total: int = 0
    completed: int = 0
    failed: int = 0

    def __post_init__(self):
        if min(self.total, self.completed, self.failed) < 0:
            msg = f"Request counts must be non-negative: {self}"
            raise ValueError(msg)

    @property
    def processed(self) -> int:
        return self.completed + self.failed

    @property
    def progress_ratio(self) -> float:
        if self.total <= 0:
            return 0.0
        return min(1.0, self.processed / self.total)

    def regresses_from(self, current: RequestCounts) -> bool:
        return self.completed < current.completed or self.failed < current.failed


class HealthFlag(str, Enum):
    """Advisory findings about an active job."""

    QUEUED_TOO_LONG = "queued_too_long"
    POSSIBLY_STALLED = "possibly_stalled"
    AUTO_CANCEL_DUE = "auto_cancel_due"
