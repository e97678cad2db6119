"""Stuck and stalled job detection."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from payeebatch.domain.batch.batch_job import BatchJob
from payeebatch.domain.batch.value_objects import BatchJobStatus, HealthFlag
from payeebatch.domain.shared.time import utc_now


@dataclass(frozen=True)
class JobHealth:
    job_id: str
    flags: frozenset[HealthFlag]
    message: Optional[str] = None

    @property
    def healthy(self) -> bool:
        return not self.flags

    @property
    def should_auto_cancel(self) -> bool:
        return HealthFlag.AUTO_CANCEL_DUE in self.flags


class JobHealthPolicy:
    """Classifies active jobs as queued too long, possibly stalled or overdue.

    Parameters
    ----------
    queue_timeout
        Age after which an active job with no completed requests is
        "queued too long". Advisory only.
    stall_timeout
        Age after which a job below ``stall_progress_ratio`` is "possibly
        stalled". Advisory; suggests manual cancellation.
    stall_progress_ratio
        Completed/total ratio under which a job counts as stalled.
    auto_cancel_after
        Hard ceiling after which an active job is due for automatic
        cancellation. ``None`` disables auto-cancel.
    """

    def __init__(
        self,
        queue_timeout: timedelta = timedelta(hours=4),
        stall_timeout: timedelta = timedelta(hours=6),
        stall_progress_ratio: float = 0.10,
        auto_cancel_after: Optional[timedelta] = timedelta(hours=24),
    ):
        if queue_timeout <= timedelta(0) or stall_timeout <= timedelta(0):
            msg = "Health thresholds must be positive"
            raise ValueError(msg)
        if not 0.0 < stall_progress_ratio <= 1.0:
            msg = f"stall_progress_ratio must be in (0, 1], got {stall_progress_ratio}"
            raise ValueError(msg)
        if auto_cancel_after is not None and auto_cancel_after <= queue_timeout:
            msg = "auto_cancel_after must be longer than queue_timeout"
            raise ValueError(msg)
        self.queue_timeout = queue_timeout
        self.stall_timeout = stall_timeout
        self.stall_progress_ratio = stall_progress_ratio
        self.auto_cancel_after = auto_cancel_after

    def assess(self, job: BatchJob, now: Optional[datetime] = None) -> JobHealth:
        if job.is_terminal or job.status == BatchJobStatus.CANCELLING:
            return JobHealth(job_id=job.id, flags=frozenset())

        age = job.age(now or utc_now())
        counts = job.request_counts
        flags: set[HealthFlag] = set()
        messages: list[str] = []

        if counts.completed == 0 and age > self.queue_timeout:
            flags.add(HealthFlag.QUEUED_TOO_LONG)
            messages.append(
                f"No progress after {_hours(age)}; the provider queue may be busy",
            )

        if (
            counts.total > 0
            and counts.completed / counts.total < self.stall_progress_ratio
            and age > self.stall_timeout
        ):
            flags.add(HealthFlag.POSSIBLY_STALLED)
            messages.append(
                f"Only {counts.completed}/{counts.total} completed after "
                f"{_hours(age)}; consider cancelling",
            )

        if self.auto_cancel_after is not None and age > self.auto_cancel_after:
            flags.add(HealthFlag.AUTO_CANCEL_DUE)
            messages.append(f"Active for {_hours(age)}, past the auto-cancel limit")

        return JobHealth(
            job_id=job.id,
            flags=frozenset(flags),
            message="; ".join(messages) or None,
        )

    @staticmethod
    def suggested_poll_delay(job: BatchJob, now: Optional[datetime] = None) -> timedelta:
        """Cadence hint: poll young, moving jobs often and old ones rarely."""
        age = job.age(now or utc_now())
        if age > timedelta(hours=24):
            return timedelta(minutes=10)
        if age > timedelta(hours=12):
            if job.request_counts.completed == 0:
                return timedelta(minutes=10)
            return timedelta(minutes=5)
        if age > timedelta(hours=2):
            return timedelta(minutes=2)
        if age < timedelta(minutes=30) and job.request_counts.completed > 0:
            return timedelta(seconds=15)
        return timedelta(seconds=45)


def _hours(delta: timedelta) -> str:
    hours = delta.total_seconds() / 3600
    return f"{hours:.1f}h"
