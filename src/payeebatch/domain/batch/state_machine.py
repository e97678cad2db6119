"""Lifecycle rules for batch jobs."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from payeebatch.domain.batch.batch_job import BatchJob
from payeebatch.domain.batch.exceptions import InvalidTransitionError
from payeebatch.domain.batch.status_update import JobStatusUpdate
from payeebatch.domain.batch.value_objects import BatchJobStatus, RequestCounts
from payeebatch.domain.shared.exceptions import ErrorCode, ValidationError
from payeebatch.domain.shared.time import ensure_tz_aware, utc_now

logger = logging.getLogger(__name__)


class BatchJobStateMachine:
    """Creates jobs and derives new job snapshots from status updates.

    ``apply_status_update`` is the single place where remote observations
    become local state. It returns the *same object* when an update is
    ignored, so callers can detect no-ops with an identity check.
    """

    def create(
        self,
        job_id: str,
        unique_names: Sequence[str],
        description: str = "",
        now: Optional[datetime] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> BatchJob:
        if not job_id:
            msg = "Batch job id must not be empty"
            raise ValidationError(msg)
        if not unique_names:
            raise ValidationError(
                "Cannot create a batch job without payee names",
                code=ErrorCode.EMPTY_PAYEE_SET,
            )

        created = ensure_tz_aware(now or utc_now())
        return BatchJob(
            id=job_id,
            status=BatchJobStatus.VALIDATING,
            request_counts=RequestCounts(total=len(unique_names)),
            created_at=created,
            description=description,
            payee_count=len(unique_names),
            validating_at=created,
            last_update_at=None,
            metadata=dict(metadata or {}),
        )

    def apply_status_update(
        self,
        current: BatchJob,
        incoming: JobStatusUpdate,
    ) -> BatchJob:
        if incoming.job_id != current.id:
            msg = f"Status update for {incoming.job_id!r} applied to job {current.id!r}"
            raise ValidationError(msg)

        observed = ensure_tz_aware(incoming.observed_at)
        if current.last_update_at is not None and observed < current.last_update_at:
            logger.debug(
                "Ignoring stale update for %s observed at %s (last applied %s)",
                current.id,
                observed.isoformat(),
                current.last_update_at.isoformat(),
            )
            return current

        if incoming.request_counts.regresses_from(current.request_counts):
            logger.info(
                "Ignoring out-of-order update for %s: counters %s -> %s",
                current.id,
                current.request_counts,
                incoming.request_counts,
            )
            return current

        if current.is_terminal and incoming.status != current.status:
            logger.debug(
                "Ignoring %s update for terminal job %s (%s)",
                incoming.status.value,
                current.id,
                current.status.value,
            )
            return current

        if incoming.status != current.status and not current.status.can_transition_to(
            incoming.status,
        ):
            logger.info(
                "Ignoring invalid transition %s -> %s for %s",
                current.status.value,
                incoming.status.value,
                current.id,
            )
            return current

        updated = self._merge(current, incoming, observed)
        if replace(updated, last_update_at=current.last_update_at) == current:
            return current

        if updated.status != current.status:
            logger.info(
                "Batch job %s: %s -> %s (%d/%d completed, %d failed)",
                current.id,
                current.status.value,
                updated.status.value,
                updated.request_counts.completed,
                updated.request_counts.total,
                updated.request_counts.failed,
            )
        return updated

    def transition(
        self,
        job: BatchJob,
        target: BatchJobStatus,
        now: Optional[datetime] = None,
        error: Optional[str] = None,
    ) -> BatchJob:
        """Local transition (user action or recovery). Raises on invalid moves."""
        if not job.status.can_transition_to(target):
            raise InvalidTransitionError(job.id, job.status, target)

        when = ensure_tz_aware(now or utc_now())
        last = job.last_update_at
        updated = replace(
            job,
            status=target,
            last_update_at=max(when, last) if last else when,
            errors=job.errors + ((error,) if error else ()),
        )
        return updated.with_timestamp(target, when)

    def record_error(self, job: BatchJob, error: str) -> BatchJob:
        """Attach a local processing error without changing the status."""
        if error in job.errors:
            return job
        return replace(job, errors=(*job.errors, error))

    def annotate(self, job: BatchJob, **metadata: Any) -> BatchJob:
        return replace(job, metadata={**job.metadata, **metadata})

    @staticmethod
    def _merge(
        current: BatchJob,
        incoming: JobStatusUpdate,
        observed: datetime,
    ) -> BatchJob:
        counts = incoming.request_counts
        total = counts.total or current.request_counts.total

        updated = replace(
            current,
            status=incoming.status,
            request_counts=RequestCounts(
                total=total,
                completed=counts.completed,
                failed=counts.failed,
            ),
            output_file_id=current.output_file_id or incoming.output_file_id,
            error_file_id=current.error_file_id or incoming.error_file_id,
            errors=incoming.errors or current.errors,
            last_update_at=observed,
        )
        for status, when in incoming.timestamps.items():
            updated = updated.with_timestamp(status, when)
        if incoming.status != current.status:
            updated = updated.with_timestamp(
                incoming.status,
                incoming.timestamps.get(incoming.status, observed),
            )
        return updated
