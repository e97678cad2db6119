"""Detection and repair of orphaned, phantom and aged jobs."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional, Sequence

from payeebatch.application.dtos import ActionResult, CleanupReport, PhantomCleanupReport
from payeebatch.application.services.batch_job_service import BatchJobService
from payeebatch.application.services.persistence_service import JobPersistenceService
from payeebatch.application.services.result_pipeline import ResultPipeline
from payeebatch.application.services.sync_engine import JobStatusSyncEngine
from payeebatch.application.state import ApplicationState
from payeebatch.domain.batch.batch_job import BatchJob
from payeebatch.domain.batch.exceptions import (
    BatchJobNotFoundError,
    ProviderError,
    ProviderJobNotFoundError,
)
from payeebatch.domain.batch.health import JobHealthPolicy
from payeebatch.domain.batch.ports import BatchClassificationProvider
from payeebatch.domain.batch.value_objects import BatchJobStatus
from payeebatch.domain.shared.exceptions import ConsistencyError
from payeebatch.domain.shared.time import utc_now

logger = logging.getLogger(__name__)


class RecoveryService:
    """Consistency repairs between provider state, job state and results."""

    def __init__(  # noqa: PLR0913
        self,
        provider: BatchClassificationProvider,
        state: ApplicationState,
        persistence: JobPersistenceService,
        pipeline: ResultPipeline,
        job_service: BatchJobService,
        sync_engine: JobStatusSyncEngine,
        health_policy: JobHealthPolicy,
        terminal_retention: timedelta = timedelta(hours=48),
    ):
        self._provider = provider
        self._state = state
        self._persistence = persistence
        self._pipeline = pipeline
        self._jobs = job_service
        self._sync = sync_engine
        self._health = health_policy
        self._terminal_retention = terminal_retention

    async def find_orphaned_jobs(self) -> list[BatchJob]:
        """Completed jobs in the store that have no classification rows."""
        jobs = await self._persistence.load_jobs()
        completed = [job for job in jobs if job.status == BatchJobStatus.COMPLETED]
        if not completed:
            return []
        counts = await self._persistence.count_rows_by_jobs([job.id for job in completed])
        orphans = [job for job in completed if counts.get(job.id, 0) == 0]
        if orphans:
            logger.warning(
                "Found %d completed job(s) without results: %s",
                len(orphans),
                [job.id for job in orphans],
            )
        return orphans

    async def ensure_results(self, job_id: str) -> ActionResult:
        """Run the result pipeline for a job unless it already has results."""
        existing = await self._persistence.count_rows(job_id)
        if existing > 0:
            return ActionResult.ok(
                f"Results already present ({existing} rows)",
                job_id=job_id,
            )

        job = self._state.get_job(job_id) or await self._persistence.load_job(job_id)
        if job is None:
            raise BatchJobNotFoundError(job_id)
        if job.status != BatchJobStatus.COMPLETED:
            return ActionResult.failed(
                f"Job is {job.status.value}; results are only available once completed",
                job_id=job_id,
                job=job,
            )

        payee_row_data = self._state.get_payee_data(job_id)
        if payee_row_data is None:
            payee_row_data = await self._persistence.load_payee_row_data(job_id)
        if payee_row_data is None:
            return ActionResult.failed(
                "No payee data stored for this job; results cannot be mapped",
                job_id=job_id,
                job=job,
            )

        try:
            result = await self._pipeline.process(job, payee_row_data)
        except ConsistencyError as e:
            logger.error("Ensuring results for %s aborted: %s", job_id, e)
            return ActionResult.failed(e.message, job_id=job_id, job=job)
        except ProviderError as e:
            logger.warning("Ensuring results for %s failed: %s", job_id, e)
            return ActionResult.failed(
                f"Results could not be downloaded: {e.message}",
                job_id=job_id,
                suggested_action="Retry later",
                job=job,
            )

        message = f"Stored {result.row_count} rows"
        if result.save_stats.cached:
            message += " (cached locally until the store is reachable)"
        return ActionResult.ok(message, job_id=job_id, job=job)

    async def cleanup_phantom_jobs(
        self,
        jobs: Optional[Sequence[BatchJob]] = None,
    ) -> PhantomCleanupReport:
        """Remove jobs the provider confirms it does not know.

        Only a confirmed not-found answer removes a job; any other failure
        keeps it.
        """
        candidates = list(jobs) if jobs is not None else self._state.jobs()
        removed: list[str] = []
        kept: list[str] = []
        errors: dict[str, str] = {}

        for job in candidates:
            if job.metadata.get("processing_method") and job.is_terminal:
                kept.append(job.id)
                continue
            try:
                await self._provider.get_job(job.id)
            except ProviderJobNotFoundError as e:
                logger.warning("Removing phantom job %s: %s", job.id, e.message)
                self._sync.untrack(job.id)
                self._state.remove_job(job.id)
                await self._persistence.delete_job(job.id)
                removed.append(job.id)
            except Exception as e:
                logger.info("Keeping job %s, provider check failed: %s", job.id, e)
                errors[job.id] = str(e)
                kept.append(job.id)
            else:
                kept.append(job.id)

        return PhantomCleanupReport(removed=tuple(removed), kept=tuple(kept), errors=errors)

    async def cleanup_stale_jobs(self, now: Optional[datetime] = None) -> CleanupReport:
        """Age-based working-set cleanup.

        Terminal jobs past the retention window leave the working set (the
        store keeps them). Active jobs past the auto-cancel ceiling are
        cancelled.
        """
        now = now or utc_now()
        released: list[str] = []
        cancelled: list[str] = []
        failures: list[str] = []

        for job in self._state.jobs():
            if job.is_terminal:
                ended = job.terminal_at() or job.created_at
                if now - ended > self._terminal_retention:
                    self._sync.untrack(job.id)
                    self._state.remove_job(job.id)
                    released.append(job.id)
                continue

            if self._health.assess(job, now).should_auto_cancel:
                logger.warning("Auto-cancelling job %s, active for %s", job.id, job.age(now))
                result = await self._jobs.cancel_job(job.id)
                (cancelled if result.success else failures).append(job.id)

        if released or cancelled or failures:
            logger.info(
                "Cleanup: released %d, auto-cancelled %d, cancel failures %d",
                len(released),
                len(cancelled),
                len(failures),
            )
        return CleanupReport(
            released=tuple(released),
            auto_cancelled=tuple(cancelled),
            cancel_failures=tuple(failures),
        )
