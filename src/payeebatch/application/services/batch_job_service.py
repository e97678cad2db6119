"""Use cases for creating, cancelling, recovering and deleting batch jobs."""

from __future__ import annotations

import logging
from dataclasses import replace
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from payeebatch.application.dtos import ActionResult
from payeebatch.application.retry import RetryPolicy
from payeebatch.application.services.persistence_service import JobPersistenceService
from payeebatch.application.services.result_pipeline import ResultPipeline
from payeebatch.application.services.sync_engine import JobStatusSyncEngine
from payeebatch.application.state import ApplicationState
from payeebatch.domain.batch.batch_job import BatchJob
from payeebatch.domain.batch.exceptions import (
    BatchJobNotFoundError,
    PayeeDataNotFoundError,
    ProviderError,
    ProviderJobNotFoundError,
)
from payeebatch.domain.batch.health import JobHealth, JobHealthPolicy
from payeebatch.domain.batch.ports import BatchClassificationProvider
from payeebatch.domain.batch.state_machine import BatchJobStateMachine
from payeebatch.domain.batch.status_update import JobStatusUpdate, UpdateSource
from payeebatch.domain.batch.value_objects import BatchJobStatus
from payeebatch.domain.classification.local_classifier import (
    LOCAL_PROCESSING_METHOD,
    LocalHeuristicClassifier,
)
from payeebatch.domain.payees.normalization import detect_payee_column
from payeebatch.domain.payees.row_mapper import build_mapping
from payeebatch.domain.payees.row_mapping import PayeeRowData
from payeebatch.domain.shared.exceptions import (
    ConsistencyError,
    ErrorCode,
    ValidationError,
)
from payeebatch.domain.shared.time import utc_now

logger = logging.getLogger(__name__)


class RecoveryMode(str, Enum):
    AUTO = "auto"
    RECREATE = "recreate"
    LOCAL = "local"


class BatchJobService:
    """Orchestrates the batch job lifecycle around the state machine."""

    def __init__(  # noqa: PLR0913
        self,
        provider: BatchClassificationProvider,
        state_machine: BatchJobStateMachine,
        state: ApplicationState,
        persistence: JobPersistenceService,
        pipeline: ResultPipeline,
        sync_engine: JobStatusSyncEngine,
        local_classifier: LocalHeuristicClassifier,
        health_policy: JobHealthPolicy,
        retry_policy: Optional[RetryPolicy] = None,
        cancel_max_retries: int = 2,
    ):
        self._provider = provider
        self._state_machine = state_machine
        self._state = state
        self._persistence = persistence
        self._pipeline = pipeline
        self._sync = sync_engine
        self._local_classifier = local_classifier
        self._health = health_policy
        self._retry = retry_policy or RetryPolicy()
        self._cancel_retry = self._retry.with_attempts(1 + cancel_max_retries)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def list_jobs(self, rendered: bool = False) -> list[tuple[BatchJob, JobHealth]]:
        """Working set with health flags.

        ``rendered=True`` returns the sampled display view instead of the
        authoritative snapshots.
        """
        now = utc_now()
        jobs = self._state.jobs()
        if rendered:
            jobs = [self._state.rendered_job(job.id) or job for job in jobs]
        return [(job, self._health.assess(job, now)) for job in jobs]

    def get_job(self, job_id: str) -> BatchJob:
        job = self._state.get_job(job_id)
        if job is None:
            raise BatchJobNotFoundError(job_id)
        return job

    def assess(self, job: BatchJob) -> JobHealth:
        return self._health.assess(job)

    async def payee_data(self, job_id: str) -> PayeeRowData:
        data = self._state.get_payee_data(job_id)
        if data is None:
            data = await self._persistence.load_payee_row_data(job_id)
            if data is None:
                raise PayeeDataNotFoundError(job_id)
            if self._state.has_job(job_id):
                self._state.set_payee_data(job_id, data)
        return data

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    async def create_job(
        self,
        rows: Sequence[Mapping[str, Any]],
        payee_column: Optional[str] = None,
        description: str = "",
        file_name: Optional[str] = None,
    ) -> BatchJob:
        """Deduplicate the upload, submit unique payees and start tracking.

        Raises
        ------
        ValidationError
            Missing payee column or no payee names.
        ProviderError
            The provider rejected or could not take the job.
        """
        if payee_column is None:
            headers: dict[str, None] = {}
            for row in rows[:50]:
                headers.update(dict.fromkeys(row))
            payee_column = detect_payee_column(headers)
            if payee_column is None:
                raise ValidationError(
                    "Could not detect a payee column; please select one",
                    code=ErrorCode.MISSING_PAYEE_COLUMN,
                    details={"headers": list(headers)},
                )

        payee_row_data = build_mapping(rows, payee_column, file_name=file_name)
        names = list(payee_row_data.unique_payee_names)
        if not names:
            raise ValidationError(
                "Upload contains no payee names",
                code=ErrorCode.EMPTY_PAYEE_SET,
            )

        snapshot = await self._retry.call(
            lambda: self._provider.create_job(names, description),
            description="create batch job",
        )
        job = self._state_machine.create(
            snapshot.job_id,
            names,
            description=description,
            now=snapshot.created_at or snapshot.observed_at,
            metadata={
                "file_name": file_name,
                "payee_column": payee_column,
                "row_count": payee_row_data.row_count,
            },
        )
        job = self._state_machine.apply_status_update(job, snapshot)

        self._state.upsert_job(job)
        self._state.set_payee_data(job.id, payee_row_data)
        save = await self._persistence.save_job(job, payee_row_data)
        if save.cached:
            logger.warning("Job %s created but only cached locally", job.id)

        self._sync.track(job.id)
        logger.info(
            "Created batch job %s: %d rows, %d unique payees",
            job.id,
            payee_row_data.row_count,
            len(names),
        )
        return job

    # -------------------------------------------------------------------------
    # Refresh / cancel
    # -------------------------------------------------------------------------

    async def refresh_job(self, job_id: str) -> BatchJob:
        self.get_job(job_id)
        updated = await self._sync.poll_once(job_id)
        return updated or self.get_job(job_id)

    async def cancel_job(self, job_id: str) -> ActionResult:
        """Request remote cancellation, retrying transient failures.

        Local state only changes once the provider accepted the request.
        """
        job = self.get_job(job_id)
        if job.is_terminal:
            return ActionResult.failed(
                f"Job is already {job.status.value}",
                job_id=job_id,
                job=job,
            )

        try:
            snapshot = await self._cancel_retry.call(
                lambda: self._provider.cancel_job(job_id),
                description=f"cancel {job_id}",
            )
        except ProviderJobNotFoundError:
            return ActionResult.failed(
                "The provider no longer knows this job",
                job_id=job_id,
                suggested_action="Run phantom job cleanup to remove it",
                job=job,
            )
        except ProviderError as e:
            logger.warning("Cancelling %s failed: %s", job_id, e)
            return ActionResult.failed(
                f"Cancellation failed: {e.message}",
                job_id=job_id,
                suggested_action="Try cancelling again in a few minutes",
                job=job,
            )

        updated = await self._sync.apply(_as_source(snapshot, UpdateSource.CANCEL))
        return ActionResult.ok("Cancellation requested", job_id=job_id, job=updated or job)

    # -------------------------------------------------------------------------
    # Recovery
    # -------------------------------------------------------------------------

    async def recover_job(
        self,
        job_id: str,
        mode: RecoveryMode = RecoveryMode.AUTO,
    ) -> ActionResult:
        """Recover a stuck job by recreating it remotely or classifying locally.

        ``AUTO`` tries cancel + recreate first and falls back to the local
        classifier when the provider is unavailable.
        """
        job = self.get_job(job_id)
        if job.status == BatchJobStatus.COMPLETED:
            return ActionResult.failed(
                "Job already completed",
                job_id=job_id,
                suggested_action="Use ensure-results to restore missing results",
                job=job,
            )

        try:
            payee_row_data = await self.payee_data(job_id)
        except PayeeDataNotFoundError as e:
            return ActionResult.failed(e.message, job_id=job_id, job=job)

        if mode in (RecoveryMode.AUTO, RecoveryMode.RECREATE):
            try:
                return await self._recreate(job, payee_row_data)
            except ProviderError as e:
                logger.warning("Recreating %s failed: %s", job_id, e)
                if mode == RecoveryMode.RECREATE:
                    return ActionResult.failed(
                        f"Could not recreate job: {e.message}",
                        job_id=job_id,
                        suggested_action="Recover with local processing",
                        job=job,
                    )

        return await self._process_locally(job, payee_row_data)

    async def _recreate(self, job: BatchJob, payee_row_data: PayeeRowData) -> ActionResult:
        if job.is_active:
            try:
                await self._cancel_retry.call(lambda: self._provider.cancel_job(job.id))
            except ProviderJobNotFoundError:
                logger.info("Stuck job %s already gone at the provider", job.id)

        names = list(payee_row_data.unique_payee_names)
        snapshot = await self._retry.call(
            lambda: self._provider.create_job(names, job.description),
            description=f"recreate {job.id}",
        )
        new_job = self._state_machine.create(
            snapshot.job_id,
            names,
            description=job.description,
            now=snapshot.created_at or snapshot.observed_at,
            metadata={**job.metadata, "recovered_from": job.id},
        )
        new_job = self._state_machine.apply_status_update(new_job, snapshot)
        self._state.upsert_job(new_job)
        self._state.set_payee_data(new_job.id, payee_row_data)
        await self._persistence.save_job(new_job, payee_row_data)
        self._sync.track(new_job.id)

        await self._retire(job, f"Replaced by {new_job.id}")
        logger.info("Recovered job %s as %s", job.id, new_job.id)
        return ActionResult.ok(
            f"Job recreated as {new_job.id}",
            job_id=new_job.id,
            job=new_job,
        )

    async def _retire(self, job: BatchJob, reason: str) -> None:
        self._sync.untrack(job.id)
        current = self._state.get_job(job.id) or job
        retired = self._state_machine.annotate(current, replaced_reason=reason)
        if current.status.can_transition_to(BatchJobStatus.CANCELLED):
            retired = self._state_machine.transition(
                retired,
                BatchJobStatus.CANCELLED,
                error=reason,
            )
        self._state.upsert_job(retired)
        self._state.publish(retired)
        await self._persistence.save_job(retired)

    async def _process_locally(
        self,
        job: BatchJob,
        payee_row_data: PayeeRowData,
    ) -> ActionResult:
        if job.is_active:
            try:
                await self._provider.cancel_job(job.id)
            except ProviderError as e:
                logger.info("Best-effort cancel of %s before local run failed: %s", job.id, e)

        records = self._local_classifier.classify_many(payee_row_data.unique_payee_names)
        try:
            result = await self._pipeline.persist_records(job.id, records, payee_row_data)
        except ConsistencyError as e:
            logger.error("Local processing of %s aborted: %s", job.id, e)
            return ActionResult.failed(f"Local processing aborted: {e.message}", job_id=job.id)

        self._sync.untrack(job.id)
        # Status updates may have been applied while the provider was called
        current = self._state.get_job(job.id) or job
        updated = self._state_machine.annotate(current, processing_method=LOCAL_PROCESSING_METHOD)
        if current.status.can_transition_to(BatchJobStatus.COMPLETED):
            updated = self._state_machine.transition(updated, BatchJobStatus.COMPLETED)
        self._state.upsert_job(updated)
        self._state.publish(updated)
        await self._persistence.save_job(updated)

        return ActionResult.ok(
            f"Processed {result.unique_count} payees locally ({result.row_count} rows)",
            job_id=job.id,
            job=updated,
        )

    # -------------------------------------------------------------------------
    # Completion and delete
    # -------------------------------------------------------------------------

    async def handle_completed(self, job: BatchJob) -> None:
        """Background result processing for a job that just completed.

        Errors are logged and recorded on the job; they never propagate to
        the sync engine.
        """
        try:
            payee_row_data = await self.payee_data(job.id)
            records = await self._pipeline.fetch_records(job, payee_row_data)
            if not self._state.has_job(job.id):
                logger.info("Job %s was removed while results downloaded; discarding", job.id)
                return
            await self._pipeline.persist_records(job.id, records, payee_row_data)
        except ConsistencyError as e:
            logger.error("Result pipeline for %s aborted: %s", job.id, e)
            await self._record_error(job.id, e.message)
        except Exception as e:
            logger.exception("Result pipeline for %s failed", job.id)
            await self._record_error(job.id, f"Results could not be processed: {e}")

    async def _record_error(self, job_id: str, message: str) -> None:
        current = self._state.get_job(job_id)
        if current is None:
            return
        updated = self._state_machine.record_error(current, message)
        if updated is not current:
            self._state.upsert_job(updated)
            self._state.publish(updated)
            await self._persistence.save_job(updated)

    async def delete_job(self, job_id: str) -> ActionResult:
        self._sync.untrack(job_id)
        self._state.remove_job(job_id)
        report = await self._persistence.delete_job(job_id)
        if report.success:
            return ActionResult.ok("Job deleted", job_id=job_id)
        return ActionResult.failed(
            f"Job partially deleted; failed steps: {', '.join(report.failed_steps)}",
            job_id=job_id,
            suggested_action="Retry the delete",
        )

    # -------------------------------------------------------------------------
    # Startup
    # -------------------------------------------------------------------------

    async def resume(self) -> int:
        """Load stored jobs into the working set and resume tracking."""
        try:
            await self._persistence.flush_pending()
        except Exception as e:
            logger.warning("Flushing cached payloads failed: %s", e)

        jobs = await self._persistence.load_jobs()
        for job in jobs:
            self._state.upsert_job(job)
        for job in jobs:
            if job.is_active:
                self._sync.track(job.id)
        logger.info(
            "Resumed %d job(s), %d active",
            len(jobs),
            sum(1 for j in jobs if j.is_active),
        )
        return len(jobs)


def _as_source(update: JobStatusUpdate, source: UpdateSource) -> JobStatusUpdate:
    return replace(update, source=source)
