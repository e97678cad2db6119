"""Polling and push-update synchronisation of batch job state.

Both producers, the per-job polling tasks and out-of-band push events,
put ``JobStatusUpdate`` messages on one queue. A single consumer applies
them through ``JobStatusSyncEngine.apply``, so monotonicity and ordering
are enforced in one place.

Rendering and persistence are decoupled: every accepted update is
persisted, but the rendered job view of old in-progress jobs is refreshed
only with a probability that decreases with job age. Terminal transitions
are always rendered, even under an emergency stop.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, Sequence

from payeebatch.application.retry import RetryPolicy
from payeebatch.application.services.persistence_service import JobPersistenceService
from payeebatch.application.state import ApplicationState
from payeebatch.domain.batch.batch_job import BatchJob
from payeebatch.domain.batch.exceptions import ProviderError, ProviderJobNotFoundError
from payeebatch.domain.batch.ports import BatchClassificationProvider
from payeebatch.domain.batch.state_machine import BatchJobStateMachine
from payeebatch.domain.batch.status_update import JobStatusUpdate, UpdateSource
from payeebatch.domain.batch.value_objects import BatchJobStatus
from payeebatch.domain.shared.time import utc_now

logger = logging.getLogger(__name__)

CompletionHandler = Callable[[BatchJob], Awaitable[None]]

# (max age, render probability); older jobs fall through to the floor
DEFAULT_RENDER_SCHEDULE: tuple[tuple[timedelta, float], ...] = (
    (timedelta(hours=1), 1.0),
    (timedelta(hours=6), 0.5),
    (timedelta(hours=24), 0.2),
)
DEFAULT_RENDER_FLOOR = 0.05


class RenderSampler:
    """Age-based sampling of which updates reach the rendered view."""

    def __init__(
        self,
        schedule: Sequence[tuple[timedelta, float]] = DEFAULT_RENDER_SCHEDULE,
        floor: float = DEFAULT_RENDER_FLOOR,
        rng: Optional[random.Random] = None,
    ):
        self._schedule = tuple(sorted(schedule, key=lambda item: item[0]))
        self._floor = floor
        self._rng = rng or random.Random()

    def probability(self, job: BatchJob, now: Optional[datetime] = None) -> float:
        if job.status != BatchJobStatus.IN_PROGRESS:
            return 1.0
        age = job.age(now or utc_now())
        for max_age, probability in self._schedule:
            if age <= max_age:
                return probability
        return self._floor

    def should_render(self, job: BatchJob, now: Optional[datetime] = None) -> bool:
        p = self.probability(job, now)
        return p >= 1.0 or self._rng.random() < p


class JobStatusSyncEngine:
    """Keeps the working set in step with the provider."""

    def __init__(
        self,
        provider: BatchClassificationProvider,
        state_machine: BatchJobStateMachine,
        state: ApplicationState,
        persistence: JobPersistenceService,
        sampler: Optional[RenderSampler] = None,
        poll_interval: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
        on_completed: Optional[CompletionHandler] = None,
    ):
        self._provider = provider
        self._state_machine = state_machine
        self._state = state
        self._persistence = persistence
        self._sampler = sampler or RenderSampler()
        self._poll_interval = poll_interval
        self._retry = retry_policy or RetryPolicy()
        self._on_completed = on_completed

        self._queue: asyncio.Queue[JobStatusUpdate] = asyncio.Queue()
        self._poll_tasks: dict[str, asyncio.Task] = {}
        self._consumer: Optional[asyncio.Task] = None
        self._background_tasks: set[asyncio.Task] = set()
        self.suppressed_renders = 0

    def set_completion_handler(self, handler: CompletionHandler) -> None:
        self._on_completed = handler

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    async def start(self) -> None:
        if self.running:
            return
        self._consumer = asyncio.create_task(self._consume(), name="job-sync-consumer")
        for job in self._state.active_jobs():
            self.track(job.id)
        logger.info("Sync engine started, polling %d active job(s)", len(self._poll_tasks))

    async def stop(self) -> None:
        tasks = list(self._poll_tasks.values())
        if self._consumer is not None:
            tasks.append(self._consumer)
        tasks.extend(self._background_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._poll_tasks.clear()
        self._background_tasks.clear()
        self._consumer = None
        logger.info("Sync engine stopped")

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------

    def track(self, job_id: str) -> None:
        """Start an independent polling task for one job."""
        task = self._poll_tasks.get(job_id)
        if task is not None and not task.done():
            return
        self._poll_tasks[job_id] = asyncio.create_task(
            self._poll_loop(job_id),
            name=f"poll-{job_id}",
        )

    def untrack(self, job_id: str) -> None:
        task = self._poll_tasks.pop(job_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def is_tracking(self, job_id: str) -> bool:
        task = self._poll_tasks.get(job_id)
        return task is not None and not task.done()

    async def fetch_status(self, job_id: str) -> JobStatusUpdate:
        return await self._retry.call(
            lambda: self._provider.get_job(job_id),
            description=f"poll {job_id}",
        )

    async def poll_once(self, job_id: str) -> Optional[BatchJob]:
        """Poll one job now and apply the result immediately."""
        update = await self.fetch_status(job_id)
        return await self.apply(update)

    async def _poll_loop(self, job_id: str) -> None:
        try:
            while True:
                await asyncio.sleep(self._poll_interval)
                job = self._state.get_job(job_id)
                if job is None or job.is_terminal:
                    break
                try:
                    update = await self.fetch_status(job_id)
                except ProviderJobNotFoundError:
                    logger.warning("Provider does not know job %s, polling stopped", job_id)
                    break
                except ProviderError as e:
                    logger.warning("Polling %s failed: %s", job_id, e)
                    continue
                await self._queue.put(update)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Polling loop for %s crashed", job_id)
        finally:
            if self._poll_tasks.get(job_id) is asyncio.current_task():
                del self._poll_tasks[job_id]

    # -------------------------------------------------------------------------
    # Push updates
    # -------------------------------------------------------------------------

    async def push(self, update: JobStatusUpdate) -> None:
        """Accept an out-of-band update; applied by the queue consumer."""
        if update.source == UpdateSource.POLL:
            update = _with_source(update, UpdateSource.PUSH)
        await self._queue.put(update)

    async def _consume(self) -> None:
        while True:
            update = await self._queue.get()
            try:
                await self.apply(update)
            except Exception:
                logger.exception("Applying update for %s failed", update.job_id)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Apply everything queued so far (inline when no consumer runs)."""
        if self.running:
            await self._queue.join()
            return
        while not self._queue.empty():
            update = self._queue.get_nowait()
            try:
                await self.apply(update)
            finally:
                self._queue.task_done()

    # -------------------------------------------------------------------------
    # Apply
    # -------------------------------------------------------------------------

    async def apply(self, update: JobStatusUpdate) -> Optional[BatchJob]:
        """Single entry point turning an observation into state."""
        current = self._state.get_job(update.job_id)
        if current is None:
            logger.debug("Dropping %s update for unknown job %s", update.source.value, update.job_id)
            return None

        updated = self._state_machine.apply_status_update(current, update)
        if updated is current:
            return current

        self._state.upsert_job(updated)
        result = await self._persistence.save_job(updated)
        if result.cached:
            logger.warning("Job %s state kept in local cache: %s", updated.id, result.warning)

        became_terminal = updated.is_terminal and not current.is_terminal
        self._render(current, updated, became_terminal)

        if became_terminal:
            self.untrack(updated.id)
            if updated.status == BatchJobStatus.COMPLETED:
                self._schedule_completion(updated)
        return updated

    def _render(self, current: BatchJob, updated: BatchJob, became_terminal: bool) -> None:
        if became_terminal:
            self._state.publish(updated)
            return
        if self._state.emergency_stop:
            self.suppressed_renders += 1
            return
        if updated.status != current.status or self._sampler.should_render(updated):
            self._state.publish(updated)
        else:
            self.suppressed_renders += 1

    def _schedule_completion(self, job: BatchJob) -> None:
        if self._on_completed is None:
            return
        task = asyncio.create_task(self._on_completed(job), name=f"results-{job.id}")
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def wait_for_background(self) -> None:
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)


def _with_source(update: JobStatusUpdate, source: UpdateSource) -> JobStatusUpdate:
    return replace(update, source=source)
