"""Process-wide working set of jobs, owned by the composition root."""

from __future__ import annotations

import logging
from typing import Optional

from payeebatch.domain.batch.batch_job import BatchJob
from payeebatch.domain.payees.row_mapping import PayeeRowData

logger = logging.getLogger(__name__)


class ApplicationState:
    """Active job list, per-job payee data and the emergency-stop flag.

    Two job views are kept: the authoritative one (``get_job``), always
    current, and the rendered one (``rendered_job``), which the sync engine
    may refresh less often for old jobs. Jobs are immutable snapshots, so
    replacing an entry is the only mutation.
    """

    def __init__(self):
        self._jobs: dict[str, BatchJob] = {}
        self._rendered: dict[str, BatchJob] = {}
        self._payee_data: dict[str, PayeeRowData] = {}
        self._emergency_stop = False

    # -------------------------------------------------------------------------
    # Jobs
    # -------------------------------------------------------------------------

    def jobs(self) -> list[BatchJob]:
        return sorted(self._jobs.values(), key=lambda j: j.created_at, reverse=True)

    def active_jobs(self) -> list[BatchJob]:
        return [job for job in self.jobs() if job.is_active]

    def get_job(self, job_id: str) -> Optional[BatchJob]:
        return self._jobs.get(job_id)

    def has_job(self, job_id: str) -> bool:
        return job_id in self._jobs

    def upsert_job(self, job: BatchJob) -> None:
        self._jobs[job.id] = job
        self._rendered.setdefault(job.id, job)

    def remove_job(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)
        self._rendered.pop(job_id, None)
        self._payee_data.pop(job_id, None)

    # -------------------------------------------------------------------------
    # Rendered view
    # -------------------------------------------------------------------------

    def publish(self, job: BatchJob) -> None:
        if job.id in self._jobs:
            self._rendered[job.id] = job

    def rendered_job(self, job_id: str) -> Optional[BatchJob]:
        return self._rendered.get(job_id)

    # -------------------------------------------------------------------------
    # Payee data
    # -------------------------------------------------------------------------

    def set_payee_data(self, job_id: str, data: PayeeRowData) -> None:
        self._payee_data[job_id] = data

    def get_payee_data(self, job_id: str) -> Optional[PayeeRowData]:
        return self._payee_data.get(job_id)

    # -------------------------------------------------------------------------
    # Emergency stop
    # -------------------------------------------------------------------------

    @property
    def emergency_stop(self) -> bool:
        return self._emergency_stop

    def activate_emergency_stop(self, reason: str) -> None:
        if not self._emergency_stop:
            logger.warning("Emergency stop activated: %s", reason)
        self._emergency_stop = True

    def clear_emergency_stop(self) -> None:
        if self._emergency_stop:
            logger.info("Emergency stop cleared")
        self._emergency_stop = False
