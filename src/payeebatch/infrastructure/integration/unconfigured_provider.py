"""Stand-in provider used when no provider credential is configured."""

from __future__ import annotations

from typing import NoReturn, Optional, Sequence

from payeebatch.domain.batch.batch_job import BatchJob
from payeebatch.domain.batch.exceptions import ProviderAuthError
from payeebatch.domain.batch.ports import BatchClassificationProvider, RawResults
from payeebatch.domain.batch.status_update import JobStatusUpdate


class UnconfiguredProvider(BatchClassificationProvider):
    """Rejects every call with a non-retryable ``ProviderAuthError``.

    Recovery in ``auto`` mode then falls through to local classification.
    """

    MESSAGE = "No provider API key configured; only local processing is available"

    def _reject(self) -> NoReturn:
        raise ProviderAuthError(self.MESSAGE)

    async def create_job(
        self,
        names: Sequence[str],
        description: Optional[str] = None,
    ) -> JobStatusUpdate:
        self._reject()

    async def get_job(self, job_id: str) -> JobStatusUpdate:
        self._reject()

    async def cancel_job(self, job_id: str) -> JobStatusUpdate:
        self._reject()

    async def get_job_results(self, job: BatchJob, names: Sequence[str]) -> RawResults:
        self._reject()
