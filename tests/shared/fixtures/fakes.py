"""In-memory stand-ins for the provider, blob store and local cache, plus a
unit of work that can be switched off to simulate a store outage.

Usage:
    from tests.shared.fixtures.fakes import FakeProvider, InMemoryBlobStore

    provider = FakeProvider()
    provider.results = {0: {"classification": "Business", "confidence": 90}}
"""

from collections import deque
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Mapping, Optional, Sequence

from payeebatch.application.ports import Repositories, UnitOfWorkFactory
from payeebatch.domain.batch.batch_job import BatchJob
from payeebatch.domain.batch.exceptions import StoreUnavailableError
from payeebatch.domain.batch.ports import (
    BatchClassificationProvider,
    BlobStore,
    LocalCache,
    RawResults,
)
from payeebatch.domain.batch.status_update import JobStatusUpdate, UpdateSource
from payeebatch.domain.batch.value_objects import BatchJobStatus, RequestCounts

FIXED_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeProvider(BatchClassificationProvider):
    """Scriptable provider.

    - ``statuses[job_id]`` is what ``get_job`` reports (default: in progress)
    - ``results`` is returned by ``get_job_results``
    - exceptions queued in ``errors[method]`` are raised one per call
    """

    def __init__(
        self,
        job_ids: Sequence[str] = ("batch_test_001",),
        start: Optional[datetime] = None,
    ):
        self._job_ids = deque(job_ids)
        self.created: list[tuple[str, list[str]]] = []
        self.statuses: dict[str, JobStatusUpdate] = {}
        self.results: RawResults = {}
        self.errors: dict[str, deque] = {}
        self.calls: dict[str, int] = {}
        self.clock = start or datetime.now(timezone.utc)

    def fail(self, method: str, *exceptions: Exception) -> None:
        self.errors.setdefault(method, deque()).extend(exceptions)

    def _enter(self, method: str) -> None:
        self.calls[method] = self.calls.get(method, 0) + 1
        queue = self.errors.get(method)
        if queue:
            raise queue.popleft()

    def tick(self, seconds: int = 1) -> datetime:
        self.clock += timedelta(seconds=seconds)
        return self.clock

    def update(
        self,
        job_id: str,
        status: BatchJobStatus,
        completed: int = 0,
        failed: int = 0,
        total: int = 0,
        **kwargs: Any,
    ) -> JobStatusUpdate:
        return JobStatusUpdate(
            job_id=job_id,
            status=status,
            request_counts=RequestCounts(total=total, completed=completed, failed=failed),
            observed_at=self.tick(),
            **kwargs,
        )

    async def create_job(
        self,
        names: Sequence[str],
        description: Optional[str] = None,
    ) -> JobStatusUpdate:
        self._enter("create_job")
        job_id = self._job_ids.popleft() if self._job_ids else f"batch_{len(self.created):03d}"
        self.created.append((job_id, list(names)))
        update = JobStatusUpdate(
            job_id=job_id,
            status=BatchJobStatus.VALIDATING,
            request_counts=RequestCounts(total=len(names)),
            observed_at=self.tick(),
            created_at=self.clock,
            source=UpdateSource.CREATE,
        )
        self.statuses.setdefault(
            job_id,
            self.update(job_id, BatchJobStatus.IN_PROGRESS, total=len(names)),
        )
        return update

    async def get_job(self, job_id: str) -> JobStatusUpdate:
        self._enter("get_job")
        current = self.statuses.get(job_id)
        if current is None:
            return self.update(job_id, BatchJobStatus.IN_PROGRESS)
        return JobStatusUpdate(
            job_id=job_id,
            status=current.status,
            request_counts=current.request_counts,
            observed_at=self.tick(),
            output_file_id=current.output_file_id,
            error_file_id=current.error_file_id,
        )

    async def cancel_job(self, job_id: str) -> JobStatusUpdate:
        self._enter("cancel_job")
        update = self.update(job_id, BatchJobStatus.CANCELLING, source=UpdateSource.CANCEL)
        self.statuses[job_id] = update
        return update

    async def get_job_results(self, job: BatchJob, names: Sequence[str]) -> RawResults:
        self._enter("get_job_results")
        return dict(self.results)


class InMemoryBlobStore(BlobStore):
    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.fail_remove = False

    async def upload(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        self.blobs[key] = bytes(data)
        return self.get_public_url(key)

    async def download(self, key: str) -> bytes:
        if key not in self.blobs:
            raise FileNotFoundError(key)
        return self.blobs[key]

    def get_public_url(self, key: str) -> str:
        return f"memory://{key}"

    async def remove(self, key: str) -> bool:
        if self.fail_remove:
            raise OSError(f"blob store refused to delete {key}")
        return self.blobs.pop(key, None) is not None


class InMemoryLocalCache(LocalCache):
    def __init__(self):
        self.entries: dict[tuple[str, str], dict[str, Any]] = {}

    async def put(self, namespace: str, job_id: str, payload: Mapping[str, Any]) -> None:
        self.entries[(namespace, job_id)] = dict(payload)

    async def get(self, namespace: str, job_id: str) -> Optional[dict[str, Any]]:
        return self.entries.get((namespace, job_id))

    async def delete(self, namespace: str, job_id: str) -> None:
        self.entries.pop((namespace, job_id), None)

    async def keys(self, namespace: str) -> list[str]:
        return sorted(job_id for ns, job_id in self.entries if ns == namespace)


class SwitchableUnitOfWork(UnitOfWorkFactory):
    """Wraps a real unit of work; ``down = True`` simulates an outage."""

    def __init__(self, inner: UnitOfWorkFactory):
        self._inner = inner
        self.down = False

    def __call__(self):
        return self._scope()

    @asynccontextmanager
    async def _scope(self) -> AsyncIterator[Repositories]:
        if self.down:
            raise StoreUnavailableError("Database unavailable: connection refused")
        async with self._inner() as repos:
            yield repos
