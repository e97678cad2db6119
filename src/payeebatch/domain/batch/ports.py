"""Ports to external collaborators of the batch domain."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Sequence

from payeebatch.domain.batch.batch_job import BatchJob
from payeebatch.domain.batch.status_update import JobStatusUpdate

# Raw provider content per unique payee index, parsed later by the reconciler
RawResults = Mapping[int, Any]


class BatchClassificationProvider(ABC):
    """Remote batch classification service.

    Implementations translate transport failures into
    ``ProviderUnavailableError`` (transient), ``ProviderAuthError`` and
    ``ProviderJobNotFoundError`` (confirmed unknown id).
    """

    @abstractmethod
    async def create_job(
        self,
        names: Sequence[str],
        description: Optional[str] = None,
    ) -> JobStatusUpdate:
        """Submit the unique payee names and return the new job's state."""

    @abstractmethod
    async def get_job(self, job_id: str) -> JobStatusUpdate:
        """Fetch the current remote state of a job."""

    @abstractmethod
    async def cancel_job(self, job_id: str) -> JobStatusUpdate:
        """Request cancellation and return the resulting state."""

    @abstractmethod
    async def get_job_results(
        self,
        job: BatchJob,
        names: Sequence[str],
    ) -> RawResults:
        """Download raw results keyed by unique payee index."""


class BlobStore(ABC):
    """Object storage for download artifacts and offloaded payloads."""

    @abstractmethod
    async def upload(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        """Store ``data`` under ``key`` (overwriting) and return its URL."""

    @abstractmethod
    async def download(self, key: str) -> bytes:
        """Return the stored bytes. Raises FileNotFoundError when missing."""

    @abstractmethod
    def get_public_url(self, key: str) -> str:
        """URL for ``key`` without checking that it exists."""

    @abstractmethod
    async def remove(self, key: str) -> bool:
        """Delete ``key``; returns False when nothing was stored."""


class LocalCache(ABC):
    """Fallback key/value storage, namespaced by job id."""

    @abstractmethod
    async def put(self, namespace: str, job_id: str, payload: Mapping[str, Any]) -> None:
        """Store ``payload``, replacing earlier content for the key."""

    @abstractmethod
    async def get(self, namespace: str, job_id: str) -> Optional[dict[str, Any]]:
        """Return the payload or None."""

    @abstractmethod
    async def delete(self, namespace: str, job_id: str) -> None:
        """Remove the key if present."""

    @abstractmethod
    async def keys(self, namespace: str) -> list[str]:
        """Job ids with a cached payload in ``namespace``."""
