"""Batch job domain: lifecycle, health policy, ports and repositories."""

from payeebatch.domain.batch.batch_job import BatchJob
from payeebatch.domain.batch.exceptions import (
    BatchJobNotFoundError,
    InvalidTransitionError,
    JobNotCompletedError,
    PayeeDataNotFoundError,
    ProviderAuthError,
    ProviderError,
    ProviderJobNotFoundError,
    ProviderUnavailableError,
    StoreUnavailableError,
)
from payeebatch.domain.batch.health import JobHealth, JobHealthPolicy
from payeebatch.domain.batch.ports import (
    BatchClassificationProvider,
    BlobStore,
    LocalCache,
    RawResults,
)
from payeebatch.domain.batch.repositories import (
    BatchJobRepository,
    ClassificationRowRepository,
    DownloadArtifact,
    DownloadArtifactRepository,
    RowSaveStats,
    StoredPayeeData,
)
from payeebatch.domain.batch.state_machine import BatchJobStateMachine
from payeebatch.domain.batch.status_update import JobStatusUpdate, UpdateSource
from payeebatch.domain.batch.value_objects import (
    BatchJobStatus,
    HealthFlag,
    RequestCounts,
)

__all__ = [
    "BatchClassificationProvider",
    "BatchJob",
    "BatchJobNotFoundError",
    "BatchJobRepository",
    "BatchJobStateMachine",
    "BatchJobStatus",
    "BlobStore",
    "ClassificationRowRepository",
    "DownloadArtifact",
    "DownloadArtifactRepository",
    "HealthFlag",
    "InvalidTransitionError",
    "JobHealth",
    "JobHealthPolicy",
    "JobNotCompletedError",
    "JobStatusUpdate",
    "LocalCache",
    "PayeeDataNotFoundError",
    "ProviderAuthError",
    "ProviderError",
    "ProviderJobNotFoundError",
    "ProviderUnavailableError",
    "RawResults",
    "RequestCounts",
    "RowSaveStats",
    "StoreUnavailableError",
    "StoredPayeeData",
    "UpdateSource",
]
