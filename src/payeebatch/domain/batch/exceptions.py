"""Exceptions for the batch job domain."""

from typing import Any, Optional

from payeebatch.domain.batch.value_objects import BatchJobStatus
from payeebatch.domain.shared.exceptions import (
    BusinessRuleViolation,
    ConflictError,
    DomainException,
    EntityNotFoundError,
    ErrorCode,
)


class BatchJobNotFoundError(EntityNotFoundError):
    def __init__(self, job_id: str):
        super().__init__(
            f"Batch job {job_id!r} not found",
            code=ErrorCode.JOB_NOT_FOUND,
            details={"job_id": job_id},
        )
        self.job_id = job_id


class PayeeDataNotFoundError(EntityNotFoundError):
    def __init__(self, job_id: str):
        super().__init__(
            f"No payee data stored for batch job {job_id!r}",
            code=ErrorCode.PAYEE_DATA_NOT_FOUND,
            details={"job_id": job_id},
        )
        self.job_id = job_id


class InvalidTransitionError(ConflictError):
    def __init__(self, job_id: str, current: BatchJobStatus, target: BatchJobStatus):
        super().__init__(
            f"Batch job {job_id!r} cannot move from {current.value} to {target.value}",
            code=ErrorCode.INVALID_TRANSITION,
            details={"job_id": job_id, "from": current.value, "to": target.value},
        )
        self.current = current
        self.target = target


class JobNotCompletedError(BusinessRuleViolation):
    def __init__(self, job_id: str, status: BatchJobStatus):
        super().__init__(
            f"Batch job {job_id!r} is {status.value}, results are not available",
            code=ErrorCode.JOB_NOT_COMPLETED,
            details={"job_id": job_id, "status": status.value},
        )


class ProviderError(DomainException):
    """Base class for failures talking to the classification provider."""

    retryable = False

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.PROVIDER_ERROR,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, details)


class ProviderUnavailableError(ProviderError):
    """Transient failure: network blip, timeout, rate limit or 5xx."""

    retryable = True

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, ErrorCode.PROVIDER_UNAVAILABLE, details)


class ProviderAuthError(ProviderError):
    """Credential or permission problem. Never retried."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, ErrorCode.PROVIDER_AUTH_FAILED, details)


class ProviderJobNotFoundError(ProviderError):
    """The provider confirmed that it does not know this job id."""

    def __init__(self, job_id: str, reason: str = "not found"):
        super().__init__(
            f"Provider does not know batch job {job_id!r} ({reason})",
            ErrorCode.PROVIDER_JOB_NOT_FOUND,
            {"job_id": job_id, "reason": reason},
        )
        self.job_id = job_id


class StoreUnavailableError(DomainException):
    """The relational or blob store could not be reached."""

    retryable = True

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, ErrorCode.STORE_UNAVAILABLE, details)
