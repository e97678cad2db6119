"""Pydantic schemas for API request/response models."""

from payeebatch.presentation.api.schemas.jobs import (
    ActionResultResponse,
    JobCreateRequest,
    JobListResponse,
    JobResponse,
    RequestCountsSchema,
    StatusEventRequest,
)
from payeebatch.presentation.api.schemas.maintenance import (
    CleanupResponse,
    OrphanListResponse,
    PhantomCleanupResponse,
)

__all__ = [
    "ActionResultResponse",
    "CleanupResponse",
    "JobCreateRequest",
    "JobListResponse",
    "JobResponse",
    "OrphanListResponse",
    "PhantomCleanupResponse",
    "RequestCountsSchema",
    "StatusEventRequest",
]
