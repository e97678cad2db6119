"""Application-layer DTOs."""

from payeebatch.application.dtos.results import (
    ActionResult,
    CleanupReport,
    DeleteReport,
    JobSaveResult,
    PhantomCleanupReport,
    PipelineResult,
    SaveStats,
)

__all__ = [
    "ActionResult",
    "CleanupReport",
    "DeleteReport",
    "JobSaveResult",
    "PhantomCleanupReport",
    "PipelineResult",
    "SaveStats",
]
