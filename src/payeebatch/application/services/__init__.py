"""Application services for the batch classification workflow."""

from payeebatch.application.services.batch_job_service import BatchJobService, RecoveryMode
from payeebatch.application.services.export_service import ExportService, export_headers
from payeebatch.application.services.persistence_service import JobPersistenceService
from payeebatch.application.services.recovery_service import RecoveryService
from payeebatch.application.services.result_pipeline import ResultPipeline
from payeebatch.application.services.sync_engine import JobStatusSyncEngine, RenderSampler

__all__ = [
    "BatchJobService",
    "ExportService",
    "JobPersistenceService",
    "JobStatusSyncEngine",
    "RecoveryMode",
    "RecoveryService",
    "RenderSampler",
    "ResultPipeline",
    "export_headers",
]
