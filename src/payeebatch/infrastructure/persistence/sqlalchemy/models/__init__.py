"""SQLAlchemy models for the persistence layer."""

from payeebatch.infrastructure.persistence.sqlalchemy.models.base import Base
from payeebatch.infrastructure.persistence.sqlalchemy.models.batch_job_model import (
    BatchJobModel,
)
from payeebatch.infrastructure.persistence.sqlalchemy.models.classification_record_model import (  # noqa: E501
    CLASSIFICATION_ROW_NAMESPACE,
    ClassificationRecordModel,
    classification_row_id,
)
from payeebatch.infrastructure.persistence.sqlalchemy.models.download_artifact_model import (  # noqa: E501
    DownloadArtifactModel,
)

__all__ = [
    "Base",
    "BatchJobModel",
    "CLASSIFICATION_ROW_NAMESPACE",
    "ClassificationRecordModel",
    "DownloadArtifactModel",
    "classification_row_id",
]
