"""SQLAlchemy repository implementations."""

from payeebatch.infrastructure.persistence.sqlalchemy.repositories.batch_job_repository import (  # noqa: E501
    BatchJobRepositorySQLAlchemy,
)
from payeebatch.infrastructure.persistence.sqlalchemy.repositories.classification_row_repository import (  # noqa: E501
    ClassificationRowRepositorySQLAlchemy,
)
from payeebatch.infrastructure.persistence.sqlalchemy.repositories.download_artifact_repository import (  # noqa: E501
    DownloadArtifactRepositorySQLAlchemy,
)
from payeebatch.infrastructure.persistence.sqlalchemy.repositories.factory import (
    SQLAlchemyRepositoryFactory,
)

__all__ = [
    "BatchJobRepositorySQLAlchemy",
    "ClassificationRowRepositorySQLAlchemy",
    "DownloadArtifactRepositorySQLAlchemy",
    "SQLAlchemyRepositoryFactory",
]
