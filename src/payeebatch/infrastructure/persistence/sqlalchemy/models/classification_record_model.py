"""SQLAlchemy model for per-row classification results."""

from __future__ import annotations

import uuid
from typing import Any, Optional

from sqlalchemy import Boolean, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from payeebatch.infrastructure.persistence.sqlalchemy.models.base import (
    Base,
    TimestampMixin,
)

# Namespace for deterministic row ids
CLASSIFICATION_ROW_NAMESPACE = uuid.UUID("6f1c2d8e-3b4a-5c6d-9e0f-a1b2c3d4e5f6")


def classification_row_id(batch_id: str, row_index: int) -> uuid.UUID:
    """Deterministic id; the same row of the same job always maps here."""
    return uuid.uuid5(CLASSIFICATION_ROW_NAMESPACE, f"{batch_id}:{row_index}")


class ClassificationRecordModel(Base, TimestampMixin):
    """One original upload row with its classification.

    Rows are not tied to ``batch_jobs`` by a foreign key: results written
    while the job row is missing or cached must still be storable.
    """

    __tablename__ = "classification_records"

    __table_args__ = (
        UniqueConstraint("batch_id", "row_index", name="uq_classification_batch_row"),
        Index("ix_classification_batch_id", "batch_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True)
    batch_id: Mapped[str] = mapped_column(String(255), nullable=False)
    row_index: Mapped[int] = mapped_column(Integer, nullable=False)

    payee_name: Mapped[str] = mapped_column(Text, nullable=False)
    normalized_payee_name: Mapped[str] = mapped_column(Text, nullable=False)
    unique_payee_index: Mapped[int] = mapped_column(Integer, nullable=False)
    unique_payee_name: Mapped[str] = mapped_column(Text, nullable=False)

    classification: Mapped[str] = mapped_column(String(20), nullable=False)
    confidence: Mapped[int] = mapped_column(Integer, nullable=False)
    reasoning: Mapped[str] = mapped_column(Text, nullable=False, default="")
    processing_tier: Mapped[str] = mapped_column(String(30), nullable=False)
    processing_method: Mapped[str] = mapped_column(String(100), nullable=False)
    sic_code: Mapped[Optional[str]] = mapped_column(String(20))
    sic_description: Mapped[Optional[str]] = mapped_column(Text)

    keyword_exclusion: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    warnings: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    original_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    is_placeholder: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return (
            f"<ClassificationRecordModel(batch_id={self.batch_id}, "
            f"row_index={self.row_index}, classification={self.classification})>"
        )
