"""SQLAlchemy model for generated download files."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payeebatch.infrastructure.persistence.sqlalchemy.models.base import (
    Base,
    TimestampMixin,
)


class DownloadArtifactModel(Base, TimestampMixin):
    __tablename__ = "download_artifacts"

    __table_args__ = (
        UniqueConstraint("batch_id", "file_format", name="uq_artifact_batch_format"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    file_format: Mapped[str] = mapped_column(String(10), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(512), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    row_count: Mapped[int] = mapped_column(Integer, nullable=False)
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_stale: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
