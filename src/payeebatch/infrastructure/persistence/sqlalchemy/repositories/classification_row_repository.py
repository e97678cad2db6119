"""SQLAlchemy implementation of ClassificationRowRepository."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from payeebatch.domain.batch.repositories import ClassificationRowRepository, RowSaveStats
from payeebatch.domain.classification.industry_codes import validate_industry_code
from payeebatch.domain.classification.value_objects import (
    Classification,
    ClassificationRecord,
    KeywordExclusion,
    ProcessingTier,
)
from payeebatch.domain.payees.row_mapping import ExpandedRow, RowMapping
from payeebatch.domain.shared.time import utc_now
from payeebatch.infrastructure.persistence.sqlalchemy.models import (
    ClassificationRecordModel,
    classification_row_id,
)
from payeebatch.infrastructure.persistence.sqlalchemy.repositories.upsert import (
    UPSERT_CHUNK_SIZE,
    upsert_statement,
)

logger = logging.getLogger(__name__)

_COMPARED_COLUMNS = (
    "payee_name",
    "normalized_payee_name",
    "unique_payee_index",
    "unique_payee_name",
    "classification",
    "confidence",
    "reasoning",
    "processing_tier",
    "processing_method",
    "sic_code",
    "sic_description",
    "keyword_exclusion",
    "warnings",
    "original_data",
    "is_placeholder",
)


class ClassificationRowRepositorySQLAlchemy(ClassificationRowRepository):
    """Per-row results keyed by (batch_id, row_index).

    Deduplication:
    - the row id is a uuid5 of (batch_id, row_index), so a re-run maps onto
      the same rows
    - repeated row indexes inside one call are stored once
    - rows identical to what is stored are counted as unchanged
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def save_rows(
        self,
        job_id: str,
        rows: Sequence[ExpandedRow],
    ) -> RowSaveStats:
        stats = RowSaveStats(attempted=len(rows))
        if not rows:
            return stats

        # Step 1: validate and deduplicate within the call
        accepted: dict[int, ExpandedRow] = {}
        for row in rows:
            reason = self._rejection_reason(row)
            if reason:
                stats.rejected.append((row.row_index, reason))
                continue
            if row.row_index in accepted:
                stats.duplicates_skipped += 1
                continue
            accepted[row.row_index] = row
            for warning in validate_industry_code(row.record):
                stats.industry_code_errors.append(
                    f"Row {row.row_index} ({row.mapping.payee_name}): {warning}",
                )

        # Step 2: load what is already stored for this job
        existing = await self._existing_by_index(job_id)

        # Step 3: sort into insert, update or skip
        pending: list[dict[str, Any]] = []
        now = utc_now()
        for row_index, row in accepted.items():
            values = self._row_values(row)
            stored = existing.get(row_index)
            if stored is None:
                stats.inserted += 1
            elif all(stored[column] == values[column] for column in _COMPARED_COLUMNS):
                stats.unchanged += 1
                continue
            else:
                stats.updated += 1
            pending.append(
                {
                    "id": classification_row_id(job_id, row_index),
                    "batch_id": job_id,
                    "row_index": row_index,
                    "created_at": now,
                    "updated_at": now,
                    **values,
                },
            )

        # Step 4: upsert keyed on (batch_id, row_index)
        for start in range(0, len(pending), UPSERT_CHUNK_SIZE):
            stmt = upsert_statement(
                self._session,
                ClassificationRecordModel.__table__,
                pending[start : start + UPSERT_CHUNK_SIZE],
                conflict_columns=["batch_id", "row_index"],
                update_columns=[*_COMPARED_COLUMNS, "updated_at"],
            )
            await self._session.execute(stmt)

        logger.info(
            "Saved classifications for %s: %d inserted, %d updated, %d unchanged, "
            "%d duplicates, %d rejected",
            job_id,
            stats.inserted,
            stats.updated,
            stats.unchanged,
            stats.duplicates_skipped,
            len(stats.rejected),
        )
        return stats

    async def find_by_job(self, job_id: str) -> list[ExpandedRow]:
        stmt = (
            select(ClassificationRecordModel)
            .where(ClassificationRecordModel.batch_id == job_id)
            .order_by(ClassificationRecordModel.row_index)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [self._model_to_domain(m) for m in result.scalars().all()]

    async def count_by_job(self, job_id: str) -> int:
        stmt = select(func.count()).where(ClassificationRecordModel.batch_id == job_id)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def count_by_jobs(self, job_ids: Sequence[str]) -> dict[str, int]:
        counts = dict.fromkeys(job_ids, 0)
        if not job_ids:
            return counts
        stmt = (
            select(ClassificationRecordModel.batch_id, func.count())
            .where(ClassificationRecordModel.batch_id.in_(list(job_ids)))
            .group_by(ClassificationRecordModel.batch_id)
        )
        result = await self._session.execute(stmt)
        for batch_id, count in result.all():
            counts[batch_id] = int(count)
        return counts

    async def delete_by_job(self, job_id: str) -> int:
        result = await self._session.execute(
            delete(ClassificationRecordModel).where(
                ClassificationRecordModel.batch_id == job_id,
            ),
        )
        await self._session.flush()
        return result.rowcount or 0

    async def _existing_by_index(self, job_id: str) -> dict[int, Mapping[str, Any]]:
        table = ClassificationRecordModel.__table__
        columns = [table.c.row_index, *(table.c[column] for column in _COMPARED_COLUMNS)]
        stmt = select(*columns).where(table.c.batch_id == job_id)
        result = await self._session.execute(stmt)
        return {row["row_index"]: row for row in result.mappings().all()}

    @staticmethod
    def _rejection_reason(row: ExpandedRow) -> str | None:
        if row.row_index < 0:
            return "negative row index"
        if row.mapping.original_row_index != row.row_index:
            return (
                f"row index {row.row_index} does not match mapping "
                f"{row.mapping.original_row_index}"
            )
        if not row.mapping.payee_name:
            return "missing payee name"
        return None

    @staticmethod
    def _row_values(row: ExpandedRow) -> dict[str, Any]:
        record = row.record
        return {
            "payee_name": row.mapping.payee_name,
            "normalized_payee_name": row.mapping.normalized_payee_name,
            "unique_payee_index": row.mapping.unique_payee_index,
            "unique_payee_name": record.payee_name,
            "classification": record.classification.value,
            "confidence": record.confidence,
            "reasoning": record.reasoning,
            "processing_tier": record.processing_tier.value,
            "processing_method": record.processing_method,
            "sic_code": record.sic_code,
            "sic_description": record.sic_description,
            "keyword_exclusion": record.keyword_exclusion.to_dict(),
            "warnings": list(record.warnings),
            "original_data": dict(row.original_data),
            "is_placeholder": row.is_placeholder,
        }

    @staticmethod
    def _model_to_domain(model: ClassificationRecordModel) -> ExpandedRow:
        record = ClassificationRecord(
            payee_name=model.unique_payee_name,
            classification=Classification(model.classification),
            confidence=model.confidence,
            reasoning=model.reasoning or "",
            processing_tier=ProcessingTier(model.processing_tier),
            processing_method=model.processing_method,
            keyword_exclusion=KeywordExclusion.from_dict(model.keyword_exclusion),
            sic_code=model.sic_code,
            sic_description=model.sic_description,
            warnings=tuple(model.warnings or ()),
        )
        return ExpandedRow(
            row_index=model.row_index,
            mapping=RowMapping(
                original_row_index=model.row_index,
                payee_name=model.payee_name,
                normalized_payee_name=model.normalized_payee_name,
                unique_payee_index=model.unique_payee_index,
            ),
            original_data=dict(model.original_data or {}),
            record=record,
            is_placeholder=model.is_placeholder,
        )
