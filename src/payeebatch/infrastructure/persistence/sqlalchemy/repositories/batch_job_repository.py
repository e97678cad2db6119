"""SQLAlchemy implementation of BatchJobRepository."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from payeebatch.domain.batch.batch_job import BatchJob
from payeebatch.domain.batch.repositories import BatchJobRepository, StoredPayeeData
from payeebatch.domain.batch.value_objects import BatchJobStatus, RequestCounts
from payeebatch.domain.payees.row_mapping import PayeeRowData
from payeebatch.domain.shared.time import ensure_tz_aware, utc_now
from payeebatch.infrastructure.persistence.sqlalchemy.models import BatchJobModel
from payeebatch.infrastructure.persistence.sqlalchemy.repositories.upsert import (
    upsert_statement,
)

logger = logging.getLogger(__name__)

_LIFECYCLE_COLUMNS = {
    BatchJobStatus.VALIDATING: "validating_at",
    BatchJobStatus.IN_PROGRESS: "in_progress_at",
    BatchJobStatus.FINALIZING: "finalizing_at",
    BatchJobStatus.CANCELLING: "cancelling_at",
    BatchJobStatus.COMPLETED: "completed_at",
    BatchJobStatus.FAILED: "failed_at",
    BatchJobStatus.EXPIRED: "expired_at",
    BatchJobStatus.CANCELLED: "cancelled_at",
}


class BatchJobRepositorySQLAlchemy(BatchJobRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def save(
        self,
        job: BatchJob,
        payee_row_data: Optional[PayeeRowData] = None,
        payload_blob_key: Optional[str] = None,
    ) -> None:
        now = utc_now()
        values = {**self._job_values(job), "created_at": now, "updated_at": now}
        if payee_row_data is not None:
            values["payee_mapping"] = payee_row_data.to_dict(include_file_data=False)
            values["payload_blob_key"] = payload_blob_key
            values["original_file_data"] = (
                None
                if payload_blob_key
                else [dict(row) for row in payee_row_data.original_file_data]
            )

        # Payee data is only replaced when this call carries it
        update_columns = [column for column in values if column not in ("id", "created_at")]
        stmt = upsert_statement(
            self._session,
            BatchJobModel.__table__,
            [values],
            conflict_columns=["id"],
            update_columns=update_columns,
        )
        await self._session.execute(stmt)
        logger.debug("Saved batch job %s (%s)", job.id, job.status.value)

    async def find_by_id(self, job_id: str) -> Optional[BatchJob]:
        model = await self._find_model(job_id)
        return self._model_to_domain(model) if model else None

    async def find_all(self) -> list[BatchJob]:
        stmt = (
            select(BatchJobModel)
            .order_by(BatchJobModel.job_created_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [self._model_to_domain(m) for m in result.scalars().all()]

    async def find_payee_data(self, job_id: str) -> Optional[StoredPayeeData]:
        model = await self._find_model(job_id)
        if model is None or model.payee_mapping is None:
            return None
        return StoredPayeeData(
            mapping=dict(model.payee_mapping),
            original_file_data=model.original_file_data,
            payload_blob_key=model.payload_blob_key,
        )

    async def delete(self, job_id: str) -> bool:
        result = await self._session.execute(
            delete(BatchJobModel).where(BatchJobModel.id == job_id),
        )
        await self._session.flush()
        return result.rowcount > 0

    async def _find_model(self, job_id: str) -> Optional[BatchJobModel]:
        # Upserts bypass the identity map, so always reload from the store
        return await self._session.get(BatchJobModel, job_id, populate_existing=True)

    @staticmethod
    def _job_values(job: BatchJob) -> dict[str, Any]:
        values: dict[str, Any] = {
            "id": job.id,
            "status": job.status,
            "description": job.description,
            "payee_count": job.payee_count,
            "total_requests": job.request_counts.total,
            "completed_requests": job.request_counts.completed,
            "failed_requests": job.request_counts.failed,
            "job_created_at": job.created_at,
            "last_update_at": job.last_update_at,
            "output_file_id": job.output_file_id,
            "error_file_id": job.error_file_id,
            "errors": list(job.errors),
            "metadata": dict(job.metadata),
        }
        for status, column in _LIFECYCLE_COLUMNS.items():
            values[column] = job.timestamp_for(status)
        return values

    @staticmethod
    def _model_to_domain(model: BatchJobModel) -> BatchJob:
        timestamps = {
            column: _aware(getattr(model, column)) for column in _LIFECYCLE_COLUMNS.values()
        }
        return BatchJob(
            id=model.id,
            status=model.status,
            request_counts=RequestCounts(
                total=model.total_requests,
                completed=model.completed_requests,
                failed=model.failed_requests,
            ),
            created_at=ensure_tz_aware(model.job_created_at),
            description=model.description or "",
            payee_count=model.payee_count,
            output_file_id=model.output_file_id,
            error_file_id=model.error_file_id,
            errors=tuple(model.errors or ()),
            last_update_at=_aware(model.last_update_at),
            metadata=dict(model.job_metadata or {}),
            **timestamps,
        )


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_tz_aware(value) if value is not None else None
