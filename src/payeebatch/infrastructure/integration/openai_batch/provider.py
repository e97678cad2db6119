"""BatchClassificationProvider backed by the OpenAI Batch API."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Optional, Sequence

import openai
from openai import AsyncOpenAI
from pydantic import ValidationError

from payeebatch.domain.batch.batch_job import BatchJob
from payeebatch.domain.batch.exceptions import (
    ProviderAuthError,
    ProviderError,
    ProviderJobNotFoundError,
    ProviderUnavailableError,
)
from payeebatch.domain.batch.ports import BatchClassificationProvider, RawResults
from payeebatch.domain.batch.status_update import JobStatusUpdate, UpdateSource
from payeebatch.domain.batch.value_objects import BatchJobStatus, RequestCounts
from payeebatch.domain.shared.time import from_epoch, utc_now
from payeebatch.infrastructure.integration.openai_batch.contracts import (
    CHAT_COMPLETIONS_ENDPOINT,
    BatchOutputLine,
    BatchRequestLine,
)

logger = logging.getLogger(__name__)

_TIMESTAMP_ATTRS = {
    BatchJobStatus.IN_PROGRESS: "in_progress_at",
    BatchJobStatus.FINALIZING: "finalizing_at",
    BatchJobStatus.CANCELLING: "cancelling_at",
    BatchJobStatus.COMPLETED: "completed_at",
    BatchJobStatus.FAILED: "failed_at",
    BatchJobStatus.EXPIRED: "expired_at",
    BatchJobStatus.CANCELLED: "cancelled_at",
}


def _translate(exc: Exception, job_id: Optional[str] = None) -> ProviderError:
    """Map SDK exceptions onto the provider error taxonomy."""
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ProviderAuthError(f"Provider rejected credentials: {exc}")
    if isinstance(exc, openai.NotFoundError) and job_id is not None:
        return ProviderJobNotFoundError(job_id)
    if isinstance(
        exc,
        (
            openai.APIConnectionError,
            openai.RateLimitError,
            openai.InternalServerError,
        ),
    ):
        return ProviderUnavailableError(f"Provider unavailable: {exc}")
    return ProviderError(f"Provider request failed: {exc}")


class OpenAIBatchProvider(BatchClassificationProvider):
    """Submits one chat-completion request per unique payee as a batch."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "gpt-4o-mini",
        completion_window: str = "24h",
    ):
        self._client = client
        self._model = model
        self._completion_window = completion_window

    @staticmethod
    def _check_id(job_id: str) -> None:
        if not job_id or not job_id.startswith("batch_"):
            raise ProviderJobNotFoundError(job_id, reason="malformed id")

    async def create_job(
        self,
        names: Sequence[str],
        description: Optional[str] = None,
    ) -> JobStatusUpdate:
        timestamp_ms = int(time.time() * 1000)
        lines = [
            BatchRequestLine.for_payee(index, name, self._model, timestamp_ms).model_dump_json()
            for index, name in enumerate(names)
        ]
        payload = "\n".join(lines).encode("utf-8")

        try:
            input_file = await self._client.files.create(
                file=("batch_requests.jsonl", payload),
                purpose="batch",
            )
            batch = await self._client.batches.create(
                input_file_id=input_file.id,
                endpoint=CHAT_COMPLETIONS_ENDPOINT,
                completion_window=self._completion_window,
                metadata={
                    "payee_count": str(len(names)),
                    "description": (description or "Payee classification batch")[:512],
                },
            )
        except openai.OpenAIError as e:
            raise _translate(e) from e

        logger.info(
            "Submitted batch %s with %d payees (input file %s)",
            batch.id,
            len(names),
            input_file.id,
        )
        return self._to_update(batch, UpdateSource.CREATE, fallback_total=len(names))

    async def get_job(self, job_id: str) -> JobStatusUpdate:
        self._check_id(job_id)
        try:
            batch = await self._client.batches.retrieve(job_id)
        except openai.OpenAIError as e:
            raise _translate(e, job_id) from e
        return self._to_update(batch, UpdateSource.POLL)

    async def cancel_job(self, job_id: str) -> JobStatusUpdate:
        self._check_id(job_id)
        try:
            batch = await self._client.batches.cancel(job_id)
        except openai.OpenAIError as e:
            raise _translate(e, job_id) from e
        logger.info("Cancellation requested for batch %s (%s)", job_id, batch.status)
        return self._to_update(batch, UpdateSource.CANCEL)

    async def get_job_results(self, job: BatchJob, names: Sequence[str]) -> RawResults:
        output_file_id = job.output_file_id
        error_file_id = job.error_file_id
        if output_file_id is None:
            snapshot = await self.get_job(job.id)
            output_file_id = snapshot.output_file_id
            error_file_id = error_file_id or snapshot.error_file_id
        if output_file_id is None and error_file_id is None:
            msg = f"Batch {job.id} has no output file"
            raise ProviderError(msg, details={"job_id": job.id})

        results: dict[int, Any] = {}
        for file_id in (error_file_id, output_file_id):
            if file_id is None:
                continue
            for line in await self._read_jsonl(file_id):
                index = line.payee_index
                if index is None or not 0 <= index < len(names):
                    logger.warning("Ignoring result with unexpected id %s", line.custom_id)
                    continue
                results[index] = line.raw_result()

        logger.info(
            "Downloaded %d of %d results for batch %s",
            len(results),
            len(names),
            job.id,
        )
        return results

    async def _read_jsonl(self, file_id: str) -> list[BatchOutputLine]:
        try:
            content = await self._client.files.content(file_id)
        except openai.OpenAIError as e:
            raise _translate(e) from e

        lines: list[BatchOutputLine] = []
        for number, text in enumerate(content.text.splitlines(), start=1):
            if not text.strip():
                continue
            try:
                lines.append(BatchOutputLine.model_validate(json.loads(text)))
            except (json.JSONDecodeError, ValidationError) as e:
                logger.warning("Skipping unparsable line %d of %s: %s", number, file_id, e)
        return lines

    @staticmethod
    def _to_update(
        batch: Any,
        source: UpdateSource,
        fallback_total: int = 0,
    ) -> JobStatusUpdate:
        status = BatchJobStatus(batch.status)
        counts = batch.request_counts
        timestamps = {
            s: when
            for s, attr in _TIMESTAMP_ATTRS.items()
            if (when := from_epoch(getattr(batch, attr, None))) is not None
        }
        created_at = from_epoch(batch.created_at)
        if created_at is not None:
            timestamps[BatchJobStatus.VALIDATING] = created_at

        errors: tuple[str, ...] = ()
        if batch.errors is not None and batch.errors.data:
            errors = tuple(
                f"{e.code or 'error'}: {e.message or ''}".strip() for e in batch.errors.data
            )

        return JobStatusUpdate(
            job_id=batch.id,
            status=status,
            request_counts=RequestCounts(
                total=(counts.total if counts else 0) or fallback_total,
                completed=counts.completed if counts else 0,
                failed=counts.failed if counts else 0,
            ),
            observed_at=utc_now(),
            timestamps=timestamps,
            created_at=created_at,
            output_file_id=batch.output_file_id,
            error_file_id=batch.error_file_id,
            errors=errors,
            source=source,
        )
