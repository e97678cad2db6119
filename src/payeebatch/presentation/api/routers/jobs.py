"""Jobs router: submit, track, cancel, recover and download batch jobs."""

import logging
from io import BytesIO
from pathlib import PurePosixPath
from typing import Annotated

from fastapi import APIRouter, Query, status
from fastapi.responses import StreamingResponse

from payeebatch.application.services import RecoveryMode
from payeebatch.presentation.api.dependencies import (
    ExportServiceDep,
    JobServiceDep,
    RecoveryServiceDep,
    SyncEngineDep,
)
from payeebatch.presentation.api.schemas import (
    ActionResultResponse,
    JobCreateRequest,
    JobListResponse,
    JobResponse,
    StatusEventRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Submit an upload for classification",
    responses={
        201: {"description": "Batch job created"},
        400: {"description": "No payee column or no payee names"},
        502: {"description": "Provider rejected the job"},
        503: {"description": "Provider unavailable"},
    },
)
async def create_job(
    request: JobCreateRequest,
    job_service: JobServiceDep,
) -> JobResponse:
    """
    Create a batch classification job from uploaded rows.

    Rows are deduplicated by normalized payee name; only unique payees are
    sent to the provider. The row mapping is stored with the job so every
    original row can be restored when results arrive.
    """
    job = await job_service.create_job(
        request.rows,
        payee_column=request.payee_column,
        description=request.description,
        file_name=request.file_name,
    )
    return JobResponse.from_domain(job, job_service.assess(job))


@router.get(
    "",
    summary="List jobs",
    responses={200: {"description": "Jobs in the working set with health flags"}},
)
async def list_jobs(
    job_service: JobServiceDep,
    rendered: Annotated[
        bool,
        Query(description="Return the sampled display view instead of live state"),
    ] = False,
) -> JobListResponse:
    """
    List all jobs of the working set, newest first.

    Active jobs carry advisory health flags:
    - `queued_too_long`: no progress after the queue timeout
    - `possibly_stalled`: little progress after the stall timeout
    - `auto_cancel_due`: past the hard ceiling
    """
    jobs = [
        JobResponse.from_domain(job, health)
        for job, health in job_service.list_jobs(rendered=rendered)
    ]
    return JobListResponse(jobs=jobs, total=len(jobs))


@router.get(
    "/{job_id}",
    summary="Get job",
    responses={
        200: {"description": "Current job state"},
        404: {"description": "Job not found"},
    },
)
async def get_job(job_id: str, job_service: JobServiceDep) -> JobResponse:
    job = job_service.get_job(job_id)
    return JobResponse.from_domain(job, job_service.assess(job))


@router.post(
    "/{job_id}/refresh",
    summary="Poll the provider once",
    responses={
        200: {"description": "Job state after the poll"},
        404: {"description": "Job not found"},
        503: {"description": "Provider unavailable"},
    },
)
async def refresh_job(job_id: str, job_service: JobServiceDep) -> JobResponse:
    job = await job_service.refresh_job(job_id)
    return JobResponse.from_domain(job, job_service.assess(job))


@router.post(
    "/{job_id}/cancel",
    summary="Cancel job",
    responses={
        200: {"description": "Cancellation outcome (check `success`)"},
        404: {"description": "Job not found"},
    },
)
async def cancel_job(job_id: str, job_service: JobServiceDep) -> ActionResultResponse:
    """
    Request cancellation at the provider.

    Transient failures are retried. The job only changes locally once the
    provider accepted the request; polling continues until the provider
    reports a terminal state.
    """
    result = await job_service.cancel_job(job_id)
    return ActionResultResponse.from_result(result)


@router.post(
    "/{job_id}/recover",
    summary="Recover a stuck job",
    responses={
        200: {"description": "Recovery outcome (check `success`)"},
        404: {"description": "Job not found"},
    },
)
async def recover_job(
    job_id: str,
    job_service: JobServiceDep,
    mode: Annotated[
        RecoveryMode,
        Query(description="`recreate` at the provider, `local` heuristic, or `auto`"),
    ] = RecoveryMode.AUTO,
) -> ActionResultResponse:
    """
    Recover a job that is stuck or failed.

    **Modes:**
    - `recreate`: cancel and resubmit the same unique payees
    - `local`: classify with the local heuristic fallback
    - `auto`: recreate, falling back to local when the provider is down
    """
    result = await job_service.recover_job(job_id, mode)
    return ActionResultResponse.from_result(result)


@router.delete(
    "/{job_id}",
    summary="Delete job",
    responses={
        200: {"description": "Delete outcome (check `success`)"},
    },
)
async def delete_job(job_id: str, job_service: JobServiceDep) -> ActionResultResponse:
    """
    Delete a job and everything stored for it.

    Steps run in order (job, row mapping, classifications, artifacts); a
    failing step does not stop the ones after it.
    """
    result = await job_service.delete_job(job_id)
    return ActionResultResponse.from_result(result)


@router.post(
    "/{job_id}/status-events",
    summary="Push a status update",
    responses={
        200: {"description": "Job state after the update was applied"},
        404: {"description": "Job not found"},
    },
)
async def push_status_event(
    job_id: str,
    event: StatusEventRequest,
    job_service: JobServiceDep,
    sync_engine: SyncEngineDep,
) -> JobResponse:
    """
    Accept an out-of-band status observation.

    The update goes through the same queue as polling results, so stale
    or regressing observations are ignored.
    """
    job_service.get_job(job_id)
    await sync_engine.push(event.to_update(job_id))
    await sync_engine.drain()
    job = job_service.get_job(job_id)
    return JobResponse.from_domain(job, job_service.assess(job))


@router.post(
    "/{job_id}/results",
    summary="Ensure results are stored",
    responses={
        200: {"description": "Outcome (check `success`)"},
        404: {"description": "Job not found"},
    },
)
async def ensure_results(
    job_id: str,
    recovery_service: RecoveryServiceDep,
) -> ActionResultResponse:
    """
    Download and store results for a completed job if none are stored.

    Idempotent: returns success without work when rows already exist.
    """
    result = await recovery_service.ensure_results(job_id)
    return ActionResultResponse.from_result(result)


@router.get(
    "/{job_id}/download",
    response_class=StreamingResponse,
    summary="Download classified rows",
    responses={
        200: {
            "description": "Classified rows (one per original row)",
            "content": {
                "text/csv": {},
                "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": {},
            },
        },
        400: {"description": "Unsupported format"},
        404: {"description": "Job or results not found"},
        422: {"description": "Job is not completed"},
    },
)
async def download_results(
    job_id: str,
    export_service: ExportServiceDep,
    file_format: Annotated[
        str,
        Query(alias="format", description="`csv` or `xlsx`"),
    ] = "csv",
) -> StreamingResponse:
    """
    Download the expanded results: original columns plus classification
    columns. Stale or missing artifacts are regenerated first.
    """
    artifact, data = await export_service.download(job_id, file_format)
    filename = PurePosixPath(artifact.storage_key).name

    logger.info("Serving %s download for %s (%d bytes)", artifact.file_format, job_id, len(data))
    return StreamingResponse(
        BytesIO(data),
        media_type=export_service.content_type(artifact.file_format),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
