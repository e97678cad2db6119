"""Maintenance router for recovery and cleanup endpoints."""

import logging

from fastapi import APIRouter
from pydantic import BaseModel, Field

from payeebatch.presentation.api.dependencies import RecoveryServiceDep, StateDep
from payeebatch.presentation.api.schemas import (
    CleanupResponse,
    JobResponse,
    OrphanListResponse,
    PhantomCleanupResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class EmergencyStopRequest(BaseModel):
    active: bool = Field(..., description="Suspend (true) or resume (false) display updates")
    reason: str = Field("manual", description="Why the stop was raised")


class EmergencyStopResponse(BaseModel):
    active: bool


@router.get(
    "/orphans",
    summary="List orphaned jobs",
    responses={200: {"description": "Completed jobs without stored results"}},
)
async def list_orphaned_jobs(recovery_service: RecoveryServiceDep) -> OrphanListResponse:
    """
    List completed jobs that have no classification rows in the store.

    Use `POST /jobs/{id}/results` to repair one.
    """
    orphans = await recovery_service.find_orphaned_jobs()
    return OrphanListResponse(
        jobs=[JobResponse.from_domain(job) for job in orphans],
        total=len(orphans),
    )


@router.post(
    "/phantoms",
    summary="Remove phantom jobs",
    responses={200: {"description": "Cleanup report"}},
)
async def cleanup_phantom_jobs(
    recovery_service: RecoveryServiceDep,
) -> PhantomCleanupResponse:
    """
    Check every job of the working set against the provider and remove those
    the provider confirms it does not know. Jobs whose check fails for any
    other reason are kept.
    """
    report = await recovery_service.cleanup_phantom_jobs()
    return PhantomCleanupResponse.from_report(report)


@router.post(
    "/cleanup",
    summary="Run age-based cleanup",
    responses={200: {"description": "Cleanup report"}},
)
async def cleanup_stale_jobs(recovery_service: RecoveryServiceDep) -> CleanupResponse:
    """
    Release old terminal jobs from the working set and auto-cancel active
    jobs past the hard ceiling. Also runs periodically in the background.
    """
    report = await recovery_service.cleanup_stale_jobs()
    return CleanupResponse.from_report(report)


@router.post(
    "/emergency-stop",
    summary="Toggle the emergency stop",
    responses={200: {"description": "Current emergency-stop state"}},
)
async def set_emergency_stop(
    request: EmergencyStopRequest,
    state: StateDep,
) -> EmergencyStopResponse:
    """
    While active, non-terminal display updates are suppressed. Persistence
    and terminal transitions are unaffected.
    """
    if request.active:
        state.activate_emergency_stop(request.reason)
    else:
        state.clear_emergency_stop()
    return EmergencyStopResponse(active=state.emergency_stop)
