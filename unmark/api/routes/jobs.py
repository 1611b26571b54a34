"""Routes for managing watermark removal jobs."""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from unmark.dependencies import JobServiceDep
from unmark.schemas.job import ACTIVE_STATUSES, JobCreate, JobRead, JobUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post(
    "",
    response_model=JobRead,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit a new watermark removal job",
    response_description="Representation of the created job.",
)
async def enqueue_job(payload: JobCreate, job_service: JobServiceDep) -> JobRead:
    """Accept a job payload and register it for downstream processing."""

    job = job_service.create_job(payload)
    logger.info("Enqueued job %s.", job.id)
    return job


@router.get(
    "",
    response_model=list[JobRead],
    summary="List queued and processed jobs",
    response_description="Collection of known jobs sorted by creation time.",
)
async def list_jobs(job_service: JobServiceDep) -> list[JobRead]:
    """Return all jobs currently tracked by the service."""

    return job_service.list_jobs()


@router.get(
    "/{job_id}",
    response_model=JobRead,
    summary="Retrieve a specific job",
    response_description="Job metadata with current state and progress.",
)
async def get_job(job_id: UUID, job_service: JobServiceDep) -> JobRead:
    """Fetch a job by identifier."""

    job = job_service.get_job(job_id)
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found.")
    return job


@router.patch(
    "/{job_id}",
    response_model=JobRead,
    summary="Update a job's status",
    response_description="Updated job record.",
)
async def update_job(job_id: UUID, payload: JobUpdate, job_service: JobServiceDep) -> JobRead:
    """Allow workers to report progress back to the control plane."""

    job = job_service.update_job(job_id, payload)
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found.")
    return job


@router.post(
    "/{job_id}/cancel",
    response_model=JobRead,
    summary="Cancel a queued or running job",
    response_description="Job record after cancellation.",
)
async def cancel_job(job_id: UUID, job_service: JobServiceDep) -> JobRead:
    """Request cancellation; a running job stops at its next checkpoint."""

    job = job_service.get_job(job_id)
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found.")
    if job.status not in ACTIVE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Job already {job.status.value}.",
        )
    return job_service.cancel_job(job_id)
