"""
Download job API endpoints.

Submission returns immediately; clients poll the job status endpoint until
it reports ``completed`` or ``failed``.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Request

from downloader.v1.core.exceptions import create_success_response
from downloader.v1.jobs.models import JobState
from downloader.v1.jobs.schemas import (
    DownloadCheckRequest,
    DownloadInitiateRequest,
    DownloadInitiateResponse,
    ExternalStatus,
    ItemAvailabilityResponse,
)
from downloader.v1.jobs.service import DownloadJobService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/download", tags=["download"])


def get_job_service(request: Request) -> DownloadJobService:
    """Get the job service created by the application lifespan."""
    return request.app.state.job_service


JobServiceDep = Depends(get_job_service)


@router.post(
    "/initiate",
    response_model=DownloadInitiateResponse,
    response_model_by_alias=True,
)
async def initiate_download(
    body: DownloadInitiateRequest,
    request: Request,
    service: DownloadJobService = JobServiceDep,
) -> DownloadInitiateResponse:
    """Submit a batch of file ids for background processing."""
    return await service.enqueue_job(
        body, request_id=getattr(request.state, "request_id", None)
    )


@router.post(
    "/check",
    response_model=ItemAvailabilityResponse,
    response_model_by_alias=True,
)
async def check_download(
    request: DownloadCheckRequest,
    service: DownloadJobService = JobServiceDep,
) -> ItemAvailabilityResponse:
    """Check whether a single file is available for download."""
    return await service.check_item(request.file_id)


@router.get("/jobs", response_model=dict)
async def list_jobs(
    status: JobState | None = Query(default=None, description="Filter by state"),
    limit: int = Query(default=50, ge=1, le=1000, description="Maximum results"),
    offset: int = Query(default=0, ge=0, description="Results offset"),
    service: DownloadJobService = JobServiceDep,
) -> dict[str, Any]:
    """List jobs newest first; failed jobs keep their item ids for inspection."""
    response = await service.list_jobs(status, limit=limit, offset=offset)
    return create_success_response(data=response.model_dump(mode="json", by_alias=True))


@router.get("/jobs/stats/overview", response_model=dict)
async def get_job_stats(
    service: DownloadJobService = JobServiceDep,
) -> dict[str, Any]:
    """Get job counts by state and queue depth."""
    stats = await service.get_job_stats()
    return create_success_response(data=stats.model_dump(by_alias=True))


@router.get(
    "/jobs/{job_id}",
    response_model=ExternalStatus,
    response_model_by_alias=True,
)
async def get_job_status(
    job_id: str,
    service: DownloadJobService = JobServiceDep,
) -> ExternalStatus:
    """Poll the status of a download job."""
    return await service.get_job_status(job_id)
