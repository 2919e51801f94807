"""
Job service for submitting download batches and reading their status.
"""

import logging
import uuid

from downloader.config.settings import Settings
from downloader.v1.core.exceptions import JobNotFoundError, ValidationError
from downloader.v1.jobs.checkers import ItemChecker
from downloader.v1.jobs.models import JobState
from downloader.v1.jobs.projector import project
from downloader.v1.jobs.schemas import (
    DownloadInitiateRequest,
    DownloadInitiateResponse,
    ExternalStatus,
    ItemAvailabilityResponse,
    JobDefinition,
    JobListResponse,
    JobStats,
    JobSummary,
)
from downloader.v1.jobs.store import JobStore

logger = logging.getLogger(__name__)


class DownloadJobService:
    """Service for enqueueing download jobs and projecting their status."""

    def __init__(self, store: JobStore, checker: ItemChecker, settings: Settings):
        self.store = store
        self.checker = checker
        self.settings = settings

    def validate_item_ids(self, item_ids: list[int]) -> None:
        """Check batch size and id bounds against settings."""
        if not item_ids:
            raise ValidationError("At least one file id is required")

        if len(item_ids) > self.settings.max_items_per_job:
            raise ValidationError(
                f"At most {self.settings.max_items_per_job} file ids per job",
                {"count": len(item_ids)},
            )

        out_of_range = [
            item_id
            for item_id in item_ids
            if not self.settings.item_id_min <= item_id <= self.settings.item_id_max
        ]
        if out_of_range:
            raise ValidationError(
                f"File ids must be between {self.settings.item_id_min} "
                f"and {self.settings.item_id_max}",
                {"invalid_ids": out_of_range[:20]},
            )

    async def enqueue_job(
        self,
        request: DownloadInitiateRequest,
        request_id: str | None = None,
    ) -> DownloadInitiateResponse:
        """
        Create a queued job and return without waiting for processing.

        Args:
            request: Submitted file ids and optional client job id
            request_id: Request ID for tracing

        Returns:
            Job id, queued status and item count
        """
        self.validate_item_ids(request.file_ids)

        definition = JobDefinition(
            job_id=request.job_id or str(uuid.uuid4()),
            item_ids=tuple(request.file_ids),
        )
        job_id = await self.store.create(definition, request_id=request_id)

        logger.info(
            "Download job enqueued",
            extra={
                "job_id": job_id,
                "total_items": len(definition.item_ids),
                "request_id": request_id,
            },
        )

        return DownloadInitiateResponse(
            job_id=job_id, total_items=len(definition.item_ids)
        )

    async def get_job_status(self, job_id: str) -> ExternalStatus:
        """Project the current state of a job for polling clients."""
        job = await self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return project(job)

    async def check_item(self, item_id: int) -> ItemAvailabilityResponse:
        """Run a single synchronous availability check."""
        self.validate_item_ids([item_id])
        result = await self.checker.check(item_id)
        return ItemAvailabilityResponse(
            file_id=item_id,
            available=result.available,
            key=result.key,
            size=result.size,
        )

    async def list_jobs(
        self,
        status: JobState | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> JobListResponse:
        """List jobs newest first; ``status=failed`` shows the dead-letter set."""
        jobs, total = await self.store.list_jobs(status, limit=limit, offset=offset)
        return JobListResponse(
            jobs=[
                JobSummary(
                    job_id=job.id,
                    status=job.status,
                    progress=job.progress,
                    attempts=job.attempts,
                    total_items=job.total_items,
                    item_ids=job.item_ids,
                    error_code=job.error_code,
                    last_error=job.last_error,
                    claimed_by=job.claimed_by,
                    created_at=job.created_at,
                    finished_at=job.finished_at,
                )
                for job in jobs
            ],
            total=total,
            limit=limit,
            offset=offset,
        )

    async def get_job_stats(self) -> JobStats:
        """Get job counts by state."""
        return await self.store.stats()
