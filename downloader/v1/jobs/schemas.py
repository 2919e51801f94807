"""
Download job Pydantic schemas.

Public payloads use camelCase field names on the wire.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from downloader.infra.database import utcnow
from downloader.v1.jobs.models import FailureReason


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExternalJobStatus(str, Enum):
    """Status values exposed to polling clients."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobDefinition(BaseModel):
    """Immutable description of a submitted batch."""

    model_config = ConfigDict(frozen=True)

    job_id: str = Field(..., min_length=1, max_length=64)
    item_ids: tuple[int, ...] = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utcnow)


class JobResult(CamelModel):
    """Terminal outcome of a job."""

    total_items: int = Field(..., ge=0)
    success_count: int = Field(..., ge=0)
    failed_count: int = Field(..., ge=0)
    download_urls: list[str] = Field(default_factory=list)
    message: str
    reason: FailureReason | None = None


class DownloadInitiateRequest(BaseModel):
    """Schema for submitting a batch of file ids."""

    file_ids: list[int] = Field(..., description="File ids to fetch")
    job_id: str | None = Field(
        default=None,
        min_length=1,
        max_length=64,
        pattern=r"^[A-Za-z0-9_-][A-Za-z0-9_.-]*$",
        description="Client supplied job id for idempotent resubmission",
    )


class DownloadCheckRequest(BaseModel):
    """Schema for checking a single file id."""

    file_id: int = Field(..., description="File id to check")


class DownloadInitiateResponse(CamelModel):
    """Schema returned synchronously on submission."""

    job_id: str
    status: ExternalJobStatus = ExternalJobStatus.QUEUED
    total_items: int


class ExternalStatus(CamelModel):
    """Polling contract for a single job."""

    job_id: str
    status: ExternalJobStatus
    progress: int = Field(..., ge=0, le=100)
    total_items: int
    result: JobResult | None = None


class ItemAvailabilityResponse(CamelModel):
    """Schema for a synchronous single-item availability check."""

    file_id: int
    available: bool
    key: str | None = None
    size: int | None = None


class JobSummary(CamelModel):
    """Schema for job listings, including dead-letter details."""

    job_id: str
    status: str
    progress: int
    attempts: int
    total_items: int
    item_ids: list[int]
    error_code: str | None = None
    last_error: str | None = None
    claimed_by: str | None = None
    created_at: datetime
    finished_at: datetime | None = None


class JobListResponse(CamelModel):
    """Schema for job list API response."""

    jobs: list[JobSummary]
    total: int
    limit: int
    offset: int


class JobStats(CamelModel):
    """Schema for job statistics."""

    total_jobs: int
    by_status: dict[str, int]
    queue_depth: int  # queued + active
