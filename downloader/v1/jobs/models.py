"""
Download job models.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, CheckConstraint, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from downloader.infra.database import Base, UTCDateTime, utcnow


class JobState(str, Enum):
    """Internal job state."""

    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED})


class FailureReason(str, Enum):
    """Why a job ended in the failed state."""

    ALL_ITEMS_UNAVAILABLE = "all_items_unavailable"
    RETRIES_EXHAUSTED = "retries_exhausted"


class ErrorCode(str, Enum):
    """Structured error identifiers stored on the job record."""

    RETRY_SCHEDULED = "RETRY_SCHEDULED"
    RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"
    ALL_ITEMS_UNAVAILABLE = "ALL_ITEMS_UNAVAILABLE"


@dataclass(frozen=True)
class RetentionPolicy:
    """Keep at most ``max_count`` terminal jobs of one state, none older than ``max_age_s``."""

    max_count: int
    max_age_s: float

    def __post_init__(self) -> None:
        if self.max_count < 0 or self.max_age_s < 0:
            raise ValueError("Retention limits must not be negative")


class DownloadJob(Base):
    """
    One submitted batch of item ids and its processing state.

    Provides durable job tracking with:
    - Lease-based worker ownership (claimed_by, lease_expires_at)
    - Per-job progress percentage and terminal result
    - Attempt accounting for retry/backoff and dead-lettering
    """

    __tablename__ = "download_jobs"

    # Core fields
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    item_ids: Mapped[list[int]] = mapped_column(
        JSON, nullable=False, comment="Ordered item ids to check"
    )

    # Job state
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=JobState.QUEUED.value,
        comment="Job status: queued|active|completed|failed",
    )
    progress: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Percentage 0-100"
    )
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Number of claims made"
    )

    # Worker coordination
    claimed_by: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Worker ID holding the lease"
    )
    lease_expires_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, comment="When the current lease elapses"
    )

    # Results
    result: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, comment="Terminal result"
    )
    error_code: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Structured error identifier"
    )
    last_error: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Last error message"
    )

    # Tracing
    request_id: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Submitting request ID for tracing"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )
    finished_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('queued', 'active', 'completed', 'failed')",
            name="download_jobs_status_check",
        ),
        CheckConstraint(
            "progress BETWEEN 0 AND 100", name="download_jobs_progress_check"
        ),
        Index("ix_download_jobs_status_created", "status", "created_at"),
        Index("ix_download_jobs_status_finished", "status", "finished_at"),
    )

    @property
    def state(self) -> JobState:
        return JobState(self.status)

    @property
    def total_items(self) -> int:
        return len(self.item_ids)
