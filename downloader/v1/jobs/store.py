"""
Durable job store with lease-based worker ownership.

Every mutation is a single conditional UPDATE on one row, so concurrent
workers (in this process or others sharing the database) never need a lock
across unrelated jobs. A write by a worker that no longer holds an
unexpired lease matches no row and is reported as ``NotOwnerError`` or
``LeaseExpiredError``.
"""

import logging
from collections.abc import Mapping
from datetime import datetime, timedelta

from sqlalchemy import and_, case, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql.elements import ColumnElement

from downloader.infra.database import utcnow
from downloader.v1.core.exceptions import (
    DuplicateJobError,
    LeaseExpiredError,
    NotOwnerError,
)
from downloader.v1.jobs.models import (
    TERMINAL_STATES,
    DownloadJob,
    ErrorCode,
    FailureReason,
    JobState,
    RetentionPolicy,
)
from downloader.v1.jobs.schemas import JobDefinition, JobResult, JobStats

logger = logging.getLogger(__name__)


def retries_exhausted_result(
    total_items: int, attempts: int, last_error: str | None
) -> JobResult:
    """Terminal result for a job whose checker kept failing."""
    detail = f": {last_error}" if last_error else ""
    return JobResult(
        total_items=total_items,
        success_count=0,
        failed_count=total_items,
        download_urls=[],
        message=f"Retries exhausted after {attempts} attempts{detail}",
        reason=FailureReason.RETRIES_EXHAUSTED,
    )


class JobStore:
    """Persistence and atomic state transitions for download jobs."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_attempts: int = 3,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got: {max_attempts}")
        self._session_factory = session_factory
        self.max_attempts = max_attempts

    async def create(
        self, definition: JobDefinition, request_id: str | None = None
    ) -> str:
        """Insert a queued job. Raises DuplicateJobError if the id exists."""
        job = DownloadJob(
            id=definition.job_id,
            item_ids=list(definition.item_ids),
            status=JobState.QUEUED.value,
            progress=0,
            attempts=0,
            request_id=request_id,
            created_at=definition.created_at,
            updated_at=definition.created_at,
        )

        async with self._session_factory() as session:
            try:
                session.add(job)
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise DuplicateJobError(definition.job_id) from None

        logger.info(
            "Job created",
            extra={"job_id": job.id, "total_items": len(job.item_ids)},
        )
        return job.id

    async def get(self, job_id: str) -> DownloadJob | None:
        """Read the last committed record for a job."""
        async with self._session_factory() as session:
            return await session.get(DownloadJob, job_id)

    def _claimable(self, now: datetime) -> ColumnElement[bool]:
        return and_(
            DownloadJob.attempts < self.max_attempts,
            or_(
                DownloadJob.status == JobState.QUEUED.value,
                and_(
                    DownloadJob.status == JobState.ACTIVE.value,
                    DownloadJob.lease_expires_at <= now,
                ),
            ),
        )

    def _exhausted(self, now: datetime) -> ColumnElement[bool]:
        return and_(
            DownloadJob.status == JobState.ACTIVE.value,
            DownloadJob.lease_expires_at <= now,
            DownloadJob.attempts >= self.max_attempts,
        )

    async def claim(
        self, worker_id: str, lease_seconds: float
    ) -> DownloadJob | None:
        """
        Atomically take the oldest claimable job for ``worker_id``.

        Claimable means queued, or active with an expired lease, with
        attempts left. The candidate is re-checked inside the UPDATE, so of
        two workers racing for the same row only one gets it back.

        Returns the claimed job, or None when nothing is claimable.
        """
        now = utcnow()

        async with self._session_factory() as session:
            await self._fail_exhausted(session, now)

            candidate = (
                select(DownloadJob.id)
                .where(self._claimable(now))
                .order_by(DownloadJob.created_at, DownloadJob.id)
                .limit(1)
                .with_for_update(skip_locked=True)
                .correlate(None)
                .scalar_subquery()
            )
            result = await session.execute(
                update(DownloadJob)
                .where(DownloadJob.id == candidate, self._claimable(now))
                .values(
                    status=JobState.ACTIVE.value,
                    claimed_by=worker_id,
                    lease_expires_at=now + timedelta(seconds=lease_seconds),
                    attempts=DownloadJob.attempts + 1,
                    updated_at=now,
                )
                .returning(DownloadJob)
                .execution_options(synchronize_session=False)
            )
            job = result.scalars().first()
            await session.commit()

        if job is not None:
            logger.info(
                "Job claimed",
                extra={
                    "job_id": job.id,
                    "worker_id": worker_id,
                    "attempt": job.attempts,
                },
            )
        return job

    async def _fail_exhausted(self, session: AsyncSession, now: datetime) -> None:
        """Finalize jobs whose last attempt lost its lease (worker crash)."""
        stale = await session.execute(select(DownloadJob).where(self._exhausted(now)))
        for job in stale.scalars().all():
            outcome = retries_exhausted_result(
                len(job.item_ids), job.attempts, job.last_error or "lease expired"
            )
            result = await session.execute(
                update(DownloadJob)
                .where(DownloadJob.id == job.id, self._exhausted(now))
                .values(
                    status=JobState.FAILED.value,
                    progress=100,
                    result=outcome.model_dump(mode="json", by_alias=True),
                    error_code=ErrorCode.RETRIES_EXHAUSTED.value,
                    claimed_by=None,
                    lease_expires_at=None,
                    finished_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                logger.warning(
                    "Job dead-lettered after lease expiry",
                    extra={"job_id": job.id, "attempts": job.attempts},
                )
        await session.commit()

    def _owned(self, job_id: str, worker_id: str, now: datetime) -> ColumnElement[bool]:
        return and_(
            DownloadJob.id == job_id,
            DownloadJob.status == JobState.ACTIVE.value,
            DownloadJob.claimed_by == worker_id,
            DownloadJob.lease_expires_at > now,
        )

    async def _raise_ownership_error(
        self, session: AsyncSession, job_id: str, worker_id: str
    ) -> None:
        job = await session.get(DownloadJob, job_id)
        if (
            job is None
            or job.status != JobState.ACTIVE.value
            or job.claimed_by != worker_id
        ):
            raise NotOwnerError(job_id, worker_id)
        raise LeaseExpiredError(job_id, worker_id)

    async def update_progress(
        self,
        job_id: str,
        worker_id: str,
        progress: int,
        lease_seconds: float,
    ) -> None:
        """
        Record progress and refresh the lease.

        Progress never decreases, including when a re-claimed job restarts
        its items from the beginning.

        Raises:
            NotOwnerError: another worker owns the job, or it is finished
            LeaseExpiredError: this worker's lease elapsed
        """
        progress = max(0, min(100, progress))
        now = utcnow()

        async with self._session_factory() as session:
            result = await session.execute(
                update(DownloadJob)
                .where(self._owned(job_id, worker_id, now))
                .values(
                    progress=case(
                        (DownloadJob.progress < progress, progress),
                        else_=DownloadJob.progress,
                    ),
                    lease_expires_at=now + timedelta(seconds=lease_seconds),
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await session.rollback()
                await self._raise_ownership_error(session, job_id, worker_id)
            await session.commit()

    async def renew_lease(
        self, job_id: str, worker_id: str, lease_seconds: float
    ) -> None:
        """
        Extend the lease of an owned job without touching its progress.

        Raises:
            NotOwnerError: another worker owns the job, or it is finished
            LeaseExpiredError: this worker's lease elapsed
        """
        now = utcnow()

        async with self._session_factory() as session:
            result = await session.execute(
                update(DownloadJob)
                .where(self._owned(job_id, worker_id, now))
                .values(
                    lease_expires_at=now + timedelta(seconds=lease_seconds),
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await session.rollback()
                await self._raise_ownership_error(session, job_id, worker_id)
            await session.commit()

    async def finish(
        self,
        job_id: str,
        worker_id: str,
        result: JobResult,
        final_state: JobState,
        error_code: ErrorCode | None = None,
    ) -> None:
        """
        Write the result and move the job to a terminal state.

        Raises:
            ValueError: final_state is not terminal
            NotOwnerError: another worker owns the job, or it is finished
            LeaseExpiredError: this worker's lease elapsed
        """
        if final_state not in TERMINAL_STATES:
            raise ValueError(f"final_state must be terminal, got: {final_state}")
        now = utcnow()

        async with self._session_factory() as session:
            outcome = await session.execute(
                update(DownloadJob)
                .where(self._owned(job_id, worker_id, now))
                .values(
                    status=final_state.value,
                    progress=100,
                    result=result.model_dump(mode="json", by_alias=True),
                    error_code=error_code.value if error_code else None,
                    claimed_by=None,
                    lease_expires_at=None,
                    finished_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if outcome.rowcount != 1:
                await session.rollback()
                await self._raise_ownership_error(session, job_id, worker_id)
            await session.commit()

        logger.info(
            "Job finished",
            extra={
                "job_id": job_id,
                "worker_id": worker_id,
                "status": final_state.value,
                "success_count": result.success_count,
                "failed_count": result.failed_count,
            },
        )

    async def defer(
        self,
        job_id: str,
        worker_id: str,
        error: str,
        delay_seconds: float,
    ) -> None:
        """
        Record a transient failure and make the job claimable after a delay.

        The job stays active; its lease now expires at ``now + delay_seconds``,
        which is when ``claim`` will hand it out again.

        Raises:
            NotOwnerError: another worker owns the job, or it is finished
            LeaseExpiredError: this worker's lease elapsed
        """
        now = utcnow()

        async with self._session_factory() as session:
            result = await session.execute(
                update(DownloadJob)
                .where(self._owned(job_id, worker_id, now))
                .values(
                    last_error=error,
                    error_code=ErrorCode.RETRY_SCHEDULED.value,
                    lease_expires_at=now + timedelta(seconds=delay_seconds),
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await session.rollback()
                await self._raise_ownership_error(session, job_id, worker_id)
            await session.commit()

    async def list_jobs(
        self,
        status: JobState | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[DownloadJob], int]:
        """List jobs newest first, optionally filtered by state."""
        base_query = select(DownloadJob)
        if status is not None:
            base_query = base_query.where(DownloadJob.status == status.value)

        async with self._session_factory() as session:
            total = (
                await session.execute(
                    select(func.count()).select_from(base_query.subquery())
                )
            ).scalar() or 0

            jobs = (
                await session.execute(
                    base_query.order_by(
                        DownloadJob.created_at.desc(), DownloadJob.id.desc()
                    )
                    .offset(offset)
                    .limit(limit)
                )
            ).scalars().all()

        return list(jobs), total

    async def stats(self) -> JobStats:
        """Count jobs by state."""
        async with self._session_factory() as session:
            rows = await session.execute(
                select(DownloadJob.status, func.count(DownloadJob.id)).group_by(
                    DownloadJob.status
                )
            )
            by_status = {state: count for state, count in rows.all()}

        return JobStats(
            total_jobs=sum(by_status.values()),
            by_status=by_status,
            queue_depth=by_status.get(JobState.QUEUED.value, 0)
            + by_status.get(JobState.ACTIVE.value, 0),
        )

    async def sweep(self, policies: Mapping[JobState, RetentionPolicy]) -> int:
        """
        Delete terminal jobs that fall outside their retention policy.

        Returns the number of deleted jobs.
        """
        now = utcnow()
        deleted = 0

        async with self._session_factory() as session:
            for state, policy in policies.items():
                if state not in TERMINAL_STATES:
                    raise ValueError(f"Retention applies to terminal states only: {state}")

                cutoff = now - timedelta(seconds=policy.max_age_s)
                aged = await session.execute(
                    delete(DownloadJob)
                    .where(
                        DownloadJob.status == state.value,
                        DownloadJob.finished_at < cutoff,
                    )
                    .execution_options(synchronize_session=False)
                )
                deleted += aged.rowcount

                surplus = (
                    await session.execute(
                        select(DownloadJob.id)
                        .where(DownloadJob.status == state.value)
                        .order_by(
                            DownloadJob.finished_at.desc(), DownloadJob.id.desc()
                        )
                        .offset(policy.max_count)
                    )
                ).scalars().all()
                if surplus:
                    overflow = await session.execute(
                        delete(DownloadJob)
                        .where(
                            DownloadJob.id.in_(surplus),
                            DownloadJob.status == state.value,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    deleted += overflow.rowcount

            await session.commit()

        if deleted > 0:
            logger.info("Swept expired jobs", extra={"deleted_count": deleted})

        return deleted
