"""
Lease-based worker pool for download jobs.
"""

import asyncio
import os
import random
import socket
import uuid

from downloader.config.logging import get_logger
from downloader.config.settings import Settings
from downloader.v1.core.exceptions import ItemCheckTransientFailure, LeaseError
from downloader.v1.jobs.backoff import compute_backoff, poll_delay
from downloader.v1.jobs.checkers import ItemChecker
from downloader.v1.jobs.models import (
    DownloadJob,
    ErrorCode,
    FailureReason,
    JobState,
    RetentionPolicy,
)
from downloader.v1.jobs.schemas import JobResult
from downloader.v1.jobs.store import JobStore, retries_exhausted_result

logger = get_logger(__name__)

# Wait after an unexpected error in a worker loop
ERROR_BACKOFF_S = 5.0


def build_result(
    total_items: int, success_count: int, failed_count: int, download_urls: list[str]
) -> tuple[JobState, JobResult]:
    """Terminal state and result once every item was checked."""
    if success_count > 0:
        return JobState.COMPLETED, JobResult(
            total_items=total_items,
            success_count=success_count,
            failed_count=failed_count,
            download_urls=download_urls,
            message=f"Successfully processed {success_count}/{total_items} files",
        )

    return JobState.FAILED, JobResult(
        total_items=total_items,
        success_count=0,
        failed_count=failed_count,
        download_urls=[],
        message=f"All {total_items} files failed to process: none are available",
        reason=FailureReason.ALL_ITEMS_UNAVAILABLE,
    )


def retention_policies(settings: Settings) -> dict[JobState, RetentionPolicy]:
    """Retention limits per terminal state from settings."""
    return {
        JobState.COMPLETED: RetentionPolicy(
            max_count=settings.completed_keep_count,
            max_age_s=settings.completed_max_age_s,
        ),
        JobState.FAILED: RetentionPolicy(
            max_count=settings.failed_keep_count,
            max_age_s=settings.failed_max_age_s,
        ),
    }


class JobWorker:
    """
    One worker: claims jobs from the store and checks their items in order.

    Ownership is re-validated on every progress write, and a heartbeat renews
    the lease every third of its length while an item is being checked. As
    soon as the store reports the lease lost, the worker drops the job without
    finishing it.
    """

    def __init__(
        self,
        store: JobStore,
        checker: ItemChecker,
        settings: Settings,
        worker_id: str | None = None,
    ):
        self.store = store
        self.checker = checker
        self.settings = settings
        self.worker_id = worker_id or (
            f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:8]}"
        )

    @property
    def lease_seconds(self) -> float:
        return self.settings.job_lease_seconds

    async def run(self, stop_event: asyncio.Event) -> None:
        """Claim and process jobs until ``stop_event`` is set."""
        log = logger.bind(worker_id=self.worker_id)
        log.info("Worker started")

        while not stop_event.is_set():
            try:
                job = await self.store.claim(self.worker_id, self.lease_seconds)
                if job is None:
                    await _wait(
                        stop_event,
                        poll_delay(self.settings.job_poll_interval_ms / 1000),
                    )
                    continue

                await self.process_job(job)

            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception("Error in worker loop")
                await _wait(stop_event, ERROR_BACKOFF_S)

        log.info("Worker stopped")

    async def run_once(self) -> bool:
        """Claim and process a single job. Returns False if none was claimable."""
        job = await self.store.claim(self.worker_id, self.lease_seconds)
        if job is None:
            return False
        await self.process_job(job)
        return True

    async def process_job(self, job: DownloadJob) -> None:
        """Run the per-item loop for a claimed job and finalize it."""
        job_logger = logger.bind(
            job_id=job.id, worker_id=self.worker_id, attempt=job.attempts
        )
        total = len(job.item_ids)
        success_count = 0
        failed_count = 0
        download_urls: list[str] = []

        job_logger.info("Processing job started", total_items=total)

        heartbeat = asyncio.create_task(
            self._heartbeat(job.id), name=f"lease-{job.id}"
        )

        try:
            for index, item_id in enumerate(job.item_ids, start=1):
                await self._simulate_delay()

                try:
                    check = await self.checker.check(item_id)
                except Exception as e:
                    raise ItemCheckTransientFailure(item_id, e) from e

                if check.available and check.key:
                    success_count += 1
                    download_urls.append(self.checker.download_url(check.key))
                else:
                    failed_count += 1

                progress = index * 100 // total
                job_logger.debug(
                    "Item checked",
                    item_id=item_id,
                    available=check.available,
                    progress=progress,
                )
                await self.store.update_progress(
                    job.id, self.worker_id, progress, self.lease_seconds
                )

            final_state, result = build_result(
                total, success_count, failed_count, download_urls
            )
            await self.store.finish(
                job.id,
                self.worker_id,
                result,
                final_state,
                error_code=(
                    ErrorCode.ALL_ITEMS_UNAVAILABLE
                    if final_state is JobState.FAILED
                    else None
                ),
            )
            job_logger.info(
                "Processing job finished",
                status=final_state.value,
                success_count=success_count,
                failed_count=failed_count,
            )

        except ItemCheckTransientFailure as e:
            job_logger.warning("Item check failed", item_id=e.item_id, error=str(e))
            await self._handle_transient_failure(job, e)

        except LeaseError as e:
            job_logger.warning("Lost job ownership, abandoning", reason=str(e))

        finally:
            heartbeat.cancel()
            await asyncio.gather(heartbeat, return_exceptions=True)

    async def _heartbeat(self, job_id: str) -> None:
        """Keep the lease alive while a single item takes longer than the lease."""
        log = logger.bind(job_id=job_id, worker_id=self.worker_id)
        interval = self.lease_seconds / 3

        while True:
            await asyncio.sleep(interval)
            try:
                await self.store.renew_lease(job_id, self.worker_id, self.lease_seconds)
            except LeaseError as e:
                log.warning("Lease renewal rejected", reason=str(e))
                return
            except Exception:
                log.exception("Error renewing lease")

    async def _handle_transient_failure(
        self, job: DownloadJob, error: ItemCheckTransientFailure
    ) -> None:
        """Schedule a retry with backoff, or dead-letter the job."""
        job_logger = logger.bind(
            job_id=job.id, worker_id=self.worker_id, attempt=job.attempts
        )

        try:
            if job.attempts >= self.store.max_attempts:
                await self.store.finish(
                    job.id,
                    self.worker_id,
                    retries_exhausted_result(len(job.item_ids), job.attempts, str(error)),
                    JobState.FAILED,
                    error_code=ErrorCode.RETRIES_EXHAUSTED,
                )
                job_logger.error("Job moved to dead-letter after exhausting retries")
                return

            delay = compute_backoff(
                job.attempts,
                self.settings.job_backoff_base_ms / 1000,
                self.settings.job_max_backoff_s,
            )
            await self.store.defer(job.id, self.worker_id, str(error), delay)
            job_logger.info("Job scheduled for retry", retry_in_s=delay)

        except LeaseError as e:
            job_logger.warning("Lost job ownership during retry", reason=str(e))

    async def _simulate_delay(self) -> None:
        if not self.settings.item_delay_enabled:
            return
        delay_ms = random.randint(
            self.settings.item_delay_min_ms, self.settings.item_delay_max_ms
        )
        await asyncio.sleep(delay_ms / 1000)


class WorkerPool:
    """
    Fixed-size pool of workers sharing one job store.

    Features:
    - Independent claim loops with randomized idle polling
    - Lease refresh on every progress write and by a per-job heartbeat
    - Exponential backoff between attempts, dead-letter after the last one
    - Periodic retention sweep of finished jobs
    - Graceful shutdown
    """

    def __init__(
        self,
        store: JobStore,
        checker: ItemChecker,
        settings: Settings,
        size: int | None = None,
    ):
        self.store = store
        self.checker = checker
        self.settings = settings
        self.size = size or settings.job_concurrency
        self.workers = [
            JobWorker(store, checker, settings) for _ in range(self.size)
        ]
        self._stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def start(self) -> None:
        """Start all worker loops and the retention loop."""
        if self.running:
            raise RuntimeError("Worker pool is already running")

        self._stop_event.clear()
        self._tasks = [
            asyncio.create_task(worker.run(self._stop_event), name=worker.worker_id)
            for worker in self.workers
        ]
        self._tasks.append(
            asyncio.create_task(self._retention_loop(), name="retention-sweep")
        )

        logger.info(
            "Worker pool started",
            concurrency=self.size,
            poll_interval_ms=self.settings.job_poll_interval_ms,
            lease_seconds=self.settings.job_lease_seconds,
        )

    async def stop(self, timeout: float = 30.0) -> None:
        """Signal workers to stop and wait for in-flight jobs."""
        logger.info("Stopping worker pool")
        self._stop_event.set()

        if not self._tasks:
            return

        done, pending = await asyncio.wait(self._tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                "Worker pool stopped with active jobs",
                cancelled_workers=len(pending),
            )
        self._tasks = []

    def request_stop(self) -> None:
        """Ask workers to exit after their current job."""
        self._stop_event.set()

    async def run_forever(self) -> None:
        """Start the pool and block until it is stopped."""
        await self.start()
        try:
            await self._stop_event.wait()
        finally:
            await self.stop()

    async def _retention_loop(self) -> None:
        """Delete finished jobs outside their retention window."""
        policies = retention_policies(self.settings)

        while not self._stop_event.is_set():
            try:
                await self.store.sweep(policies)
            except Exception:
                logger.exception("Error in retention sweep")

            await _wait(self._stop_event, self.settings.retention_sweep_interval_s)


async def _wait(stop_event: asyncio.Event, seconds: float) -> None:
    """Sleep for ``seconds`` or until ``stop_event`` is set."""
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
    except TimeoutError:
        pass
