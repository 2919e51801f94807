import asyncio

import pytest

from downloader.config.settings import Settings
from downloader.infra.database import Database
from downloader.v1.core.exceptions import (
    DuplicateJobError,
    LeaseExpiredError,
    NotOwnerError,
)
from downloader.v1.jobs.models import ErrorCode, JobState, RetentionPolicy
from downloader.v1.jobs.schemas import JobDefinition, JobResult
from downloader.v1.jobs.store import JobStore


def _definition(job_id: str, *item_ids: int) -> JobDefinition:
    return JobDefinition(job_id=job_id, item_ids=item_ids or (70000,))


def _result(total: int = 1) -> JobResult:
    return JobResult(
        total_items=total,
        success_count=total,
        failed_count=0,
        download_urls=[],
        message="done",
    )


async def _finish(store: JobStore, job_id: str, state: JobState = JobState.COMPLETED):
    job = await store.claim("finisher", 30)
    assert job is not None and job.id == job_id
    await store.finish(job_id, "finisher", _result(), state)


class TestCreateAndGet:
    async def test_create_queues_job(self, store):
        job_id = await store.create(_definition("a", 70000, 70001), request_id="req-1")

        job = await store.get(job_id)
        assert job.status == JobState.QUEUED.value
        assert job.item_ids == [70000, 70001]
        assert job.progress == 0
        assert job.attempts == 0
        assert job.request_id == "req-1"
        assert job.created_at.tzinfo is not None

    async def test_duplicate_id_rejected(self, store):
        await store.create(_definition("dup"))

        with pytest.raises(DuplicateJobError, match="Job dup already exists"):
            await store.create(_definition("dup"))

    async def test_get_unknown_returns_none(self, store):
        assert await store.get("missing") is None

    async def test_jobs_survive_reopen(self, store, settings):
        await store.create(_definition("durable", 70000, 70007))

        reopened = Database(settings)
        try:
            other = JobStore(reopened.SessionLocal)
            job = await other.get("durable")
        finally:
            await reopened.close()

        assert job is not None
        assert job.item_ids == [70000, 70007]


class TestClaim:
    async def test_claim_is_fifo(self, store):
        await store.create(_definition("first"))
        await store.create(_definition("second"))

        job = await store.claim("w1", 30)

        assert job.id == "first"
        assert job.status == JobState.ACTIVE.value
        assert job.claimed_by == "w1"
        assert job.attempts == 1
        assert job.lease_expires_at is not None

    async def test_claim_empty_queue(self, store):
        assert await store.claim("w1", 30) is None

    async def test_active_job_not_reclaimed_while_leased(self, store):
        await store.create(_definition("only"))

        assert (await store.claim("w1", 30)).id == "only"
        assert await store.claim("w2", 30) is None

    async def test_concurrent_claims_get_distinct_jobs(self, store):
        await store.create(_definition("race"))

        claimed = await asyncio.gather(
            *(store.claim(f"w{i}", 30) for i in range(5))
        )

        winners = [job for job in claimed if job is not None]
        assert len(winners) == 1
        assert winners[0].id == "race"

    async def test_expired_lease_is_reclaimed(self, store):
        await store.create(_definition("stale"))
        await store.claim("w1", 0)

        job = await store.claim("w2", 30)

        assert job.id == "stale"
        assert job.claimed_by == "w2"
        assert job.attempts == 2


class TestOwnership:
    async def test_progress_is_monotonic(self, store):
        await store.create(_definition("p"))
        await store.claim("w1", 30)

        await store.update_progress("p", "w1", 60, 30)
        await store.update_progress("p", "w1", 20, 30)

        assert (await store.get("p")).progress == 60

    async def test_progress_is_clamped(self, store):
        await store.create(_definition("clamp"))
        await store.claim("w1", 30)

        await store.update_progress("clamp", "w1", 250, 30)

        assert (await store.get("clamp")).progress == 100

    async def test_write_after_lease_expiry(self, store):
        await store.create(_definition("late"))
        await store.claim("w1", 0)

        with pytest.raises(LeaseExpiredError):
            await store.update_progress("late", "w1", 50, 30)

    async def test_write_by_other_worker(self, store):
        await store.create(_definition("mine"))
        await store.claim("w1", 30)

        with pytest.raises(NotOwnerError):
            await store.update_progress("mine", "w2", 50, 30)

    async def test_renew_lease_extends_ownership(self, store):
        await store.create(_definition("renew"))
        claimed = await store.claim("w1", 30)
        await store.update_progress("renew", "w1", 40, 30)

        await store.renew_lease("renew", "w1", 120)

        job = await store.get("renew")
        assert job.lease_expires_at > claimed.lease_expires_at
        assert job.progress == 40
        assert job.claimed_by == "w1"

    async def test_renew_lease_by_other_worker(self, store):
        await store.create(_definition("held"))
        await store.claim("w1", 30)

        with pytest.raises(NotOwnerError):
            await store.renew_lease("held", "w2", 30)

    async def test_renew_lease_after_expiry(self, store):
        await store.create(_definition("lapsed"))
        await store.claim("w1", 0)

        with pytest.raises(LeaseExpiredError):
            await store.renew_lease("lapsed", "w1", 30)

    async def test_previous_owner_loses_job_after_reclaim(self, store):
        await store.create(_definition("moved"))
        await store.claim("w1", 0)
        await store.claim("w2", 30)

        with pytest.raises(NotOwnerError):
            await store.finish("moved", "w1", _result(), JobState.COMPLETED)

        job = await store.get("moved")
        assert job.status == JobState.ACTIVE.value
        assert job.claimed_by == "w2"

    async def test_finish_writes_terminal_state(self, store):
        await store.create(_definition("done"))
        await store.claim("w1", 30)

        await store.finish("done", "w1", _result(), JobState.COMPLETED)

        job = await store.get("done")
        assert job.status == JobState.COMPLETED.value
        assert job.progress == 100
        assert job.claimed_by is None
        assert job.lease_expires_at is None
        assert job.finished_at is not None
        assert job.result["successCount"] == 1

    async def test_finish_rejects_non_terminal_state(self, store):
        await store.create(_definition("bad"))
        await store.claim("w1", 30)

        with pytest.raises(ValueError, match="final_state must be terminal"):
            await store.finish("bad", "w1", _result(), JobState.QUEUED)

    async def test_finished_job_rejects_writes(self, store):
        await store.create(_definition("closed"))
        await store.claim("w1", 30)
        await store.finish("closed", "w1", _result(), JobState.COMPLETED)

        with pytest.raises(NotOwnerError):
            await store.update_progress("closed", "w1", 10, 30)


class TestRetries:
    async def test_defer_delays_reclaim(self, store):
        await store.create(_definition("retry"))
        await store.claim("w1", 30)

        await store.defer("retry", "w1", "boom", delay_seconds=60)

        job = await store.get("retry")
        assert job.status == JobState.ACTIVE.value
        assert job.last_error == "boom"
        assert job.error_code == ErrorCode.RETRY_SCHEDULED.value
        assert await store.claim("w2", 30) is None

    async def test_defer_without_delay_is_reclaimable(self, store):
        await store.create(_definition("retry-now"))
        await store.claim("w1", 30)
        await store.update_progress("retry-now", "w1", 50, 30)

        await store.defer("retry-now", "w1", "boom", delay_seconds=0)
        job = await store.claim("w2", 30)

        assert job.id == "retry-now"
        assert job.attempts == 2
        assert job.progress == 50

    async def test_exhausted_job_dead_lettered_on_claim(self, database):
        store = JobStore(database.SessionLocal, max_attempts=1)
        await store.create(_definition("crashed", 70000, 70007))
        await store.claim("w1", 0)

        assert await store.claim("w2", 30) is None

        job = await store.get("crashed")
        assert job.status == JobState.FAILED.value
        assert job.progress == 100
        assert job.error_code == ErrorCode.RETRIES_EXHAUSTED.value
        assert job.result["reason"] == "retries_exhausted"
        assert job.result["failedCount"] == 2

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError, match="max_attempts must be >= 1"):
            JobStore(session_factory=None, max_attempts=0)


class TestQueries:
    async def test_list_jobs_filters_by_state(self, store):
        await store.create(_definition("q1"))
        await store.create(_definition("q2"))
        await _finish(store, "q1", JobState.FAILED)

        failed, failed_total = await store.list_jobs(JobState.FAILED)
        everything, total = await store.list_jobs()

        assert [job.id for job in failed] == ["q1"]
        assert failed_total == 1
        assert total == 2
        assert [job.id for job in everything] == ["q2", "q1"]

    async def test_list_jobs_paginates(self, store):
        for i in range(5):
            await store.create(_definition(f"page-{i}"))

        jobs, total = await store.list_jobs(limit=2, offset=1)

        assert total == 5
        assert [job.id for job in jobs] == ["page-3", "page-2"]

    async def test_stats(self, store):
        await store.create(_definition("s1"))
        await store.create(_definition("s2"))
        await store.create(_definition("s3"))
        await _finish(store, "s1")
        await store.claim("w1", 30)

        stats = await store.stats()

        assert stats.total_jobs == 3
        assert stats.by_status == {"completed": 1, "active": 1, "queued": 1}
        assert stats.queue_depth == 2


class TestSweep:
    async def test_sweep_keeps_newest_by_count(self, store):
        for job_id in ("old", "mid", "new"):
            await store.create(_definition(job_id))
            await _finish(store, job_id)

        deleted = await store.sweep(
            {JobState.COMPLETED: RetentionPolicy(max_count=1, max_age_s=3600)}
        )

        assert deleted == 2
        assert await store.get("new") is not None
        assert await store.get("old") is None
        assert await store.get("mid") is None

    async def test_sweep_by_age(self, store):
        await store.create(_definition("aged"))
        await _finish(store, "aged", JobState.FAILED)
        await asyncio.sleep(0.01)

        deleted = await store.sweep(
            {JobState.FAILED: RetentionPolicy(max_count=100, max_age_s=0)}
        )

        assert deleted == 1
        assert await store.get("aged") is None

    async def test_sweep_never_touches_unfinished_jobs(self, store):
        await store.create(_definition("claimed"))
        await store.create(_definition("pending"))
        await store.claim("w1", 30)

        deleted = await store.sweep(
            {
                JobState.COMPLETED: RetentionPolicy(max_count=0, max_age_s=0),
                JobState.FAILED: RetentionPolicy(max_count=0, max_age_s=0),
            }
        )

        assert deleted == 0
        assert (await store.get("claimed")).status == JobState.ACTIVE.value
        assert (await store.get("pending")).status == JobState.QUEUED.value

    async def test_sweep_rejects_non_terminal_policy(self, store):
        with pytest.raises(ValueError, match="terminal states only"):
            await store.sweep({JobState.QUEUED: RetentionPolicy(1, 1)})

    def test_retention_policy_rejects_negative(self):
        with pytest.raises(ValueError):
            RetentionPolicy(max_count=-1, max_age_s=10)


def test_settings_fixture_uses_temp_database(settings: Settings):
    assert settings.database_url.endswith("/jobs.db")
    assert settings.run_workers is False
