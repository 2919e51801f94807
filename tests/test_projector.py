from downloader.v1.jobs.models import DownloadJob, FailureReason, JobState
from downloader.v1.jobs.projector import project
from downloader.v1.jobs.schemas import ExternalJobStatus, JobResult


def _job(status: JobState, progress: int = 0, result: dict | None = None) -> DownloadJob:
    return DownloadJob(
        id="job-1",
        item_ids=[70000, 70001, 70007],
        status=status.value,
        progress=progress,
        attempts=1,
        result=result,
    )


def test_queued_job_reports_zero_progress():
    status = project(_job(JobState.QUEUED, progress=40))

    assert status.status == ExternalJobStatus.QUEUED
    assert status.progress == 0
    assert status.total_items == 3
    assert status.result is None


def test_active_job_is_processing_with_stored_progress():
    status = project(_job(JobState.ACTIVE, progress=33))

    assert status.status == ExternalJobStatus.PROCESSING
    assert status.progress == 33
    assert status.result is None


def test_completed_job_carries_result():
    stored = JobResult(
        total_items=3,
        success_count=2,
        failed_count=1,
        download_urls=["https://a", "https://b"],
        message="Successfully processed 2/3 files",
    ).model_dump(mode="json", by_alias=True)

    status = project(_job(JobState.COMPLETED, progress=100, result=stored))

    assert status.status == ExternalJobStatus.COMPLETED
    assert status.progress == 100
    assert status.result.success_count == 2
    assert status.result.download_urls == ["https://a", "https://b"]


def test_failed_job_keeps_reason():
    stored = JobResult(
        total_items=3,
        success_count=0,
        failed_count=3,
        message="Retries exhausted after 3 attempts",
        reason=FailureReason.RETRIES_EXHAUSTED,
    ).model_dump(mode="json", by_alias=True)

    status = project(_job(JobState.FAILED, progress=66, result=stored))

    assert status.status == ExternalJobStatus.FAILED
    assert status.progress == 100
    assert status.result.reason == FailureReason.RETRIES_EXHAUSTED


def test_projection_serializes_camel_case():
    payload = project(_job(JobState.ACTIVE, progress=50)).model_dump(
        mode="json", by_alias=True
    )

    assert payload == {
        "jobId": "job-1",
        "status": "processing",
        "progress": 50,
        "totalItems": 3,
        "result": None,
    }


def test_projection_is_idempotent():
    job = _job(JobState.ACTIVE, progress=75)
    assert project(job) == project(job)
