"""
Mapping from stored job records to the external polling contract.
"""

from typing import assert_never

from downloader.v1.jobs.models import DownloadJob, JobState
from downloader.v1.jobs.schemas import ExternalJobStatus, ExternalStatus, JobResult


def project(job: DownloadJob) -> ExternalStatus:
    """Read-only view of a job for polling clients."""
    state = job.state

    if state is JobState.QUEUED:
        status, progress, result = ExternalJobStatus.QUEUED, 0, None
    elif state is JobState.ACTIVE:
        status, progress, result = ExternalJobStatus.PROCESSING, job.progress, None
    elif state is JobState.COMPLETED:
        status, progress, result = ExternalJobStatus.COMPLETED, 100, _result(job)
    elif state is JobState.FAILED:
        status, progress, result = ExternalJobStatus.FAILED, 100, _result(job)
    else:
        assert_never(state)

    return ExternalStatus(
        job_id=job.id,
        status=status,
        progress=progress,
        total_items=job.total_items,
        result=result,
    )


def _result(job: DownloadJob) -> JobResult | None:
    if job.result is None:
        return None
    return JobResult.model_validate(job.result)
