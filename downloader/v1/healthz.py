from datetime import UTC, datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from downloader.infra.database import SessionDep, utcnow
from downloader.v1.core.exceptions import create_success_response
from downloader.v1.jobs.models import DownloadJob, JobState

router = APIRouter()


class DatabaseHealth(BaseModel):
    """Database health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class StorageHealth(BaseModel):
    """Object storage health status."""

    reachable: bool
    backend: str


class WorkerHealth(BaseModel):
    """Worker health status."""

    pool_running: bool
    active_workers: int
    expired_leases_count: int = 0
    queue_depth: int = 0


class HealthResponse(BaseModel):
    """Health response with database, storage and worker status."""

    ok: bool
    version: str
    environment: str
    timestamp: str
    database: DatabaseHealth
    storage: StorageHealth
    worker: WorkerHealth | None = None


@router.get("/healthz", response_model=dict)
async def health_check(request: Request, session: AsyncSession = SessionDep):
    """Health check endpoint with database, storage and worker status."""
    settings = request.app.state.settings
    timestamp = datetime.now(UTC).isoformat()

    db_health = await _check_database_health(session)

    storage_health = StorageHealth(
        reachable=await request.app.state.item_checker.ping(),
        backend=settings.item_checker.value,
    )

    worker_health = None
    if db_health.connected:
        worker_health = await _check_worker_health(
            session, request.app.state.worker_pool
        )

    health = HealthResponse(
        ok=db_health.connected and storage_health.reachable,
        version=settings.version,
        environment=settings.environment,
        timestamp=timestamp,
        database=db_health,
        storage=storage_health,
        worker=worker_health,
    )

    return create_success_response(
        data=health.model_dump(), request_id=getattr(request.state, "request_id", None)
    )


async def _check_database_health(session: AsyncSession) -> DatabaseHealth:
    """Check database connectivity and response time."""
    start_time = datetime.now(UTC)

    try:
        # Simple query to test database connectivity
        await session.execute(text("SELECT 1"))

        end_time = datetime.now(UTC)
        response_time_ms = (end_time - start_time).total_seconds() * 1000

        return DatabaseHealth(
            connected=True, response_time_ms=round(response_time_ms, 2)
        )

    except Exception as e:
        return DatabaseHealth(connected=False, error=str(e))


async def _check_worker_health(session: AsyncSession, pool) -> WorkerHealth:
    """Check job worker pool and queue status."""
    now = utcnow()

    # Workers currently holding an unexpired lease
    active_workers_result = await session.execute(
        select(func.count(func.distinct(DownloadJob.claimed_by))).where(
            DownloadJob.status == JobState.ACTIVE.value,
            DownloadJob.lease_expires_at > now,
        )
    )
    active_workers = active_workers_result.scalar() or 0

    # Active jobs whose worker stopped refreshing its lease
    expired_result = await session.execute(
        select(func.count(DownloadJob.id)).where(
            DownloadJob.status == JobState.ACTIVE.value,
            DownloadJob.lease_expires_at <= now,
        )
    )
    expired_leases_count = expired_result.scalar() or 0

    queue_depth_result = await session.execute(
        select(func.count(DownloadJob.id)).where(
            DownloadJob.status.in_([JobState.QUEUED.value, JobState.ACTIVE.value])
        )
    )
    queue_depth = queue_depth_result.scalar() or 0

    return WorkerHealth(
        pool_running=pool is not None and pool.running,
        active_workers=active_workers,
        expired_leases_count=expired_leases_count,
        queue_depth=queue_depth,
    )
