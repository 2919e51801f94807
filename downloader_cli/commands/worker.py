"""Worker Commands - Run job workers outside the API process"""

import asyncio
import signal

import typer
from rich.console import Console

from downloader.config.logging import setup_logging
from downloader.config.settings import Settings, get_settings
from downloader.infra.database import Database
from downloader.v1.jobs.registry_init import build_item_checker
from downloader.v1.jobs.store import JobStore
from downloader.v1.jobs.worker import WorkerPool, retention_policies

from ..utils.formatting import print_info, print_success

console = Console()
app = typer.Typer(name="worker", help="Run job workers and maintenance against the job database")


async def _run_pool(settings: Settings, concurrency: int | None) -> None:
    database = Database(settings)
    await database.create_tables()
    store = JobStore(database.SessionLocal, max_attempts=settings.job_max_attempts)
    pool = WorkerPool(store, build_item_checker(settings), settings, size=concurrency)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, pool.request_stop)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            pass

    try:
        await pool.run_forever()
    finally:
        await database.close()


async def _sweep(settings: Settings) -> int:
    database = Database(settings)
    try:
        await database.create_tables()
        store = JobStore(database.SessionLocal, max_attempts=settings.job_max_attempts)
        return await store.sweep(retention_policies(settings))
    finally:
        await database.close()


@app.command("run")
def run_workers(
    concurrency: int | None = typer.Option(
        None, "--concurrency", "-c", help="Number of workers (defaults to JOB_CONCURRENCY)"
    ),
):
    """⚙️ Run a worker pool until interrupted"""
    settings = get_settings()

    setup_logging(settings)
    print_info(
        f"Starting {concurrency or settings.job_concurrency} workers "
        f"against [cyan]{settings.database_url}[/cyan]"
    )
    console.print("Press Ctrl+C to stop workers gracefully.")

    try:
        asyncio.run(_run_pool(settings, concurrency))
    except KeyboardInterrupt:
        pass

    print_success("Workers stopped cleanly")


@app.command("sweep")
def sweep_jobs():
    """🧹 Delete finished jobs outside their retention window"""
    settings = get_settings()

    setup_logging(settings)
    deleted = asyncio.run(_sweep(settings))
    print_success(f"Deleted {deleted} finished jobs")
