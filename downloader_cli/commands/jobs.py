"""Jobs Commands - Submit download batches and follow their progress"""

import typer
from rich.console import Console
from rich.panel import Panel

from ..client.endpoints import DownloaderClient, DownloaderError
from ..client.polling import PollingTimeoutError, poll_job_status
from ..utils.config_manager import config
from ..utils.formatting import (
    create_jobs_table,
    create_result_panel,
    create_stats_table,
    format_status_line,
    print_error,
    print_info,
    print_success,
    print_warning,
)

console = Console()
app = typer.Typer(name="jobs", help="Download job submission and tracking commands")

JOB_STATES = ("queued", "active", "completed", "failed")


def _watch(client: DownloaderClient, job_id: str, interval: float, timeout: float | None):
    """Poll a job until it finishes and print the result panel"""
    try:
        final = poll_job_status(
            job_id,
            client.get_job_status,
            interval=interval,
            timeout=timeout,
            on_update=lambda status: console.print(format_status_line(status)),
        )
    except PollingTimeoutError as e:
        print_warning(f"Stopped waiting for job {job_id} after {timeout}s")
        if e.last_status:
            console.print(format_status_line(e.last_status))
        raise typer.Exit(2) from None

    console.print(create_result_panel(final))
    if final.get("status") == "failed":
        raise typer.Exit(1)


@app.command("submit")
def submit_job(
    file_ids: list[int] = typer.Argument(..., help="File ids to include in the batch"),
    job_id: str | None = typer.Option(None, "--job-id", help="Client-chosen job id"),
    wait: bool = typer.Option(False, "--wait", "-w", help="Poll until the job finishes"),
    interval: float | None = typer.Option(
        None, "--interval", "-i", help="Seconds between status polls"
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Give up waiting after N seconds"
    ),
):
    """📦 Submit a batch of file ids for download"""
    try:
        with DownloaderClient() as client:
            response = client.initiate_download(file_ids, job_id=job_id)
            submitted_id = response["jobId"]
            print_success(
                f"Job [cyan]{submitted_id}[/cyan] queued "
                f"with {response.get('totalItems', len(file_ids))} files"
            )

            if not wait:
                print_info(f"Follow it with: downloader jobs watch {submitted_id}")
                return

            _watch(
                client,
                submitted_id,
                interval or float(config.get("polling.interval", 2.0)),
                timeout if timeout is not None else config.get("polling.timeout"),
            )

    except DownloaderError as e:
        print_error(f"Failed to submit job: {e}")
        raise typer.Exit(1) from None


@app.command("watch")
def watch_job(
    job_id: str = typer.Argument(..., help="Job id to follow"),
    interval: float | None = typer.Option(
        None, "--interval", "-i", help="Seconds between status polls"
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Give up waiting after N seconds"
    ),
):
    """👀 Poll a job until it completes or fails"""
    try:
        with DownloaderClient() as client:
            _watch(
                client,
                job_id,
                interval or float(config.get("polling.interval", 2.0)),
                timeout if timeout is not None else config.get("polling.timeout"),
            )

    except DownloaderError as e:
        if e.status_code == 404:
            print_error(f"Job {job_id} not found")
        else:
            print_error(f"Failed to fetch job status: {e}")
        raise typer.Exit(1) from None


@app.command("list")
def list_jobs(
    status: str | None = typer.Option(
        None, "--status", "-s", help="Filter by state (queued, active, completed, failed)"
    ),
    limit: int = typer.Option(20, "--limit", "-l", help="Number of jobs to show"),
    offset: int = typer.Option(0, "--offset", "-o", help="Skip first N jobs"),
):
    """📋 List jobs, newest first"""
    if status is not None and status not in JOB_STATES:
        print_error(f"Unknown state '{status}'. Choose from: {', '.join(JOB_STATES)}")
        raise typer.Exit(1)

    try:
        with DownloaderClient() as client:
            data = client.list_jobs(status=status, limit=limit, offset=offset)

        jobs = data.get("jobs", [])
        total = data.get("total", len(jobs))

        if not jobs:
            console.print(
                Panel(
                    "📭 [yellow]No jobs found![/yellow]\n\n"
                    f"State filter: {status or 'any'}",
                    title="Empty Results",
                    border_style="yellow",
                )
            )
            return

        console.print(create_jobs_table(jobs))
        console.print(f"\n📊 Showing [cyan]{len(jobs)}[/cyan] of [yellow]{total}[/yellow] jobs")

        if offset + limit < total:
            console.print(f"💡 Use [cyan]--offset {offset + limit}[/cyan] to see more")

    except DownloaderError as e:
        print_error(f"Failed to list jobs: {e}")
        raise typer.Exit(1) from None


@app.command("stats")
def job_stats():
    """📊 Show job counts by state"""
    try:
        with DownloaderClient() as client:
            stats = client.get_job_stats()
        console.print(create_stats_table(stats))

    except DownloaderError as e:
        print_error(f"Failed to get job statistics: {e}")
        raise typer.Exit(1) from None


@app.command("check")
def check_file(
    file_id: int = typer.Argument(..., help="File id to check"),
):
    """🔍 Check whether a single file is available"""
    try:
        with DownloaderClient() as client:
            result = client.check_file(file_id)

        if result.get("available"):
            print_success(
                f"File {file_id} is available "
                f"([cyan]{result.get('key')}[/cyan], {result.get('size')} bytes)"
            )
        else:
            print_warning(f"File {file_id} is not available")

    except DownloaderError as e:
        print_error(f"Failed to check file: {e}")
        raise typer.Exit(1) from None
