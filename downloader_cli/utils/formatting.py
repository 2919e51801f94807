"""Rich Formatting Utilities for CLI Output"""

from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

STATUS_COLORS = {
    "queued": "yellow",
    "processing": "cyan",
    "active": "cyan",
    "completed": "green",
    "failed": "red",
}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def _status_text(status: str) -> str:
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status}[/{color}]"


def format_status_line(status: dict[str, Any]) -> str:
    """One-line progress summary for a polled job"""
    return (
        f"{status.get('jobId', '')[:8]}  {_status_text(status.get('status', '?'))}  "
        f"{status.get('progress', 0):>3}%  ({status.get('totalItems', 0)} files)"
    )


def create_result_panel(status: dict[str, Any]) -> Panel:
    """Create a panel summarizing a finished job"""
    result = status.get("result") or {}
    job_status = status.get("status", "unknown")
    urls = result.get("downloadUrls") or []

    lines = [
        f"[bold]Job:[/bold] [cyan]{status.get('jobId', '')}[/cyan]",
        f"[bold]Status:[/bold] {_status_text(job_status)}",
        f"[bold]Succeeded:[/bold] [green]{result.get('successCount', 0)}[/green]"
        f"   [bold]Failed:[/bold] [red]{result.get('failedCount', 0)}[/red]",
        f"[bold]Message:[/bold] {result.get('message', '—')}",
    ]
    if urls:
        lines.append("")
        lines.append("[bold]Download URLs:[/bold]")
        lines.extend(f"  • [blue]{url}[/blue]" for url in urls)

    return Panel(
        "\n".join(lines),
        title="Job Result",
        border_style=STATUS_COLORS.get(job_status, "white"),
    )


def create_jobs_table(jobs: list[dict[str, Any]]) -> Table:
    """Create a formatted table for a job listing"""
    table = Table(title="Download Jobs", box=box.ROUNDED)

    table.add_column("ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Progress", justify="right", style="yellow")
    table.add_column("Attempts", justify="right")
    table.add_column("Files", justify="right")
    table.add_column("Last Error", justify="left", style="red")

    for job in jobs:
        table.add_row(
            job.get("jobId", "")[:8],
            _status_text(job.get("status", "")),
            f"{job.get('progress', 0)}%",
            str(job.get("attempts", 0)),
            str(job.get("totalItems", 0)),
            job.get("lastError") or "—",
        )

    return table


def create_stats_table(stats: dict[str, Any]) -> Table:
    """Create a formatted table for job statistics"""
    table = Table(title="Job Statistics", box=box.ROUNDED)
    table.add_column("Status", justify="left")
    table.add_column("Count", justify="right", style="cyan")

    for status, count in sorted(stats.get("byStatus", {}).items()):
        table.add_row(_status_text(status), str(count))

    table.add_section()
    table.add_row("[bold]queue depth[/bold]", str(stats.get("queueDepth", 0)))
    table.add_row("[bold]total[/bold]", str(stats.get("totalJobs", 0)))
    return table
