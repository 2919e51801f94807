"""Download Jobs CLI - Main Entry Point"""

import typer
from rich.console import Console
from rich.panel import Panel

from .client.endpoints import DownloaderClient, DownloaderError
from .commands import config, jobs, worker
from .utils.config_manager import config as config_manager
from .utils.formatting import print_error, print_info

console = Console()

# Create main Typer app
app = typer.Typer(
    name="downloader",
    help="📦 Download Jobs - batch download queue CLI",
    rich_markup_mode="rich",
)

# Add command subapps
app.add_typer(jobs.app, name="jobs")
app.add_typer(worker.app, name="worker")
app.add_typer(config.app, name="config")


@app.command()
def status():
    """📊 Check API connectivity, storage and worker health"""
    base_url = config_manager.get("api.base_url")
    print_info(f"Checking connection to: {base_url}")

    try:
        with DownloaderClient(base_url) as client:
            health = client.health_check()
    except (DownloaderError, OSError) as e:
        print_error(f"Failed to connect: {e}")
        console.print(
            Panel(
                f"🚫 [red]Connection Failed[/red]\n\n"
                f"Make sure the Download Jobs API is running at:\n"
                f"[blue]{base_url}[/blue]\n\n"
                f"You can update the API URL with:\n"
                f"[cyan]downloader config set api.base_url <url>[/cyan]",
                title="Connection Error",
                border_style="red",
            )
        )
        raise typer.Exit(1) from None

    storage = health.get("storage") or {}
    worker_health = health.get("worker") or {}
    ok = health.get("ok", False)

    console.print(
        Panel(
            f"{'🚀 [green]Healthy[/green]' if ok else '⚠️ [yellow]Degraded[/yellow]'}\n\n"
            f"• Version: [cyan]{health.get('version', 'unknown')}[/cyan]\n"
            f"• Environment: [yellow]{health.get('environment', 'unknown')}[/yellow]\n"
            f"• Storage: [cyan]{storage.get('backend', 'unknown')}[/cyan] "
            f"({'reachable' if storage.get('reachable') else 'unreachable'})\n"
            f"• Workers running: [cyan]{worker_health.get('pool_running', False)}[/cyan]\n"
            f"• Queue depth: [cyan]{worker_health.get('queue_depth', 0)}[/cyan]\n"
            f"• API URL: [blue]{base_url}[/blue]",
            title="System Status",
            border_style="green" if ok else "yellow",
        )
    )


@app.command()
def version():
    """📎 Show CLI version information"""
    from . import __version__

    console.print(
        Panel(
            f"📦 [bold cyan]Download Jobs CLI[/bold cyan]\n\n"
            f"• Version: [green]{__version__}[/green]\n"
            f"• Type: [yellow]Command Line Interface[/yellow]",
            title="Version Info",
            border_style="cyan",
        )
    )


@app.command()
def quickstart():
    """🚀 Quick start guide"""
    console.print(
        Panel(
            "📦 [bold cyan]Download Jobs Quick Start[/bold cyan]\n\n"
            "[bold]1. Check Status[/bold]\n"
            "   [dim]downloader status[/dim]\n\n"
            "[bold]2. Submit a Batch[/bold]\n"
            "   [dim]downloader jobs submit 70000 70007 70014 --wait[/dim]\n\n"
            "[bold]3. Follow a Job[/bold]\n"
            "   [dim]downloader jobs watch <job-id>[/dim]\n\n"
            "[bold]4. Inspect Failed Jobs[/bold]\n"
            "   [dim]downloader jobs list --status failed[/dim]\n\n"
            "[bold]5. Run Standalone Workers[/bold]\n"
            "   [dim]downloader worker run --concurrency 4[/dim]\n\n"
            "[bold yellow]Tip:[/bold yellow] Use [cyan]--help[/cyan] with any command for more options!",
            title="Quick Start Guide",
            border_style="green",
        )
    )


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None, "--version", "-v", help="Show version and exit"
    ),
):
    """
    📦 Download Jobs CLI

    Submit batches of file ids, poll them to completion, and run workers.
    """
    if version:
        from . import __version__

        console.print(f"Download Jobs CLI v{__version__}")
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


if __name__ == "__main__":
    app()
