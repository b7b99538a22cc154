"""Query Manager CLI - Main Entry Point"""

import typer
from rich.console import Console
from rich.panel import Panel

from query_manager.config.settings import settings

# Import command modules
from .client.endpoints import QueryManagerAPIError, QueryManagerClient
from .commands import jobs, worker
from .commands.jobs import ApiUrlOption
from .utils.formatting import print_error, print_info

console = Console()

# Create main Typer app
app = typer.Typer(
    name="query-manager",
    help="🗂️ Query Manager - background job operations CLI",
    rich_markup_mode="rich",
)

# Add command subapps
app.add_typer(jobs.app, name="jobs")
app.add_typer(worker.app, name="worker")


@app.command()
def status(api_url: str | None = ApiUrlOption):
    """📊 Check API, database and worker status"""
    try:
        with QueryManagerClient(api_url) as client:
            print_info(f"Checking connection to: {client.base_url}")
            health = client.health_check()
    except QueryManagerAPIError as e:
        print_error(f"Failed to connect: {e}")
        console.print(
            Panel(
                "🚫 [red]Connection Failed[/red]\n\n"
                "Make sure the Query Manager API is running, or point the CLI\n"
                "at it with [cyan]--api-url[/cyan] or "
                "[cyan]QUERY_MANAGER_API_URL[/cyan]",
                title="Connection Error",
                border_style="red",
            )
        )
        raise typer.Exit(1) from None

    database = health.get("database", {})
    worker_status = health.get("worker", {})
    healthy = health.get("ok", False)

    console.print(
        Panel(
            f"{'🚀 [green]Healthy[/green]' if healthy else '⚠ [red]Degraded[/red]'}\n\n"
            f"• Version: [cyan]{health.get('version', 'unknown')}[/cyan]\n"
            f"• Environment: [yellow]{health.get('environment', 'unknown')}[/yellow]\n"
            f"• Database: {'connected' if database.get('connected') else 'unavailable'}\n"
            f"• Worker: {'running' if worker_status.get('running') else 'stopped'}\n"
            f"• Queue depth: [blue]{worker_status.get('queue_depth', '—')}[/blue]",
            title="System Status",
            border_style="green" if healthy else "red",
        )
    )

    if not healthy:
        raise typer.Exit(1)


def _show_version(value: bool) -> None:
    if value:
        console.print(f"Query Manager CLI v{settings.version}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        callback=_show_version,
        is_eager=True,
        help="Show version and exit",
    ),
):
    """
    🗂️ Query Manager CLI

    Run job workers, trigger retention sweeps and inspect background jobs.
    """


if __name__ == "__main__":
    app()
