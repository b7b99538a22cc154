"""Rich Formatting Utilities for CLI Output"""

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

STATUS_STYLES = {
    "pending": "yellow",
    "processing": "blue",
    "completed": "green",
    "failed": "red",
    "cancelled": "dim",
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


def styled_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def create_jobs_table(jobs: list[dict[str, Any]]) -> Table:
    """Create a formatted table for a jobs list"""
    table = Table(title="Jobs", box=box.ROUNDED)

    table.add_column("ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Type", justify="center", style="magenta")
    table.add_column("Status", justify="center")
    table.add_column("Priority", justify="right")
    table.add_column("Retries", justify="right")
    table.add_column("Created", justify="left", style="white")

    for job in jobs:
        table.add_row(
            job.get("id", "")[:8],  # Short ID
            job.get("type", ""),
            styled_status(job.get("status", "")),
            str(job.get("priority", 0)),
            str(job.get("retry_count", 0)),
            (job.get("created_at") or "—")[:19],
        )

    return table


def create_job_panel(job: dict[str, Any]) -> Panel:
    """Create formatted panel for a single job"""
    lines = [
        f"• ID: [cyan]{job.get('id')}[/cyan]",
        f"• Type: [magenta]{job.get('type')}[/magenta]",
        f"• Status: {styled_status(job.get('status', ''))}",
        f"• Priority: {job.get('priority', 0)}",
        f"• Retries: {job.get('retry_count', 0)}",
    ]

    for field in (
        "scheduled_for",
        "created_at",
        "started_at",
        "completed_at",
        "failed_at",
        "cancelled_at",
    ):
        if job.get(field):
            lines.append(f"• {field.replace('_', ' ').capitalize()}: {job[field]}")

    if job.get("progress_percentage") is not None:
        lines.append(f"• Progress: [yellow]{job['progress_percentage']:.0f}%[/yellow]")

    if job.get("error"):
        lines.append(f"\n[red]{job['error']}[/red]")

    lines.append(f"\n[dim]{json.dumps(job.get('payload', {}), indent=2)}[/dim]")

    return Panel("\n".join(lines), title="Job", border_style="cyan")


def create_stats_panel(stats: dict[str, Any]) -> Panel:
    """Create formatted panel for queue statistics"""
    by_status = stats.get("by_status", {})
    by_type = stats.get("by_type", {})

    content = f"• Total jobs: [blue]{stats.get('total_jobs', 0)}[/blue]\n"
    content += f"• Queue depth: [yellow]{stats.get('queue_depth', 0)}[/yellow]\n"
    for status, count in sorted(by_status.items()):
        content += f"  {styled_status(status)}: {count}\n"
    for job_type, count in sorted(by_type.items()):
        content += f"  [magenta]{job_type}[/magenta]: {count}\n"

    return Panel(content.rstrip(), title="Queue Overview", border_style="green")
