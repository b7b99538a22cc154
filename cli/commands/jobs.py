"""Jobs Commands - Inspect and manage background jobs"""

import json

import typer
from rich.console import Console
from rich.panel import Panel

from ..client.endpoints import QueryManagerAPIError, QueryManagerClient
from ..utils.formatting import (
    create_job_panel,
    create_jobs_table,
    create_stats_panel,
    print_error,
    print_info,
    print_success,
    styled_status,
)

console = Console()
app = typer.Typer(name="jobs", help="Background job inspection commands")

ApiUrlOption = typer.Option(
    None, "--api-url", envvar="QUERY_MANAGER_API_URL", help="Query Manager API URL"
)


@app.command("list")
def list_jobs(
    status: list[str] | None = typer.Option(
        None, "--status", "-s", help="Filter by status (repeatable)"
    ),
    type: str | None = typer.Option(None, "--type", "-t", help="Filter by job type"),
    page: int = typer.Option(1, "--page", "-p", help="Page number"),
    limit: int = typer.Option(20, "--limit", "-l", help="Jobs per page"),
    api_url: str | None = ApiUrlOption,
):
    """📋 List jobs, newest first"""
    try:
        with QueryManagerClient(api_url) as client:
            data = client.list_jobs(status=status, type=type, page=page, limit=limit)
    except QueryManagerAPIError as e:
        print_error(f"Failed to list jobs: {e}")
        raise typer.Exit(1) from None

    jobs = data.get("items", [])
    if not jobs:
        console.print(
            Panel(
                "📭 [yellow]No jobs found![/yellow]\n\n"
                f"• Status: {', '.join(status) if status else 'any'}\n"
                f"• Type: {type or 'any'}",
                title="Empty Results",
                border_style="yellow",
            )
        )
        return

    console.print(create_jobs_table(jobs))
    console.print(
        f"\n📊 Page [cyan]{data.get('page', page)}[/cyan] of "
        f"[cyan]{data.get('pages', 1)}[/cyan], "
        f"[yellow]{data.get('total', len(jobs))}[/yellow] jobs"
    )


@app.command("show")
def show_job(
    job_id: str = typer.Argument(..., help="Job ID to show"),
    api_url: str | None = ApiUrlOption,
):
    """🔍 Show a job"""
    try:
        with QueryManagerClient(api_url) as client:
            job = client.get_job(job_id)
    except QueryManagerAPIError as e:
        print_error(f"Failed to get job: {e}")
        raise typer.Exit(1) from None

    console.print(create_job_panel(job))


@app.command("result")
def show_result(
    job_id: str = typer.Argument(..., help="Job ID"),
    api_url: str | None = ApiUrlOption,
):
    """📦 Show the result of a finished job"""
    try:
        with QueryManagerClient(api_url) as client:
            outcome = client.get_job_result(job_id)
    except QueryManagerAPIError as e:
        print_error(f"No result available: {e}")
        raise typer.Exit(1) from None

    if outcome.get("status") == "failed":
        print_error(f"Job failed: {outcome.get('error')}")
        raise typer.Exit(1)

    console.print(f"Status: {styled_status(outcome.get('status', ''))}")
    console.print_json(json.dumps(outcome.get("result")))


@app.command("cancel")
def cancel_job(
    job_id: str = typer.Argument(..., help="Job ID to cancel"),
    api_url: str | None = ApiUrlOption,
):
    """🛑 Cancel a pending or processing job"""
    try:
        with QueryManagerClient(api_url) as client:
            job = client.cancel_job(job_id)
    except QueryManagerAPIError as e:
        print_error(f"Failed to cancel job: {e}")
        raise typer.Exit(1) from None

    print_success(f"Job {job.get('id', job_id)} cancelled")


@app.command("stats")
def show_stats(api_url: str | None = ApiUrlOption):
    """📊 Show queue statistics"""
    try:
        with QueryManagerClient(api_url) as client:
            print_info(f"Fetching statistics from {client.base_url}")
            stats = client.get_job_stats()
    except QueryManagerAPIError as e:
        print_error(f"Failed to get statistics: {e}")
        raise typer.Exit(1) from None

    console.print(create_stats_panel(stats))


def _parse_json_object(value: str | None, option: str) -> dict:
    if not value:
        return {}
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        print_error(f"{option} is not valid JSON: {e}")
        raise typer.Exit(1) from None
    if not isinstance(parsed, dict):
        print_error(f"{option} must be a JSON object")
        raise typer.Exit(1)
    return parsed


def _print_queued(job: dict) -> None:
    print_success(f"Job {job.get('job_id')} queued")
    print_info(f"Follow it with: query-manager jobs show {job.get('job_id')}")


@app.command("enqueue")
def enqueue_job(
    job_type: str = typer.Argument(..., help="Registered job type"),
    payload: str | None = typer.Option(
        None, "--payload", help="Job payload as a JSON object"
    ),
    priority: int = typer.Option(0, "--priority", help="Higher runs first"),
    api_url: str | None = ApiUrlOption,
):
    """📥 Enqueue a job of any registered type"""
    body = _parse_json_object(payload, "--payload")
    try:
        with QueryManagerClient(api_url) as client:
            job = client.enqueue_job(job_type, body, priority=priority)
    except QueryManagerAPIError as e:
        print_error(f"Failed to enqueue job: {e}")
        raise typer.Exit(1) from None

    _print_queued(job)


@app.command("query")
def run_query(
    query_id: str = typer.Argument(..., help="Stored query ID"),
    params: str | None = typer.Option(
        None, "--params", help="Query parameters as a JSON object"
    ),
    api_url: str | None = ApiUrlOption,
):
    """🔎 Queue a stored query for background execution"""
    parameters = _parse_json_object(params, "--params")
    try:
        with QueryManagerClient(api_url) as client:
            job = client.execute_query_async(query_id, parameters)
    except QueryManagerAPIError as e:
        print_error(f"Failed to queue query: {e}")
        raise typer.Exit(1) from None

    _print_queued(job)


@app.command("report")
def run_report(
    report_id: str = typer.Argument(..., help="Stored report ID"),
    params: str | None = typer.Option(
        None, "--params", help="Report parameters as a JSON object"
    ),
    api_url: str | None = ApiUrlOption,
):
    """📄 Queue a stored report for background generation"""
    parameters = _parse_json_object(params, "--params")
    try:
        with QueryManagerClient(api_url) as client:
            job = client.generate_report_async(report_id, parameters)
    except QueryManagerAPIError as e:
        print_error(f"Failed to queue report: {e}")
        raise typer.Exit(1) from None

    _print_queued(job)
