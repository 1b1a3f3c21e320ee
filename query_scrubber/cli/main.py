"""
CLI interface for Query Scrubber.

Provides command-line access to the job, its store and its usage ledger.
"""

import sqlite3
import sys
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from query_scrubber.config.loader import load_job_config_from_env
from query_scrubber.core.job import build_completions, run_job
from query_scrubber.demo.seed_demo_data import seed_demo_data
from query_scrubber.logging_config import setup_logging
from query_scrubber.storage.repository import (
    QueryStatsRepository,
    fetch_usage_events,
    initialize_schema
)

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

CONFIG_ERRORS = (OSError, ValueError, yaml.YAMLError)
SETUP_ERRORS = CONFIG_ERRORS + (sqlite3.Error,)

CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to YAML job configuration"
)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Query Scrubber CLI."""
    if ctx.invoked_subcommand is None:
        console.print("Query Scrubber - Use --help to see available commands")


@app.command()
def init(config_path: Optional[str] = CONFIG_OPTION):
    """Initialize the query stats database."""
    try:
        config = load_job_config_from_env(config_path)
        initialize_schema(config.db_path)
        console.print(f"[green]✓[/] Database initialized at {config.db_path}")
        sys.exit(EXIT_CODE_PASS)
    except SETUP_ERRORS as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def run(
    project_id: Optional[str] = typer.Option(
        None,
        "--project-id",
        "-p",
        help="Only process this project"
    ),
    config_path: Optional[str] = CONFIG_OPTION
):
    """
    Anonymize one batch of unprocessed queries.

    Without --project-id, the projects with the oldest unprocessed queries
    are processed one after another.
    """
    setup_logging()
    try:
        config = load_job_config_from_env(config_path)
    except CONFIG_ERRORS as e:
        console.print(f"[red]Invalid configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    repository = QueryStatsRepository(config.db_path)
    processed = run_job(repository, build_completions(config), config, project_id=project_id)
    console.print(f"[green]✓[/] Processed {processed} queries")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", help="Port to listen on")
):
    """Serve the HTTP trigger."""
    import uvicorn

    setup_logging()
    uvicorn.run(
        "query_scrubber.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        log_config=None
    )


@app.command()
def usage(
    project_id: Optional[str] = typer.Option(
        None,
        "--project-id",
        "-p",
        help="Filter to a specific project"
    ),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of events to show"),
    config_path: Optional[str] = CONFIG_OPTION
):
    """Show recent token usage recorded by the job."""
    try:
        config = load_job_config_from_env(config_path)
        events = fetch_usage_events(
            project_id=project_id,
            source=config.source,
            limit=limit,
            db_path=config.db_path
        )
    except sqlite3.OperationalError as e:
        if "no such table" in str(e).lower():
            console.print("\n[bold yellow]No usage recorded yet[/]")
            console.print("Run `query-scrubber init` to initialize the database\n")
            sys.exit(EXIT_CODE_PASS)
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    except CONFIG_ERRORS as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not events:
        console.print("\n[dim]No usage recorded yet.[/]")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Token usage")
    table.add_column("Timestamp")
    table.add_column("Project")
    table.add_column("Model")
    table.add_column("Tokens", justify="right")
    table.add_column("Est. cost", justify="right")
    for event in events:
        table.add_row(
            event.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            event.project_id,
            event.model,
            f"{event.total_tokens:,}",
            f"${event.estimated_cost:,.4f}"
        )
    console.print(table)
    total = sum(event.total_tokens for event in events)
    console.print(f"Total tokens: {total:,}")
    sys.exit(EXIT_CODE_PASS)


@app.command("seed-demo")
def seed_demo(config_path: Optional[str] = CONFIG_OPTION):
    """Insert a demo project with a few unprocessed queries."""
    try:
        config = load_job_config_from_env(config_path)
        count = seed_demo_data(config.db_path)
        console.print(f"[green]✓[/] Inserted {count} demo queries")
        sys.exit(EXIT_CODE_PASS)
    except SETUP_ERRORS as e:
        console.print(f"[red]Error seeding demo data:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


if __name__ == "__main__":
    app()
