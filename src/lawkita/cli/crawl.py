"""CLI commands for crawl jobs.

Usage:
    lawkita crawl run --source news [--max-pages N] [--dry-run]
    lawkita crawl run --source directory --state Selangor --state Penang
    lawkita crawl runs [--limit N]
"""

import asyncio
import sys

import click

from ..logging import setup_logging


@click.group(name="crawl")
def cli():
    """Crawl job commands."""
    setup_logging()


@cli.command(name="run")
@click.option(
    "--source",
    type=click.Choice(["news", "judgments", "directory"]),
    default="news",
    help="Source type to crawl (default: news)",
)
@click.option(
    "--state",
    "states",
    multiple=True,
    help="Directory state to crawl (repeatable; default: all)",
)
@click.option(
    "--max-pages",
    type=click.IntRange(1, 100),
    default=None,
    help="Pages per source, or per state for the directory",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Run every stage without writing to the database",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output",
)
def crawl_run(
    source: str,
    states: tuple[str, ...],
    max_pages: int | None,
    dry_run: bool,
    verbose: bool,
):
    """Crawl a source and run its documents through the case pipeline.

    Examples:

        # Daily news crawl
        lawkita crawl run --source news

        # See what would change without writing
        lawkita crawl run --source news --max-pages 5 --dry-run

        # Two states of the Bar directory
        lawkita crawl run --source directory --state Selangor --state Penang
    """
    from pydantic import ValidationError

    from ..cases.jobs import JobTriggerRequest, run_crawl_job

    try:
        request = JobTriggerRequest(
            source=source,
            states=list(states) or None,
            max_pages=max_pages,
            dry_run=dry_run,
        )
    except ValidationError as e:
        raise click.BadParameter(str(e)) from e

    click.echo(f"Starting {source} crawl" + (" (dry run)" if dry_run else "") + "...")

    response = asyncio.run(run_crawl_job(request))
    _print_response(response, verbose)

    if not response.success:
        sys.exit(1)


@cli.command(name="runs")
@click.option(
    "--limit",
    type=click.IntRange(1, 100),
    default=10,
    help="Number of runs to show (default: 10)",
)
def crawl_runs(limit: int):
    """List recent crawl job runs."""
    from ..cases.run_log import SqlJobRunLog

    runs = asyncio.run(SqlJobRunLog().recent(limit))
    if not runs:
        click.echo("No crawl runs recorded")
        return

    for run in runs:
        click.echo(
            f"{run.started_at:%Y-%m-%d %H:%M}  {run.source:<10} {run.status:<10} "
            f"processed={run.records_processed} created={run.records_created} "
            f"updated={run.records_updated} errors={run.error_count}"
        )


def _print_response(response, verbose: bool):
    """Print a crawl job response."""
    if not response.success:
        status, color = "FAILED", "red"
    elif response.stats.error_count:
        status, color = "PARTIAL", "yellow"
    else:
        status, color = "COMPLETED", "green"

    click.echo("\n" + "=" * 40)
    click.echo("Crawl ", nl=False)
    click.secho(status, fg=color)
    click.echo("=" * 40)

    stats = response.stats
    click.echo(f"Run: {response.run_id}")
    click.echo(f"Duration: {stats.duration_ms / 1000:.1f} seconds")
    click.echo(f"Documents processed: {stats.processed}")
    click.echo(f"Cases created: {stats.created}")
    click.echo(f"Cases updated: {stats.updated}")
    click.echo(f"Skipped: {stats.skipped}")
    if response.success:
        click.echo(
            f"Published: {response.published}, flagged: {response.flagged}, "
            f"pending: {response.pending}"
        )
    if response.cancelled:
        click.echo("Run was cancelled before all documents were dispatched")

    if response.errors:
        click.echo(f"\nErrors: {stats.error_count}")
        limit = len(response.errors) if verbose else 5
        for i, error in enumerate(response.errors[:limit], 1):
            click.echo(f"  {i}. {error}")
        if len(response.errors) > limit:
            click.echo(f"  ... and {len(response.errors) - limit} more (use -v)")
