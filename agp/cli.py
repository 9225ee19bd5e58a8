"""CLI entry-point: create, run, inspect and reset article jobs."""

import asyncio
import json
import logging

import typer
from rich.console import Console
from rich.table import Table

from agp.config import get_settings
from agp.errors import JobAlreadyCompleted, JobAlreadyRunning, JobNotFound, JobRequiresReset, ValidationFailure
from agp.jobs.models import JobState
from agp.jobs.store import get_job_store
from agp.pipeline import ExecutionReport, create_job, get_orchestrator, reset_job, start_or_resume

app = typer.Typer(help="Multi-agent article generation pipeline")


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _print_report(console: Console, report: ExecutionReport) -> None:
    color = "green" if report.succeeded else "red"
    console.print(f"[{color}]{report.outcome.value}[/{color}] job {report.job_id}")
    if report.phases_run:
        console.print("Phases run: " + ", ".join(p.value for p in report.phases_run))
    if report.saved_article_id:
        console.print(f"Article: {report.saved_article_id} ({report.tokens_used} tokens)")
    if report.billing_error:
        console.print(f"[yellow]Billing: {report.billing_error}[/yellow]")
    if report.error:
        console.print(f"[red]Error: {report.error}[/red]")


def _run(job_id: str) -> ExecutionReport:
    return asyncio.run(start_or_resume(get_orchestrator(), get_job_store(), job_id, get_settings()))


@app.command()
def generate(
    keyword: list[str] = typer.Option(..., "--keyword", "-k", help="Seed keyword (repeatable; first is primary)"),
    company: str = typer.Option(..., "--company", help="Company id billed for the article"),
    title: str = typer.Option("", help="Working title (defaults to the primary keyword)"),
    website: str = typer.Option(None, help="Website id (used for duplicate detection)"),
    language: str = typer.Option(None, help="Target language code, e.g. zh-TW, en, ja"),
    words: int = typer.Option(None, help="Target word count"),
    images: int = typer.Option(None, help="Number of images (0 disables the image phase)"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Create a job and run it to completion."""
    _setup_logging(verbose)
    console = Console()
    store = get_job_store()
    try:
        job, created = create_job(
            store,
            company_id=company,
            keywords=keyword,
            title=title,
            website_id=website,
            target_language=language,
            word_count=words,
            image_count=images,
        )
    except ValidationFailure as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    if not created:
        console.print(f"[yellow]Existing job {job.id} ({job.status.value}) matches this request[/yellow]")
    else:
        console.print(f"Created job {job.id}")

    try:
        report = _run(job.id)
    except (JobNotFound, JobRequiresReset) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    _print_report(console, report)
    if not report.succeeded:
        raise typer.Exit(1)


@app.command("continue")
def continue_job(
    job_id: str = typer.Argument(..., help="Job id"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Resume a job from its last completed phase."""
    _setup_logging(verbose)
    console = Console()
    try:
        report = _run(job_id)
    except (JobNotFound, JobRequiresReset) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    _print_report(console, report)
    if not report.succeeded:
        raise typer.Exit(1)


@app.command()
def status(
    job_id: str = typer.Argument(..., help="Job id"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw job record"),
):
    """Show a job's status, phase and outputs present."""
    console = Console()
    job = get_job_store().get_job(job_id)
    if job is None:
        console.print(f"[red]Job not found: {job_id}[/red]")
        raise typer.Exit(1)
    if as_json:
        console.print_json(json.dumps(job.model_dump(mode="json"), ensure_ascii=False))
        return

    state = JobState.from_metadata(job.metadata)
    table = Table(title=f"Job {job.id}", show_header=False)
    table.add_row("Status", job.status.value)
    table.add_row("Current phase", state.current_phase.value if state.current_phase else "-")
    table.add_row("Keywords", ", ".join(job.keywords))
    table.add_row("Updated", job.updated_at.isoformat(timespec="seconds"))
    table.add_row("Article", state.saved_article_id or "-")
    if state.token_deduction_error:
        table.add_row("Billing error", state.token_deduction_error)
    if job.error_message:
        table.add_row("Error", job.error_message)
    console.print(table)


@app.command()
def reset(job_id: str = typer.Argument(..., help="Job id")):
    """Put a failed (or abandoned) job back to pending so it can be continued."""
    console = Console()
    try:
        job = reset_job(get_job_store(), job_id, get_settings())
    except (JobNotFound, JobAlreadyRunning, JobAlreadyCompleted) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Job {job.id} is {job.status.value}[/green]")


if __name__ == "__main__":
    app()
