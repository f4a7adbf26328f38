"""
Menu costing CLI.

Runs the cascade workers and covers the manual side of the queue:
stats, failed job inspection, retry and cleanup.
"""

import asyncio
import signal
import sys

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="costing",
    help="Menu costing operations CLI",
    add_completion=False,
)
console = Console()


def _require_queue(queue: str) -> str:
    from shared.config.constants import QueueNames

    if queue not in QueueNames.ALL:
        console.print(f"[red]Unknown queue '{queue}'. Known: {', '.join(QueueNames.ALL)}[/red]")
        raise typer.Exit(1)
    return queue


# =============================================================================
# Worker Commands
# =============================================================================

@app.command()
def worker(
    queues: list[str] = typer.Option(None, "--queue", "-q", help="Queue to consume (repeatable, default all)"),
    concurrency: int = typer.Option(None, help="Jobs processed in parallel per queue"),
    with_outbox: bool = typer.Option(False, "--with-outbox", help="Also publish margin alerts from the outbox"),
):
    """Run cascade workers until SIGINT or SIGTERM."""
    from shared.config.logging import setup_logging, worker_logger as logger
    from shared.infrastructure.events import close_redis_pool
    from costing.jobs.runner import WorkerGroup
    from costing.services.events import start_outbox_processor, stop_outbox_processor

    setup_logging()
    queue_names = [_require_queue(q) for q in queues] if queues else None

    async def _run():
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        group = WorkerGroup(queue_names=queue_names, concurrency=concurrency)
        group.start()
        if with_outbox:
            await start_outbox_processor()
        console.print("[green]✓ Workers running. Ctrl+C to stop.[/green]")

        await stop.wait()
        logger.info("Shutdown signal received")

        if with_outbox:
            await stop_outbox_processor()
        # Lets in-flight jobs finish
        await asyncio.to_thread(group.stop)
        await close_redis_pool()

    asyncio.run(_run())
    console.print("[green]✓ Workers stopped[/green]")


# =============================================================================
# Queue Commands
# =============================================================================

@app.command()
def queue_stats():
    """Show job counts for every queue."""
    from costing.jobs import get_job_queue

    stats = get_job_queue().get_all_stats()

    table = Table(title="Queue Statistics")
    table.add_column("Queue", style="cyan")
    for column in ("waiting", "active", "delayed", "completed", "failed"):
        table.add_column(column.capitalize(), style="red" if column == "failed" else "green")

    for name, counts in stats.items():
        table.add_row(
            name,
            *(str(counts[c]) for c in ("waiting", "active", "delayed", "completed", "failed")),
        )
    console.print(table)


@app.command()
def failed_jobs(
    queue: str = typer.Argument(..., help="Queue name"),
    limit: int = typer.Option(20, help="Max jobs to show"),
):
    """List the most recently failed jobs of a queue."""
    from costing.jobs import get_job_queue

    jobs = get_job_queue().get_failed_jobs(_require_queue(queue), limit=limit)
    if not jobs:
        console.print("[green]✓ No failed jobs[/green]")
        return

    table = Table(title=f"Failed jobs in '{queue}'")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Data")
    table.add_column("Attempts", style="yellow")
    table.add_column("Reason", style="red")

    for job in jobs:
        table.add_row(
            job.id,
            job.name,
            str(job.data),
            f"{job.attempts_made}/{job.max_attempts}",
            (job.failed_reason or "")[:80],
        )
    console.print(table)


@app.command()
def retry_job(
    queue: str = typer.Argument(..., help="Queue name"),
    job_id: str = typer.Argument(..., help="Failed job ID"),
):
    """Resubmit a failed job with a fresh attempt budget."""
    from fastapi import HTTPException
    from costing.jobs import get_job_queue

    try:
        job = get_job_queue().retry_job(_require_queue(queue), job_id)
    except HTTPException as e:
        console.print(f"[red]✗ {e.detail}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓ Job {job.id} ({job.name}) moved back to waiting[/green]")


@app.command()
def clean_queue(
    queue: str = typer.Argument(..., help="Queue name"),
    status: str = typer.Option("failed", help="completed or failed"),
    grace_seconds: int = typer.Option(None, help="Only jobs finished longer ago than this"),
):
    """Delete old completed or failed jobs."""
    from fastapi import HTTPException
    from costing.jobs import get_job_queue

    try:
        removed = get_job_queue().clean(_require_queue(queue), status, grace_seconds=grace_seconds)
    except HTTPException as e:
        console.print(f"[red]✗ {e.detail}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓ Removed {removed} {status} jobs from '{queue}'[/green]")


# =============================================================================
# Costing Commands
# =============================================================================

@app.command()
def recalculate_recipe(
    organization_id: int = typer.Argument(..., help="Organization ID"),
    recipe_id: int = typer.Argument(..., help="Recipe ID"),
):
    """Recompute a recipe's cost now; its menu items are queued as usual."""
    from fastapi import HTTPException
    from shared.infrastructure.db import get_db_context
    from costing.jobs import get_job_queue
    from costing.services.domain import RecipeService

    with get_db_context() as db:
        try:
            result = RecipeService(db, get_job_queue()).recalculate_now(recipe_id, organization_id)
        except HTTPException as e:
            console.print(f"[red]✗ {e.detail}[/red]")
            raise typer.Exit(1)

    table = Table(title=f"Recipe {result.recipe_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Total cost", str(result.total_cost))
    table.add_row("Cost per portion", str(result.cost_per_portion))
    table.add_row("Version", str(result.version))
    table.add_row("Lines", str(result.line_count))
    console.print(table)


# =============================================================================
# Setup Commands
# =============================================================================

@app.command()
def init_db():
    """Create all tables that do not exist yet."""
    from shared.infrastructure.db import engine
    from costing.models import Base

    Base.metadata.create_all(bind=engine)
    console.print("[green]✓ Database tables created/verified[/green]")


@app.command()
def create_organization(
    name: str = typer.Argument(..., help="Display name"),
    slug: str = typer.Argument(..., help="Unique slug (lowercase, digits, dashes)"),
):
    """Create an organization with default settings."""
    from fastapi import HTTPException
    from shared.infrastructure.db import get_db_context
    from costing.services.domain import OrganizationService

    with get_db_context() as db:
        try:
            organization = OrganizationService(db).create_organization(name, slug)
        except HTTPException as e:
            console.print(f"[red]✗ {e.detail}[/red]")
            raise typer.Exit(1)
        console.print(f"[green]✓ Organization {organization.id} '{organization.slug}' created[/green]")


@app.command()
def create_branch(
    organization_id: int = typer.Argument(..., help="Organization ID"),
    name: str = typer.Argument(..., help="Branch name"),
    address: str = typer.Option(None, help="Street address"),
):
    """Add a branch to an organization."""
    from fastapi import HTTPException
    from shared.infrastructure.db import get_db_context
    from costing.services.domain import OrganizationService

    with get_db_context() as db:
        try:
            branch = OrganizationService(db).create_branch(organization_id, name, address)
        except HTTPException as e:
            console.print(f"[red]✗ {e.detail}[/red]")
            raise typer.Exit(1)
        console.print(f"[green]✓ Branch {branch.id} '{branch.name}' created[/green]")


@app.command()
def version():
    """Show version information."""
    table = Table(title="Menu Costing Version")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")

    table.add_row("API", "0.1.0")
    table.add_row("Python", sys.version.split()[0])

    console.print(table)


if __name__ == "__main__":
    app()
