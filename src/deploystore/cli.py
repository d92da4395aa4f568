"""CLI for deploystore.

Commands:
    init-db                          - Create catalog tables
    reset-db                         - Drop and recreate catalog tables
    deploy <site> <archive.zip>      - Create a deployment from a ZIP archive
    show-deployment <id>             - List the files a deployment serves
    fetch <id> <path>                - Write one deployed file to stdout or a file
    gc                               - Reclaim content unused by recent deployments
"""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from deploystore.config import settings
from deploystore.db import drop_db, engine, init_db
from deploystore.errors import DeployStoreError
from deploystore.services import (
    CatalogStore,
    DeploymentIngestor,
    GarbageCollector,
    cutoff_for_retention,
)
from deploystore.storage import build_blob_store

app = typer.Typer(
    name="deploystore",
    help="deploystore: content-addressed storage for site deployments",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def configure(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Log per-entry detail")
    ] = False,
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def run_async(coro):
    """Run an async coroutine in sync context."""
    return asyncio.run(coro)


def _fail(exc: DeployStoreError) -> typer.Exit:
    hint = " (retryable)" if exc.retryable else ""
    console.print(f"[red]Error:[/red] {exc}{hint}")
    return typer.Exit(1)


@app.command()
def deploy(
    site_id: Annotated[str, typer.Argument(help="Site the deployment belongs to")],
    archive: Annotated[Path, typer.Argument(help="ZIP archive with the site's files")],
    context: Annotated[
        str | None, typer.Option("--context", "-c", help="Free-form deployment context")
    ] = None,
):
    """Create a deployment and ingest an archive into it."""
    if not archive.is_file():
        console.print(f"[red]Error:[/red] Archive does not exist: {archive}")
        raise typer.Exit(1)

    async def _deploy():
        await init_db(engine)
        catalog = CatalogStore(engine)
        ingestor = DeploymentIngestor(
            catalog,
            build_blob_store(settings),
            concurrency=settings.ingest_concurrency,
        )
        deployment = await catalog.create_deployment(site_id, context)
        created.append(deployment.deployment_id)
        console.print(f"[blue]Deployment {deployment.deployment_id}[/blue] for site {site_id}")
        return await ingestor.ingest(deployment, archive.read_bytes())

    created: list[str] = []
    try:
        report = run_async(_deploy())
    except DeployStoreError as exc:
        if created:
            # The deployment row exists but links nothing
            console.print(
                f"[yellow]Deployment {created[0]} was created but has no files; "
                "deploy again to retry.[/yellow]"
            )
        raise _fail(exc) from None

    table = Table(title="Ingestion Summary")
    table.add_column("Metric")
    table.add_column("Count", justify="right")
    table.add_row("Files linked", str(report.files))
    table.add_row("Newly stored", str(report.stored))
    table.add_row("Deduplicated", str(report.deduplicated))
    table.add_row("Directories skipped", str(report.directories))
    console.print(table)


@app.command("show-deployment")
def show_deployment(
    deployment_id: Annotated[str, typer.Argument(help="Deployment ID")],
):
    """Show a deployment and the files it serves."""

    async def _show():
        catalog = CatalogStore(engine)
        deployment = await catalog.get_deployment(deployment_id)
        return deployment, await catalog.list_deployment_files(deployment_id)

    try:
        deployment, entries = run_async(_show())
    except DeployStoreError as exc:
        raise _fail(exc) from None

    console.print(f"[bold]Deployment:[/bold] {deployment.deployment_id}")
    console.print(f"  Site: {deployment.site_id}")
    console.print(f"  Created: {deployment.created_at}")
    if deployment.context:
        console.print(f"  Context: {deployment.context}")

    table = Table(title=f"Files ({len(entries)})")
    table.add_column("Path")
    table.add_column("MIME type")
    table.add_column("Size", justify="right")
    table.add_column("Hash")
    for entry in entries:
        table.add_row(
            entry.path, entry.mime_type or "-", str(entry.byte_size), entry.content_hash[:12]
        )
    console.print(table)


@app.command()
def fetch(
    deployment_id: Annotated[str, typer.Argument(help="Deployment ID")],
    path: Annotated[str, typer.Argument(help="Path within the deployment")],
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write to this file instead of stdout")
    ] = None,
):
    """Fetch one file of a deployment from the blob store."""

    async def _fetch():
        catalog = CatalogStore(engine)
        entry = await catalog.get_deployment_file(deployment_id, path)
        if entry is None:
            return None
        return await build_blob_store(settings).get(entry.content_hash)

    try:
        data = run_async(_fetch())
    except DeployStoreError as exc:
        raise _fail(exc) from None

    if data is None:
        console.print(f"[red]Error:[/red] {path} is not part of deployment {deployment_id}")
        raise typer.Exit(1)

    if output is not None:
        output.write_bytes(data)
        console.print(f"[green]Wrote {len(data)} bytes to {output}[/green]")
    else:
        sys.stdout.buffer.write(data)


@app.command()
def gc(
    retention_days: Annotated[
        int | None,
        typer.Option("--retention-days", help="Keep content used by deployments this recent"),
    ] = None,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="List candidates without deleting")
    ] = False,
):
    """Reclaim blobs and file records unused by recent deployments."""
    days = settings.gc_retention_days if retention_days is None else retention_days
    cutoff = cutoff_for_retention(timedelta(days=days))

    async def _gc():
        collector = GarbageCollector(CatalogStore(engine), build_blob_store(settings))
        return await collector.collect(cutoff, dry_run=dry_run)

    try:
        report = run_async(_gc())
    except DeployStoreError as exc:
        raise _fail(exc) from None

    if dry_run:
        console.print(
            f"[yellow]Dry run:[/yellow] {len(report.candidates)} file(s) unused since "
            f"{cutoff.isoformat()}"
        )
        for record in report.candidates:
            console.print(f"  {record.content_hash}  {record.byte_size}B")
        return

    console.print(
        f"[bold]Summary:[/bold] {len(report.deleted)} deleted "
        f"({report.reclaimed_bytes} bytes), {len(report.failures)} failed"
    )
    if report.failures:
        table = Table(title="Not reclaimed")
        table.add_column("Hash")
        table.add_column("Reason")
        for failure in report.failures:
            table.add_row(failure.content_hash, failure.message)
        console.print(table)
        raise typer.Exit(2)


@app.command("init-db")
def init_db_command():
    """Initialize the catalog schema (creates tables if they don't exist)."""

    async def _init():
        await init_db(engine)
        console.print("[green]Catalog initialized successfully.[/green]")

    run_async(_init())


@app.command("reset-db")
def reset_db(
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Skip confirmation prompt")
    ] = False,
):
    """Reset the catalog - drops all tables and recreates them.

    WARNING: This destroys all catalog data! Blobs are left in place and
    are no longer tracked.
    """
    if not force:
        confirm = typer.confirm(
            "This will DELETE ALL CATALOG DATA. Are you sure?",
            default=False,
        )
        if not confirm:
            console.print("[yellow]Aborted.[/yellow]")
            raise typer.Exit(0)

    async def _reset():
        await drop_db(engine)
        await init_db(engine)
        console.print("[green]Catalog reset successfully.[/green]")

    run_async(_reset())


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
