"""
Command line interface for repository ingestion and search.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
import uvicorn
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .errors import AppError
from .logger import configure_logging, get_logger, redirect_logging_to_file
from .rag import SearchMode
from .services import AppServices, Stage, build_services
from .settings import settings
from .version import __version__

app = typer.Typer(name="vespasearch", help="Repository ingestion and code search CLI.")
configure_logging(enable_console=False)
log = get_logger(__name__)
console = Console()


def _run(coro_factory) -> None:
    """Run an async command body against a fresh service graph."""

    async def runner() -> None:
        services = build_services()
        try:
            await coro_factory(services)
        finally:
            await services.aclose()

    try:
        asyncio.run(runner())
    except AppError as exc:
        typer.echo(f"[ERROR] {exc.message}")
        raise typer.Exit(code=1) from exc


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address."),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port."),
) -> None:
    """Run the HTTP API server."""
    configure_logging(json_output=settings.log_json)
    uvicorn.run(
        "vespasearch.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=False,
    )


@app.command()
def register(repo_url: str = typer.Argument(..., help="GitHub clone URL.")) -> None:
    """Register a repository and print its id."""

    async def body(services: AppServices) -> None:
        record = await services.registry.register(repo_url)
        typer.echo(f"Registered {record.owner}/{record.name} id={record.id}")

    _run(body)


@app.command("list")
def list_repos() -> None:
    """List registered repositories with their current stage."""

    async def body(services: AppServices) -> None:
        table = Table("id", "repository", "status", "message")
        for record in await services.registry.list():
            snapshot = await services.bus.read(record.id)
            table.add_row(
                record.id,
                f"{record.owner}/{record.name}",
                snapshot.stage.value,
                snapshot.message or "",
            )
        console.print(table)

    _run(body)


@app.command()
def index(
    repo_id: str = typer.Argument(..., help="Registered repository id."),
    log_file: Optional[Path] = typer.Option(
        None, "--log", help="Redirect detailed logs to this file."
    ),
) -> None:
    """Ingest a repository in the foreground, rendering stage events."""
    if log_file:
        redirect_logging_to_file(log_file.resolve())
        typer.echo(f"Logging detailed output to {log_file.resolve()}")

    outcome: dict = {}

    async def body(services: AppServices) -> None:
        record = await services.registry.get(repo_id)
        with services.bus.subscribe(record.id) as events, Progress(
            TextColumn("{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        ) as progress:
            feed_task = progress.add_task("Feeding documents", total=1)

            def on_feed(completed: int, total: int) -> None:
                total = max(total, 1)
                progress.update(
                    feed_task,
                    total=total,
                    completed=min(completed, total),
                    description=f"Feeding documents ({completed}/{total})",
                )

            await services.orchestrator.enqueue(record)
            runner = asyncio.create_task(
                services.orchestrator.run(record, progress=on_feed)
            )
            while not runner.done() or not events.empty():
                event = await events.get(timeout=0.5)
                if event is not None:
                    progress.console.print(
                        f"[{event.stage.value}] {event.message or ''}".rstrip()
                    )
            outcome["stage"] = await runner

    _run(body)
    if outcome.get("stage") is Stage.ERROR:
        raise typer.Exit(code=1)


@app.command()
def status(repo_id: str = typer.Argument(..., help="Registered repository id.")) -> None:
    """Show the persisted ingestion status."""

    async def body(services: AppServices) -> None:
        snapshot = await services.bus.read(repo_id)
        typer.echo(f"{snapshot.stage.value}: {snapshot.message or ''}".rstrip(": "))

    _run(body)


@app.command()
def search(
    query: str = typer.Argument(..., help="Search text."),
    repo: Optional[str] = typer.Option(None, "--repo", "-r", help="Repository id filter."),
    mode: SearchMode = typer.Option(SearchMode.HYBRID, "--mode", "-m", help="Search mode."),
) -> None:
    """Search indexed repositories."""

    async def body(services: AppServices) -> None:
        results = await services.search.search(query, repo_filter=repo, mode=mode)
        if not results:
            typer.echo("No results.")
            return
        for result in results:
            score = f" score={result.score:.4f}" if result.score is not None else ""
            console.print(
                f"[bold]{result.file_path}[/bold]:{result.line_start}-{result.line_end}"
                f" ({result.repo_id}){score}"
            )
            console.print(result.snippet, markup=False, highlight=False)
            console.print()

    _run(body)


@app.command()
def summarize(repo_id: str = typer.Argument(..., help="Registered repository id.")) -> None:
    """Generate a new summary version for a cloned repository."""

    async def body(services: AppServices) -> None:
        record = await services.registry.get(repo_id)
        entry = await services.orchestrator.resummarize(record)
        typer.echo(f"Summary v{entry.version} ({entry.created_at})")
        typer.echo(entry.summary)

    _run(body)


@app.command()
def version() -> None:
    """Print the installed version."""
    typer.echo(__version__)


if __name__ == "__main__":  # pragma: no cover
    app()
