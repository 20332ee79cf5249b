"""
Finance tracker command-line utilities.

Usage:
    finance seed --snapshot fixtures/finance_snapshot.json
    finance check-connection
    finance serve --port 4000
    finance export csv --output-dir exports/
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from config import ConfigurationError, get_settings, require_database_url
from database import Store

logging.basicConfig(level=logging.INFO)

app = typer.Typer(
    name="finance",
    help="Finance tracker utilities: seeding, connectivity checks, serving and exports.",
    no_args_is_help=True,
)
console = Console()


class ExportFormat(str, Enum):
    csv = "csv"
    json = "json"


def _connected_store() -> Store:
    try:
        database_url = require_database_url()
    except ConfigurationError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    store = Store(database_url)
    try:
        store.connect()
    except SQLAlchemyError as exc:
        console.print(f"[bold red]Connection failed:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    return store


@app.command()
def seed(
    snapshot: Optional[str] = typer.Option(
        None,
        "--snapshot",
        "-s",
        help="Snapshot JSON to load (defaults to the bundled fixture)",
    ),
) -> None:
    """Replace every collection with the snapshot contents."""
    from services import SeedService
    from snapshot import load_snapshot

    store = _connected_store()
    try:
        data = load_snapshot(snapshot)
        store.reset()
        with store.session_scope() as session:
            counts = SeedService(session).seed(data)
    except (OSError, ValueError, SQLAlchemyError) as exc:
        console.print(f"[bold red]Seeding failed:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    finally:
        store.close()

    table = Table(title="Seeded collections")
    table.add_column("Collection", style="cyan")
    table.add_column("Documents", justify="right")
    for name, count in counts.items():
        table.add_row(name, str(count))
    console.print(table)
    console.print("[green]Database seeded successfully[/green]")


@app.command("check-connection")
def check_connection() -> None:
    """Connect to the configured database and run a round trip query."""
    store = _connected_store()
    try:
        store.ping()
    except SQLAlchemyError as exc:
        console.print(f"[bold red]Connection test failed:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    finally:
        store.close()
    console.print(f"[green]Connected and pinged[/green] {get_settings().database_name}")


@app.command("apply-pending")
def apply_pending() -> None:
    """Apply balance and monthly updates for transactions that never received them."""
    from services import AggregateUpdater

    store = _connected_store()
    try:
        with store.session_scope() as session:
            applied = AggregateUpdater(session).apply_pending()
    finally:
        store.close()
    console.print(f"Applied aggregates for [bold]{applied}[/bold] transaction(s)")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (defaults to $PORT)"),
) -> None:
    """Run the finance API server."""
    import uvicorn

    from main import app as api

    uvicorn.run(api, host=host, port=port or get_settings().port)


@app.command()
def export(
    fmt: ExportFormat = typer.Argument(..., help="csv or json"),
    output_dir: Optional[str] = typer.Option(
        None, "--output-dir", "-o", help="Directory for the export file"
    ),
    api_url: Optional[str] = typer.Option(
        None, "--api-url", help="Finance API base URL (defaults to $FINANCE_API_URL)"
    ),
) -> None:
    """Export data from a running finance API."""
    from client import FinanceApiClient, FinanceApiError
    from data_cache import FinanceDataCache

    async def _run():
        cache = FinanceDataCache(FinanceApiClient(api_url))
        try:
            if fmt == ExportFormat.csv:
                return await cache.export_csv([], output_dir)
            return await cache.export_json(output_dir)
        finally:
            await cache.api.aclose()

    try:
        path = asyncio.run(_run())
    except FinanceApiError as exc:
        console.print(f"[bold red]Export failed:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]Exported[/green] {path}")


if __name__ == "__main__":
    app()
