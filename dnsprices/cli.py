"""dnsprices CLI.

Commands:
- init: Initialize database schema
- ingest: Import a city price list (XLS/XLSX) into the observation store
- history: Show recorded price and bonus changes of a product in a city
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from dnsprices.config import get_config, resolve_database_url
from dnsprices.core.logging import configure_logging
from dnsprices.db.connection import create_engine, get_session, init_db
from dnsprices.db.price_queries import get_city_id, get_history
from dnsprices.exceptions import CityNameError, WorkbookError
from dnsprices.ingestion.pricelists import city_from_filename, ingest_workbook
from dnsprices.ingestion.workbook import load_workbook
from dnsprices.pipeline.base_writer import EchoWriter
from dnsprices.pipeline.store_writer import StoreWriter
from dnsprices.pipeline.types import SheetSummary

app = typer.Typer(
    name="dnsprices",
    help="dnsprices - Price and bonus history from city price lists",
    no_args_is_help=True,
)

console = Console()

MAX_ROW_ERRORS_SHOWN = 5


@app.callback()
def main() -> None:
    """Configure logging before any command runs."""
    try:
        config = get_config()
    except ValueError as e:
        console.print(f"[red]✗[/red] Invalid configuration: {e}")
        raise typer.Exit(code=1)
    configure_logging(config.log_level, config.log_format)


def _database_url(db: str | None) -> str:
    """Store URL from --db, falling back to DATABASE_URL."""
    location = db or get_config().db.url
    if not location:
        console.print("[red]✗[/red] No store given. Use --db or set DATABASE_URL.")
        raise typer.Exit(code=1)
    return resolve_database_url(location)


@app.command()
def init(
    db: str | None = typer.Option(None, "--db", "-d", help="Store path or SQLAlchemy URL"),
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    url = _database_url(db)
    console.print(f"[bold]Initializing database:[/bold] {url}")

    async def _init():
        engine = create_engine(url, echo=get_config().db.echo)
        try:
            if drop:
                console.print("[yellow]Dropping existing tables...[/yellow]")
            await init_db(engine, drop=drop)
        finally:
            await engine.dispose()

    asyncio.run(_init())
    console.print("[bold green]✓[/bold green] Database initialized")


def _print_sheet(summary: SheetSummary) -> None:
    console.print(f'Processing "{summary.sheet_name}"...', highlight=False, markup=False)
    if summary.skipped:
        console.print(f"  [red]✗[/red] {summary.error}")
        return

    console.print(
        f"  Extracted {summary.extracted}, "
        f"price changed {summary.price_changed}, "
        f"bonus changed {summary.bonus_changed}",
        highlight=False,
    )
    if summary.row_errors:
        console.print(f"  [yellow]⚠[/yellow] {len(summary.row_errors)} rows not saved")
        for err in summary.row_errors[:MAX_ROW_ERRORS_SHOWN]:
            console.print(f"    {err}", style="dim", markup=False)
        hidden = len(summary.row_errors) - MAX_ROW_ERRORS_SHOWN
        if hidden > 0:
            console.print(f"    ... and {hidden} more", style="dim")


@app.command()
def ingest(
    file: Path = typer.Argument(..., help="Price list workbook (XLS/XLSX), e.g. prices-Moscow.xls"),
    db: str | None = typer.Option(None, "--db", "-d", help="Store path or SQLAlchemy URL"),
    city_id: int | None = typer.Option(None, "--city-id", help="Identifier for a newly registered city"),
    echo: bool = typer.Option(False, "--echo", help="Print rows instead of storing them"),
):
    """Import a city price list, recording only changed prices and bonuses."""
    config = get_config()

    try:
        city = city_from_filename(file)
    except CityNameError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)

    try:
        sheets = load_workbook(file)
    except WorkbookError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)

    if echo:
        writer = EchoWriter(console)
    else:
        writer = StoreWriter(
            _database_url(db),
            city,
            city_id=city_id if city_id is not None else config.city_id,
            echo=config.db.echo,
        )

    console.print(f"[bold]Ingesting price list:[/bold] {file.name} (city={city})")

    try:
        summary = asyncio.run(ingest_workbook(sheets, writer, city, on_sheet=_print_sheet))
    except Exception as e:
        console.print(f"[red]✗[/red] Failed to save observations: {e}")
        raise typer.Exit(code=1)

    console.print(
        f"\n[bold green]✓[/bold green] Total: {summary.extracted} rows extracted, "
        f"{summary.price_changed} price changes, {summary.bonus_changed} bonus changes"
    )
    if summary.skipped_sheets:
        console.print(f"[yellow]⚠[/yellow] {summary.skipped_sheets} sheets without header")
    if summary.failed:
        console.print(f"[yellow]⚠[/yellow] {summary.failed} rows not saved (see above)")


@app.command()
def history(
    product_id: int = typer.Argument(..., help="Product code"),
    city: str = typer.Option(..., "--city", help="City name (case-sensitive)"),
    db: str | None = typer.Option(None, "--db", "-d", help="Store path or SQLAlchemy URL"),
):
    """Show price and bonus changes of a product in a city, newest first."""
    url = _database_url(db)

    async def _history():
        engine = create_engine(url, echo=get_config().db.echo)
        try:
            async with get_session(engine) as session:
                city_id = await get_city_id(session, city)
                if city_id is None:
                    return None
                return await get_history(session, product_id, city_id)
        finally:
            await engine.dispose()

    try:
        entries = asyncio.run(_history())
    except SQLAlchemyError as e:
        console.print(f"[red]✗[/red] Failed to read observations: {e}")
        raise typer.Exit(code=1)

    if entries is None:
        console.print(f"[yellow]Unknown city:[/yellow] {city}")
        raise typer.Exit(code=1)
    if not entries:
        console.print(f"[yellow]No observations for {product_id} in {city}[/yellow]")
        return

    table = Table(title=f"{product_id} in {city}")
    table.add_column("Observed at")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for entry in entries:
        table.add_row(entry.observed_at.isoformat(sep=" ", timespec="seconds"), entry.kind.value, str(entry.value))

    console.print(table)


if __name__ == "__main__":
    app()
