"""Command-line interface for the tab tracker."""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

from .clock import DAY_FMT
from .config import TrackerSettings, get_db_path, get_log_path

app = typer.Typer(help="Local-first browser tab time tracker.")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the service."),
    port: int = typer.Option(8765, "--port", min=1, max=65535, help="TCP port for the service."),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the tracking SQLite database."
    ),
    debounce_ms: float = typer.Option(
        100.0, "--debounce-ms", min=0.0, help="Quiet period before a tab transition is applied."
    ),
    flush_seconds: float = typer.Option(
        2.0, "--flush-interval", min=0.1, help="Delay before pending totals are written."
    ),
    safety_flush_seconds: float = typer.Option(
        30.0,
        "--safety-flush",
        min=0.0,
        help="Periodic flush interval in seconds (0 disables).",
    ),
    simple: bool = typer.Option(
        False,
        "--simple/--detailed",
        help="Count only active vs inactive time, ignoring window focus and idle state.",
    ),
    log_file: bool = typer.Option(
        True, "--log-file/--no-log-file", help="Also write logs to the data directory."
    ),
) -> None:
    """Run the ingest and reporting service until interrupted."""
    from .server_runner import run_server

    if log_file:
        handler = logging.FileHandler(get_log_path(), encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)

    settings = TrackerSettings.from_intervals(
        debounce_ms=debounce_ms,
        flush_seconds=flush_seconds,
        safety_flush_seconds=safety_flush_seconds,
        track_focus_and_idle=not simple,
    )
    run_server(host=host, port=port, db_path=db_path or get_db_path(), settings=settings)


@app.command()
def summary(
    start: Optional[str] = typer.Option(
        None, "--start", help="First date (YYYY-MM-DD). Defaults to today."
    ),
    end: Optional[str] = typer.Option(
        None, "--end", help="Last date (YYYY-MM-DD). Defaults to the start date."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the tracking SQLite database."
    ),
) -> None:
    """Print per-hostname totals for a date range."""
    from .reporting import SummaryPrinter

    start_day, end_day = _resolve_range(start, end)
    SummaryPrinter(db_path=db_path or get_db_path()).print_summary(start_day, end_day)


@app.command()
def export(
    start: Optional[str] = typer.Option(None, "--start", help="First date (YYYY-MM-DD)."),
    end: Optional[str] = typer.Option(None, "--end", help="Last date (YYYY-MM-DD)."),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", path_type=Path, help="CSV file to write (stdout if omitted)."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the tracking SQLite database."
    ),
) -> None:
    """Export one CSV row per page for a date range."""
    from .reporting import aggregate_by_hostname, load_range, write_csv

    start_day, end_day = _resolve_range(start, end)
    stats = aggregate_by_hostname(load_range(db_path or get_db_path(), start_day, end_day))
    if not stats:
        typer.echo("No data available to export.", err=True)
        raise typer.Exit(code=1)
    if output is None:
        write_csv(stats, sys.stdout)
        return
    with output.open("w", encoding="utf-8", newline="") as stream:
        rows = write_csv(stats, stream)
    typer.echo(f"Wrote {rows} rows to {output}")


@app.command()
def clear(
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the tracking SQLite database."
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Erase all persisted tracking data."""
    from .store import SqliteStore

    if not yes:
        typer.confirm("Erase all tracked time?", abort=True)
    store = SqliteStore(db_path or get_db_path())
    try:
        store.clear()
    finally:
        store.close()
    typer.echo("Cleared all tracking data.")


def _resolve_range(start: Optional[str], end: Optional[str]) -> tuple[str, str]:
    try:
        start_day = (
            datetime.strptime(start, DAY_FMT) if start else datetime.now()
        ).strftime(DAY_FMT)
        end_day = datetime.strptime(end, DAY_FMT).strftime(DAY_FMT) if end else start_day
    except ValueError as exc:
        raise typer.BadParameter("Dates must use the YYYY-MM-DD format.") from exc
    if end_day < start_day:
        raise typer.BadParameter("--end must be on or after --start.")
    return start_day, end_day
