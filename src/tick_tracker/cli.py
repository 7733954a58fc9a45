"""Command-line interface for the tracker."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from .blacklist import BlacklistFilter
from .paths import get_db_path, get_log_path

app = typer.Typer(help="Foreground application usage tracker.")
blacklist_app = typer.Typer(help="Manage applications excluded from tracking.")
settings_app = typer.Typer(help="Show or change tracker settings.")
app.add_typer(blacklist_app, name="blacklist")
app.add_typer(settings_app, name="settings")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _db_option() -> Optional[Path]:
    return typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the usage SQLite database.",
    )


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )


@app.command()
def run(
    db_path: Optional[Path] = _db_option(),
    log_file: bool = typer.Option(
        True,
        "--log-file/--no-log-file",
        help="Also write logs to the tracker log file in the data directory.",
    ),
) -> None:
    """Run the tracker until interrupted."""
    from .identity import UnsupportedPlatformError
    from .service import TrackerService

    if log_file:
        handler = logging.FileHandler(get_log_path(), encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)

    service = TrackerService(db_path=db_path or get_db_path())
    try:
        service.run_forever()
    except UnsupportedPlatformError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc


@app.command()
def summary(
    db_path: Optional[Path] = _db_option(),
    limit: Optional[int] = typer.Option(
        None, "--limit", min=1, help="Only show the top N applications."
    ),
) -> None:
    """Print all-time usage per application."""
    from .reporting import SummaryPrinter

    SummaryPrinter(db_path=db_path or get_db_path()).print_summaries(limit=limit)


@app.command()
def compact(db_path: Optional[Path] = _db_option()) -> None:
    """Fold intervals older than the retention window into aggregates now."""
    from .config import load_settings
    from .db import database_connection
    from .models import utc_now
    from .retention import RetentionAggregator

    resolved = db_path or get_db_path()
    with database_connection(resolved) as conn:
        settings = load_settings(conn)
    aggregator = RetentionAggregator(resolved, settings.retention_days)
    folded = aggregator.compact(utc_now().date())
    typer.echo(f"Compacted {folded} intervals.")


@blacklist_app.command("add")
def blacklist_add(
    application_name: str = typer.Argument(..., help="Application name to exclude."),
    db_path: Optional[Path] = _db_option(),
) -> None:
    """Blacklist an application and delete its recorded history."""
    try:
        added = BlacklistFilter(db_path or get_db_path()).blacklist(application_name)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    if added:
        typer.echo(f"Blacklisted {application_name.strip()}.")
    else:
        typer.echo(f"{application_name.strip()} was already blacklisted.")


@blacklist_app.command("remove")
def blacklist_remove(
    application_name: str = typer.Argument(..., help="Application name to track again."),
    db_path: Optional[Path] = _db_option(),
) -> None:
    """Remove an application from the blacklist. History is not restored."""
    try:
        removed = BlacklistFilter(db_path or get_db_path()).unblock(application_name)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    if not removed:
        typer.echo(f"{application_name.strip()} is not blacklisted.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Removed {application_name.strip()} from the blacklist.")


@blacklist_app.command("list")
def blacklist_list(db_path: Optional[Path] = _db_option()) -> None:
    """List blacklisted applications."""
    names = BlacklistFilter(db_path or get_db_path()).names()
    if not names:
        typer.echo("No blacklisted applications.")
        return
    for name in names:
        typer.echo(name)


@settings_app.command("show")
def settings_show(db_path: Optional[Path] = _db_option()) -> None:
    """Print the stored settings (defaults where unset)."""
    from .config import load_settings
    from .db import database_connection

    with database_connection(db_path or get_db_path()) as conn:
        settings = load_settings(conn)
    typer.echo(f"retention_days: {settings.retention_days}")
    typer.echo(f"poll_seconds: {settings.poll_seconds}")
    typer.echo(f"ignore_os_apps: {str(settings.ignore_os_apps).lower()}")


@settings_app.command("set")
def settings_set(
    db_path: Optional[Path] = _db_option(),
    retention_days: Optional[int] = typer.Option(
        None, "--retention-days", min=1, help="Days to keep raw intervals."
    ),
    poll_seconds: Optional[int] = typer.Option(
        None, "--poll-seconds", min=1, max=10, help="Seconds between samples."
    ),
    ignore_os_apps: Optional[bool] = typer.Option(
        None,
        "--ignore-os-apps/--track-os-apps",
        help="Skip applications installed under the OS directory.",
    ),
) -> None:
    """Change settings. They take effect the next time the tracker starts."""
    from .config import TrackerSettings, load_settings, save_settings
    from .db import database_connection

    with database_connection(db_path or get_db_path()) as conn:
        current = load_settings(conn)
        try:
            updated = TrackerSettings.from_values(
                retention_days=(
                    retention_days if retention_days is not None else current.retention_days
                ),
                poll_seconds=poll_seconds if poll_seconds is not None else current.poll_seconds,
                ignore_os_apps=(
                    ignore_os_apps if ignore_os_apps is not None else current.ignore_os_apps
                ),
            )
        except ValueError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=1) from exc
        save_settings(conn, updated)
    typer.echo("Settings saved; restart the tracker to apply them.")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the API."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the API."
    ),
    db_path: Optional[Path] = _db_option(),
    run_tracker: bool = typer.Option(
        True,
        "--tracker/--no-tracker",
        help="Run the tracker in the background while serving.",
    ),
) -> None:
    """Start the local JSON API."""
    from .server_runner import run_server

    run_server(
        host=host,
        port=port,
        db_path=db_path or get_db_path(),
        run_tracker=run_tracker,
    )
