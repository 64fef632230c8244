"""
Command-line interface for vbus-sync.

Usage:
    python -m vbus_sync sync logger.local
    python -m vbus_sync --strategy rolling-window sync logger1 logger2
    python -m vbus_sync convert logger.local
    python -m vbus_sync list logger.local
    python -m vbus_sync info
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError

from .errors import SyncError
from .models import LogLevel, Strategy, SyncConfig
from .pipeline import convert_host, sync_and_convert
from .remote import LogClient
from .specification import Specification

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="vbus-sync",
    help="Mirror VBus log files from RESOL data loggers and convert them to CSV",
    add_completion=False,
)


@dataclass
class AppContext:
    """Startup state shared by all commands."""
    config: SyncConfig
    specification: Specification


def _fail(message: str) -> None:
    typer.echo(typer.style(f"ERROR: {message}", fg=typer.colors.RED), err=True)
    raise typer.Exit(1)


@app.callback()
def configure(
    ctx: typer.Context,
    root: Path = typer.Option(
        Path("."),
        "--root", "-r",
        help="Directory holding one subdirectory per host",
    ),
    strategy: Strategy = typer.Option(
        Strategy.BOUNDED_DAY,
        "--strategy", "-s",
        help="Cut outputs by local calendar day or convert each capture with a rolling window",
    ),
    timezone: str = typer.Option(
        "Europe/Berlin",
        "--timezone", "-z",
        help="Time zone of the local calendar days",
    ),
    retention_minutes: float = typer.Option(
        15.0,
        "--retention-minutes",
        help="Rolling window retention of packet values",
    ),
    spec: Optional[Path] = typer.Option(
        None,
        "--spec",
        help="Field specification JSON (default: bundled specification)",
        exists=True,
        dir_okay=False,
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP timeout in seconds (default: wait indefinitely)",
    ),
    attempts: int = typer.Option(
        1,
        "--attempts",
        help="Attempts per HTTP request",
    ),
    log_level: LogLevel = typer.Option(
        LogLevel.INFO,
        "--log-level", "-l",
        help="Logging level",
        case_sensitive=False,
    ),
):
    """
    Resolve configuration and logging once, before any command runs.
    """
    logging.basicConfig(level=log_level.value, format=LOG_FORMAT)

    try:
        config = SyncConfig(
            root=root,
            strategy=strategy,
            timezone=timezone,
            retention_minutes=retention_minutes,
            timeout_seconds=timeout,
            max_attempts=attempts,
        )
    except ValidationError as e:
        _fail(f"Invalid configuration: {e}")

    try:
        specification = Specification.from_file(spec) if spec else Specification.default()
    except SyncError as e:
        _fail(str(e))

    ctx.obj = AppContext(config=config, specification=specification)


@app.command()
def sync(
    ctx: typer.Context,
    hosts: List[str] = typer.Argument(..., help="Logger host names (HTTP, port 80)"),
):
    """
    Download new or changed log files and regenerate stale CSV files.

    Hosts are processed one after another; the first failure aborts.
    """
    app_ctx: AppContext = ctx.obj
    for host in hosts:
        try:
            report = sync_and_convert(host, app_ctx.config, app_ctx.specification)
        except SyncError as e:
            logger.error("Processing %s failed", host)
            _fail(str(e))
        typer.echo(
            f"{host}: {len(report.synced)} log files, "
            f"{len(report.downloaded)} downloaded, {len(report.written)} CSV files written"
        )


@app.command()
def convert(
    ctx: typer.Context,
    hosts: List[str] = typer.Argument(..., help="Host directories to convert"),
):
    """
    Regenerate stale CSV files from already downloaded log files.
    """
    app_ctx: AppContext = ctx.obj
    for host in hosts:
        try:
            written = convert_host(host, app_ctx.config, app_ctx.specification)
        except SyncError as e:
            logger.error("Converting %s failed", host)
            _fail(str(e))
        typer.echo(f"{host}: {len(written)} CSV files written")
        for path in written:
            typer.echo(f"  {path}")


@app.command("list")
def list_captures(
    ctx: typer.Context,
    host: str = typer.Argument(..., help="Logger host name"),
):
    """
    Show the date codes of the log files a logger offers.
    """
    app_ctx: AppContext = ctx.obj
    try:
        datecodes = LogClient.from_config(host, app_ctx.config).list_datecodes()
    except SyncError as e:
        _fail(str(e))
    for datecode in datecodes:
        typer.echo(datecode)


@app.command()
def info(ctx: typer.Context):
    """
    Display the packets and fields of the loaded field specification.
    """
    app_ctx: AppContext = ctx.obj
    for packet in app_ctx.specification.packets:
        typer.echo(
            f"{packet.name or 'Unknown device'} "
            f"(0x{packet.destination:04X} <- 0x{packet.source:04X}, command 0x{packet.command:04X}):"
        )
        for field in packet.fields:
            unit_text = field.unit_text.strip()
            unit = f" [{unit_text}]" if unit_text else ""
            typer.echo(f"  {field.name}{unit}: offset {field.offset}, {field.size} bytes, factor {field.factor:g}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
