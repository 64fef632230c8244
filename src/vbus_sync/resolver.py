"""
Map cached captures onto output buckets and decide which buckets are stale.

Captures cover one UTC day each. Bounded Day outputs cover one local
calendar day, so a local day is usually fed by two captures: the UTC day its
morning falls into and the adjacent UTC day spilling into its evening.
Rolling Window outputs map 1:1 to captures.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .cache import CAPTURE_EXTENSION, capture_path
from .converter import Converter, RollingWindowConverter
from .datecode import DATECODE_LENGTH, format_datecode, is_datecode, parse_datecode
from .errors import FilesystemError
from .models import ConversionJob, Strategy, SyncConfig

logger = logging.getLogger(__name__)

OUTPUT_EXTENSION = ".csv"


@dataclass
class HostInventory:
    """Modification times (epoch seconds) of a host's captures and outputs."""
    captures: Dict[str, float] = field(default_factory=dict)
    outputs: Dict[str, float] = field(default_factory=dict)


def output_path(host_dir: Path, datecode: str) -> Path:
    return Path(host_dir) / f"{datecode}{OUTPUT_EXTENSION}"


def scan_host_dir(host_dir: Path) -> HostInventory:
    """
    List the captures and outputs in a host directory.

    Only regular files named ``YYYYMMDD.vbus`` or ``YYYYMMDD.csv`` count.
    """
    inventory = HostInventory()
    try:
        for entry in Path(host_dir).iterdir():
            if not entry.is_file():
                continue
            name = entry.name
            datecode = name[:DATECODE_LENGTH]
            if not is_datecode(datecode):
                continue
            if name == datecode + CAPTURE_EXTENSION:
                inventory.captures[datecode] = entry.stat().st_mtime
            elif name == datecode + OUTPUT_EXTENSION:
                inventory.outputs[datecode] = entry.stat().st_mtime
    except OSError as e:
        raise FilesystemError(f"Unable to scan {host_dir}", cause=e) from e
    return inventory


def local_datecodes_for_capture(datecode: str, tz: tzinfo) -> Tuple[str, str]:
    """
    Local calendar dates of a UTC day's first and last second.

    Example: with a UTC+2 zone, 20210601 maps to ("20210601", "20210602").
    """
    start_of_day_utc = parse_datecode(datecode, timezone.utc)
    end_of_day_utc = start_of_day_utc.replace(hour=23, minute=59, second=59)
    return (
        format_datecode(start_of_day_utc.astimezone(tz)),
        format_datecode(end_of_day_utc.astimezone(tz)),
    )


def local_day_bounds(datecode: str, tz: tzinfo) -> Tuple[datetime, datetime]:
    """Inclusive UTC bounds of a local calendar day (00:00:00 to 23:59:59)."""
    start_of_day_local = parse_datecode(datecode, tz)
    end_of_day_local = start_of_day_local.replace(hour=23, minute=59, second=59)
    return (
        start_of_day_local.astimezone(timezone.utc),
        end_of_day_local.astimezone(timezone.utc),
    )


def output_timestamp_label(path: Path) -> str:
    """First header cell of an existing output, naming the strategy that wrote it."""
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            header = f.readline()
    except OSError as e:
        raise FilesystemError(f"Unable to read {path}", cause=e) from e
    return header.rstrip("\n").split("\t", 1)[0]


def _is_stale(
    inventory: HostInventory,
    host_dir: Path,
    output_datecode: str,
    capture_datecodes: List[str],
    timestamp_label: str,
) -> bool:
    output_modified = inventory.outputs.get(output_datecode)
    if output_modified is None:
        return True
    if any(inventory.captures[dc] > output_modified for dc in capture_datecodes):
        return True
    path = output_path(host_dir, output_datecode)
    if output_timestamp_label(path) != timestamp_label:
        logger.info("%s was written by the other strategy", path)
        return True
    return False


def plan_bounded_day(
    host_dir: Path, tz: tzinfo, inventory: Optional[HostInventory] = None
) -> List[ConversionJob]:
    """
    Group captures by the local days they touch.

    Returns one job per local day that has at least one contributing
    capture, sorted by date code. Contributing captures are in ascending
    date code order.
    """
    if inventory is None:
        inventory = scan_host_dir(host_dir)

    local_to_utc_datecodes: Dict[str, List[str]] = {}
    for utc_datecode in sorted(inventory.captures):
        for local_datecode in dict.fromkeys(local_datecodes_for_capture(utc_datecode, tz)):
            local_to_utc_datecodes.setdefault(local_datecode, []).append(utc_datecode)

    jobs = []
    for local_datecode in sorted(local_to_utc_datecodes):
        utc_datecodes = sorted(local_to_utc_datecodes[local_datecode])
        min_timestamp, max_timestamp = local_day_bounds(local_datecode, tz)
        job = ConversionJob(
            datecode=local_datecode,
            output_path=output_path(host_dir, local_datecode),
            capture_paths=[capture_path(host_dir, dc) for dc in utc_datecodes],
            min_timestamp=min_timestamp,
            max_timestamp=max_timestamp,
            stale=_is_stale(
                inventory, host_dir, local_datecode, utc_datecodes, Converter.timestamp_label
            ),
        )
        if not job.stale:
            logger.debug("%s is up to date", job.output_path)
        jobs.append(job)
    return jobs


def plan_rolling_window(
    host_dir: Path, inventory: Optional[HostInventory] = None
) -> List[ConversionJob]:
    """One job per capture, writing to an output with the same date code."""
    if inventory is None:
        inventory = scan_host_dir(host_dir)

    jobs = []
    for datecode in sorted(inventory.captures):
        job = ConversionJob(
            datecode=datecode,
            output_path=output_path(host_dir, datecode),
            capture_paths=[capture_path(host_dir, datecode)],
            stale=_is_stale(
                inventory, host_dir, datecode, [datecode], RollingWindowConverter.timestamp_label
            ),
        )
        if not job.stale:
            logger.debug("%s is up to date", job.output_path)
        jobs.append(job)
    return jobs


def plan_jobs(host_dir: Path, config: SyncConfig) -> List[ConversionJob]:
    """Plan the conversion jobs of one host for the configured strategy."""
    if config.strategy == Strategy.ROLLING_WINDOW:
        return plan_rolling_window(host_dir)
    return plan_bounded_day(host_dir, config.tz)
