"""
Per-host pipeline: list remote captures, sync the cache, regenerate stale
outputs.

Hosts share no state, so each call is independent of any other host.
"""

import logging
from pathlib import Path
from typing import List, Optional

from .cache import ensure_cache_dir, sync_capture
from .converter import Converter, make_converter
from .errors import FilesystemError, SyncError
from .models import ConversionJob, HostReport, SyncConfig
from .remote import LogClient
from .resolver import plan_jobs
from .specification import Specification

logger = logging.getLogger(__name__)


def read_captures(paths: List[Path]) -> bytes:
    """Concatenate capture files in the given order."""
    chunks = []
    for path in paths:
        try:
            chunks.append(Path(path).read_bytes())
        except OSError as e:
            raise FilesystemError(f"Unable to read {path}", cause=e) from e
    return b"".join(chunks)


def run_job(job: ConversionJob, converter: Converter, host: Optional[str] = None) -> bool:
    """Convert one output bucket. Returns True if the output was written."""
    logger.debug(
        "Converting %s into %s", [p.name for p in job.capture_paths], job.output_path
    )
    try:
        data = read_captures(job.capture_paths)
        return converter.convert(data, job.output_path, job.min_timestamp, job.max_timestamp)
    except SyncError as e:
        e.with_context(host=host, datecode=job.datecode)
        raise


def convert_host(
    host: str,
    config: SyncConfig,
    specification: Specification,
    converter: Optional[Converter] = None,
) -> List[Path]:
    """
    Regenerate every stale output of a host from its cached captures.

    Returns:
        Paths of the outputs that were written
    """
    if converter is None:
        converter = make_converter(config, specification)
    host_dir = config.host_dir(host)

    try:
        jobs = plan_jobs(host_dir, config)
    except SyncError as e:
        e.with_context(host=host)
        raise

    written = []
    for job in jobs:
        if job.stale and run_job(job, converter, host=host):
            written.append(job.output_path)
    return written


def sync_and_convert(
    host: str,
    config: SyncConfig,
    specification: Specification,
    client: Optional[LogClient] = None,
) -> HostReport:
    """
    Mirror a host's captures and regenerate its stale outputs.

    Any error aborts this host and propagates to the caller.
    """
    if client is None:
        client = LogClient.from_config(host, config)

    datecodes = client.list_datecodes()
    logger.info("%s lists %d log files", host, len(datecodes))

    try:
        host_dir = ensure_cache_dir(config.host_dir(host))
    except SyncError as e:
        e.with_context(host=host)
        raise

    report = HostReport(host=host)
    for datecode in datecodes:
        report.synced.append(sync_capture(client, host_dir, datecode))

    report.written.extend(convert_host(host, config, specification))
    return report
