"""
Local cache of raw captures, one ``<YYYYMMDD>.vbus`` file per UTC day.

A capture is considered current when its size equals the remote
``content-length``. No content hashing is done.
"""

import logging
import os
import tempfile
from pathlib import Path

from .errors import FilesystemError
from .models import SyncResult
from .remote import LogClient

logger = logging.getLogger(__name__)

CAPTURE_EXTENSION = ".vbus"

# process umask, read once; os.umask has no read-only form
_UMASK = os.umask(0)
os.umask(_UMASK)
FILE_MODE = 0o666 & ~_UMASK


def capture_path(host_dir: Path, datecode: str) -> Path:
    return Path(host_dir) / f"{datecode}{CAPTURE_EXTENSION}"


def ensure_cache_dir(host_dir: Path) -> Path:
    """Create the host's cache directory if it does not exist yet."""
    host_dir = Path(host_dir)
    try:
        host_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"Unable to create directory {host_dir}", cause=e) from e
    return host_dir


def local_size(path: Path) -> int:
    """Size of ``path`` in bytes, 0 if it does not exist."""
    try:
        return Path(path).stat().st_size
    except FileNotFoundError:
        return 0
    except OSError as e:
        raise FilesystemError(f"Unable to stat {path}", cause=e) from e


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write ``data`` to a temporary file next to ``path``, then rename it into place."""
    path = Path(path)
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="wb", delete=False, dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
        ) as tmp:
            tmp_path = Path(tmp.name)
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        # NamedTemporaryFile creates 0600, give the target the usual mode
        os.chmod(tmp_path, FILE_MODE)
        os.replace(tmp_path, path)
    except OSError as e:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
        raise FilesystemError(f"Unable to write {path}", cause=e) from e


def sync_capture(client: LogClient, host_dir: Path, datecode: str) -> SyncResult:
    """
    Bring the cached capture for ``datecode`` up to date.

    Issues a HEAD request for the remote size and only downloads the capture
    when the local copy's size differs.

    Args:
        client: Client for the capture's host
        host_dir: Cache directory of that host (must exist)
        datecode: UTC day of the capture

    Returns:
        SyncResult describing what was done
    """
    path = capture_path(host_dir, datecode)
    remote_size = client.head_size(datecode)

    try:
        size = local_size(path)
    except FilesystemError as e:
        e.with_context(host=client.host, datecode=datecode)
        raise

    if size == remote_size:
        logger.debug("Skipping download for file dated %s", datecode)
        return SyncResult(datecode=datecode, remote_size=remote_size, local_path=path, downloaded=False)

    logger.info("Downloading log file dated %s (%d bytes)", datecode, remote_size)
    data = client.fetch(datecode)
    try:
        atomic_write_bytes(path, data)
    except FilesystemError as e:
        e.with_context(host=client.host, datecode=datecode)
        raise
    return SyncResult(datecode=datecode, remote_size=remote_size, local_path=path, downloaded=True)
