"""
HTTP access to a data logger's log directory.

The logger serves an HTML index at ``/log/`` and one capture per UTC day at
``/log/<YYYYMMDD>_packets.vbus``.
"""

import logging
import time
from typing import List, Optional

import requests

from .datecode import DATECODE_LENGTH, is_datecode
from .errors import ProtocolError, TransportError
from .models import SyncConfig

logger = logging.getLogger(__name__)

LOG_PATH = "/log/"
CAPTURE_SUFFIX = "_packets.vbus"

ANCHOR = "<a href="
QUOTED_PREFIX = '"'
ROOTED_PREFIX = "'/log/"

RETRY_STATUS_CODES = (429, 500, 502, 503, 504)


def parse_log_index(body: str) -> List[str]:
    """
    Extract capture date codes from a log directory listing.

    Anchors are accepted as ``<a href="YYYYMMDD_packets.vbus`` or
    ``<a href='/log/YYYYMMDD_packets.vbus``. Anything else is ignored.

    Args:
        body: HTML text of the listing

    Returns:
        Date codes in order of first appearance, without duplicates
    """
    datecodes: List[str] = []
    index = body.find(ANCHOR)
    while index >= 0:
        href = index + len(ANCHOR)
        if body.startswith(ROOTED_PREFIX, href):
            start = href + len(ROOTED_PREFIX)
        elif body.startswith(QUOTED_PREFIX, href):
            start = href + len(QUOTED_PREFIX)
        else:
            start = None

        if start is not None:
            datecode = body[start:start + DATECODE_LENGTH]
            if (
                body.startswith(CAPTURE_SUFFIX, start + DATECODE_LENGTH)
                and is_datecode(datecode)
                and datecode not in datecodes
            ):
                datecodes.append(datecode)

        index = body.find(ANCHOR, href)
    return datecodes


class LogClient:
    """
    Single-shot HEAD/GET calls against one logger.

    With the default settings every request is attempted once and waits
    without a timeout. ``max_attempts`` > 1 retries connection errors and
    transient HTTP statuses with a linear backoff.
    """

    def __init__(
        self,
        host: str,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        max_attempts: int = 1,
        retry_backoff_seconds: float = 1.0,
    ):
        self.host = host
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_backoff_seconds = retry_backoff_seconds

    @classmethod
    def from_config(
        cls, host: str, config: SyncConfig, session: Optional[requests.Session] = None
    ) -> "LogClient":
        return cls(
            host,
            session=session,
            timeout=config.timeout_seconds,
            max_attempts=config.max_attempts,
            retry_backoff_seconds=config.retry_backoff_seconds,
        )

    @property
    def index_url(self) -> str:
        return f"http://{self.host}{LOG_PATH}"

    def capture_url(self, datecode: str) -> str:
        return f"http://{self.host}{LOG_PATH}{datecode}{CAPTURE_SUFFIX}"

    def _request(self, method: str, url: str, datecode: Optional[str] = None) -> requests.Response:
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = self.session.request(
                    method,
                    url,
                    timeout=self.timeout,
                    headers={"Accept-Encoding": "identity"},
                )
            except requests.RequestException as e:
                if attempt >= self.max_attempts:
                    raise TransportError(
                        f"{method} {url} failed", host=self.host, datecode=datecode, cause=e
                    ) from e
                logger.warning("%s %s failed (attempt %d): %s", method, url, attempt, e)
                time.sleep(self.retry_backoff_seconds * attempt)
                continue

            if response.status_code in RETRY_STATUS_CODES and attempt < self.max_attempts:
                logger.warning(
                    "%s %s returned HTTP %d (attempt %d)", method, url, response.status_code, attempt
                )
                response.close()
                time.sleep(self.retry_backoff_seconds * attempt)
                continue

            if not 200 <= response.status_code < 300:
                raise TransportError(
                    f"{method} {url} returned HTTP {response.status_code}",
                    host=self.host,
                    datecode=datecode,
                )
            return response

        raise TransportError(f"{method} {url} was never attempted", host=self.host, datecode=datecode)

    def list_datecodes(self) -> List[str]:
        """Download the log directory index and return the listed date codes."""
        logger.debug("Downloading log file index for %s", self.host)
        response = self._request("GET", self.index_url)
        return parse_log_index(response.text)

    def head_size(self, datecode: str) -> int:
        """Return the remote capture's size from its ``content-length`` header."""
        logger.debug("Fetching information about log file dated %s", datecode)
        response = self._request("HEAD", self.capture_url(datecode), datecode=datecode)
        header = response.headers.get("content-length")
        if header is None:
            raise ProtocolError(
                "Unable to determine file size", host=self.host, datecode=datecode
            )
        try:
            size = int(header.strip())
        except ValueError as e:
            raise ProtocolError(
                f"Unparseable content-length {header!r}", host=self.host, datecode=datecode, cause=e
            ) from e
        if size < 0:
            raise ProtocolError(
                f"Negative content-length {header!r}", host=self.host, datecode=datecode
            )
        return size

    def fetch(self, datecode: str) -> bytes:
        """Download the full capture for ``datecode``."""
        response = self._request("GET", self.capture_url(datecode), datecode=datecode)
        return response.content
