"""
Error taxonomy for the sync-and-convert pipeline.

Every failure surfaced by this package is one of four named kinds. Each
carries the host and date code it concerns (when known) and the underlying
exception, so callers can report exactly what failed without parsing strings.
"""

from typing import Optional


class SyncError(Exception):
    """Base class for all pipeline errors."""

    def __init__(
        self,
        message: str,
        *,
        host: Optional[str] = None,
        datecode: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.message = message
        self.host = host
        self.datecode = datecode
        self.cause = cause
        super().__init__(str(self))

    def __str__(self) -> str:
        context = []
        if self.host:
            context.append(f"host={self.host}")
        if self.datecode:
            context.append(f"datecode={self.datecode}")
        text = self.message
        if context:
            text = f"{text} ({', '.join(context)})"
        if self.cause is not None:
            text = f"{text}: {self.cause}"
        return text

    def with_context(self, host: Optional[str] = None, datecode: Optional[str] = None) -> "SyncError":
        """Fill in host and date code where they are not known yet."""
        if self.host is None:
            self.host = host
        if self.datecode is None:
            self.datecode = datecode
        return self


class TransportError(SyncError):
    """Connection failure or non-success HTTP status."""


class ProtocolError(SyncError):
    """Missing/unparseable size header or undecodable capture data."""


class FilesystemError(SyncError):
    """Local read, write or metadata failure."""


class ParseError(SyncError):
    """Malformed date code."""
