"""
vbus-sync - mirror VBus log files from RESOL data loggers and convert them
to tab-separated time series.

Downloads per-day captures from a logger's ``/log/`` directory, keeps a
local cache up to date by size, and regenerates CSV files per local
calendar day or per capture with a rolling retention window.
"""

from .errors import (
    SyncError,
    TransportError,
    ProtocolError,
    FilesystemError,
    ParseError,
)
from .models import (
    Strategy,
    SyncConfig,
    FieldSpec,
    PacketSpec,
    SpecificationFile,
    SyncResult,
    ConversionJob,
    HostReport,
)
from .remote import LogClient, parse_log_index
from .cache import sync_capture, ensure_cache_dir
from .resolver import plan_bounded_day, plan_rolling_window, plan_jobs
from .converter import (
    Converter,
    BoundedDayConverter,
    RollingWindowConverter,
    make_converter,
)
from .specification import Specification
from .vbus import DataSet, Packet, RecordingReader
from .pipeline import sync_and_convert, convert_host

__version__ = "0.1.0"
__all__ = [
    "SyncError",
    "TransportError",
    "ProtocolError",
    "FilesystemError",
    "ParseError",
    "Strategy",
    "SyncConfig",
    "FieldSpec",
    "PacketSpec",
    "SpecificationFile",
    "SyncResult",
    "ConversionJob",
    "HostReport",
    "LogClient",
    "parse_log_index",
    "sync_capture",
    "ensure_cache_dir",
    "plan_bounded_day",
    "plan_rolling_window",
    "plan_jobs",
    "Converter",
    "BoundedDayConverter",
    "RollingWindowConverter",
    "make_converter",
    "Specification",
    "DataSet",
    "Packet",
    "RecordingReader",
    "sync_and_convert",
    "convert_host",
]
