"""
Pydantic models for pipeline configuration, field specifications and
per-run bookkeeping.

Defines both the startup configuration (resolved once from the CLI) and the
field-specification file format used by the Field Projector.
"""

from datetime import datetime, timedelta, tzinfo
from enum import Enum
from pathlib import Path
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Strategy(str, Enum):
    """Windowing strategy used to cut captures into output files."""
    BOUNDED_DAY = "bounded-day"
    ROLLING_WINDOW = "rolling-window"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


# ==================== Startup Configuration ====================


class SyncConfig(BaseModel):
    """
    Configuration for one invocation, resolved once before any I/O.

    Defaults reproduce the baseline transport contract: no timeout and a
    single attempt per request.
    """
    model_config = ConfigDict(frozen=True)

    root: Path = Field(default=Path("."), description="Directory holding one subdirectory per host")
    strategy: Strategy = Field(default=Strategy.BOUNDED_DAY, description="Output windowing strategy")
    timezone: str = Field(default="Europe/Berlin", description="IANA zone for local-day buckets")
    retention_minutes: float = Field(
        default=15.0,
        gt=0,
        description="Rolling Window: how long a packet value stays in the cumulative state",
    )
    timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Per-request timeout; None waits indefinitely",
    )
    max_attempts: int = Field(default=1, ge=1, description="Attempts per HTTP request")
    retry_backoff_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Linear backoff factor between attempts",
    )

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown time zone {value!r}") from e
        return value

    @property
    def tz(self) -> tzinfo:
        return ZoneInfo(self.timezone)

    @property
    def retention(self) -> timedelta:
        return timedelta(minutes=self.retention_minutes)

    def host_dir(self, host: str) -> Path:
        return self.root / host


# ==================== Field Specification Models ====================


class FieldSpec(BaseModel):
    """One named value inside a packet's frame data."""
    id: str = Field(description="Field identifier, unique within its packet")
    name: str = Field(description="Human readable field name")
    unit_text: str = Field(default="", description="Unit label, may be empty")
    offset: int = Field(ge=0, description="Byte offset into the frame data")
    size: int = Field(default=2, description="Width in bytes (1, 2 or 4)")
    signed: bool = Field(default=False, description="Two's complement value")
    factor: float = Field(default=1.0, gt=0, description="Raw value precision, e.g. 0.1")

    @field_validator("size")
    @classmethod
    def _supported_size(cls, value: int) -> int:
        if value not in (1, 2, 4):
            raise ValueError(f"Unsupported field size {value}")
        return value


class PacketSpec(BaseModel):
    """Fields of one VBus packet, identified by its addresses and command."""
    destination: int = Field(description="Destination address")
    source: int = Field(description="Source address")
    command: int = Field(description="Command word")
    name: str = Field(default="", description="Device name")
    fields: List[FieldSpec] = Field(default_factory=list)


class SpecificationFile(BaseModel):
    """Contents of a field specification JSON file."""
    packets: List[PacketSpec] = Field(default_factory=list)


# ==================== Run Bookkeeping ====================


class SyncResult(BaseModel):
    """Outcome of synchronizing one capture."""
    datecode: str
    remote_size: int
    local_path: Path
    downloaded: bool


class ConversionJob(BaseModel):
    """
    One output bucket and the captures that feed it.

    ``min_timestamp``/``max_timestamp`` are inclusive UTC bounds; both are
    None when the strategy converts whole captures.
    """
    datecode: str
    output_path: Path
    capture_paths: List[Path]
    min_timestamp: Optional[datetime] = None
    max_timestamp: Optional[datetime] = None
    stale: bool = True


class HostReport(BaseModel):
    """Summary of one host's sync-and-convert run."""
    host: str
    synced: List[SyncResult] = Field(default_factory=list)
    written: List[Path] = Field(default_factory=list)

    @property
    def downloaded(self) -> List[str]:
        return [result.datecode for result in self.synced if result.downloaded]
