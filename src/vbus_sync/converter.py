"""
Convert decoded recordings into tab-separated time series.

Two strategies share the decoder and the field projector:

- ``BoundedDayConverter`` writes one local calendar day, restricted to
  inclusive UTC bounds, and never writes a file without data rows.
- ``RollingWindowConverter`` converts a whole capture, carrying each
  packet's last value forward for a limited retention time, and always
  writes its file, even if it only contains the header.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone, tzinfo
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from .cache import atomic_write_bytes
from .models import Strategy, SyncConfig
from .specification import ProjectedField, Specification
from .vbus import RecordingReader

logger = logging.getLogger(__name__)

LOCAL_TIMESTAMP_FORMAT = "%d.%m.%Y %H:%M:%S"
DEFAULT_RETENTION = timedelta(minutes=15)


def format_utc_timestamp(moment: datetime) -> str:
    """RFC 3339 UTC with millisecond precision, e.g. ``2021-06-01T00:00:00.000Z``."""
    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


class Table:
    """
    Rows of projected fields, aligned by column.

    Values are placed by field identity rather than position, so a row whose
    projected field set differs from the header still lands in the right
    columns. Fields first seen after the header add a column.
    """

    def __init__(self, timestamp_label: str):
        self.timestamp_label = timestamp_label
        self.columns: Dict[Tuple, str] = {}
        self.rows: List[Tuple[str, Dict[Tuple, str]]] = []

    def add_columns(self, fields: Iterable[ProjectedField]) -> None:
        for f in fields:
            self.columns.setdefault(f.column_key, f.label)

    def add_row(self, timestamp_text: str, fields: Iterable[ProjectedField]) -> None:
        fields = list(fields)
        self.add_columns(fields)
        self.rows.append((timestamp_text, {f.column_key: f.value for f in fields}))

    def to_dataframe(self) -> pd.DataFrame:
        keys = list(self.columns)
        records = [[ts] + [values.get(key, "") for key in keys] for ts, values in self.rows]
        labels = [self.timestamp_label] + [self.columns[key] for key in keys]
        return pd.DataFrame(records, columns=labels)

    def to_text(self) -> str:
        return self.to_dataframe().to_csv(sep="\t", index=False, lineterminator="\n")


class Converter(ABC):
    """Renders recording bytes into one output file."""

    timestamp_label = "Datum"

    def __init__(self, specification: Specification):
        self.specification = specification

    @abstractmethod
    def build_table(
        self,
        data: bytes,
        min_timestamp: Optional[datetime] = None,
        max_timestamp: Optional[datetime] = None,
    ) -> Table:
        """Decode ``data`` and collect the output rows."""

    def should_write(self, table: Table) -> bool:
        return True

    def render(
        self,
        data: bytes,
        min_timestamp: Optional[datetime] = None,
        max_timestamp: Optional[datetime] = None,
    ) -> Optional[str]:
        """Return the output text, or None if nothing should be written."""
        table = self.build_table(data, min_timestamp, max_timestamp)
        if not self.should_write(table):
            return None
        return table.to_text()

    def convert(
        self,
        data: bytes,
        output_path: Path,
        min_timestamp: Optional[datetime] = None,
        max_timestamp: Optional[datetime] = None,
    ) -> bool:
        """
        Render ``data`` and write it to ``output_path`` in one step.

        Returns:
            True if the file was written
        """
        text = self.render(data, min_timestamp, max_timestamp)
        if text is None:
            logger.debug("Skipping %s because it would be empty", output_path)
            return False
        atomic_write_bytes(Path(output_path), text.encode("utf-8"))
        logger.info("Wrote %s", output_path)
        return True


class BoundedDayConverter(Converter):
    """
    Two passes: the topology is read from the whole stream, then the data
    sets inside the bounds are merged forward into a copy of it.
    """

    def __init__(self, specification: Specification, tz: tzinfo):
        super().__init__(specification)
        self.tz = tz

    def build_table(self, data, min_timestamp=None, max_timestamp=None) -> Table:
        reader = RecordingReader(data, min_timestamp, max_timestamp)
        topology = reader.read_topology_data_set()

        table = Table(self.timestamp_label)
        table.add_columns(self.specification.fields_in_data_set(topology, include_empty=True))

        state = topology.copy()
        state.clear_all_packets()
        for data_set in reader.iter_data_sets():
            state.timestamp = data_set.timestamp
            state.add_data_set(data_set)
            local_now = data_set.timestamp.astimezone(self.tz)
            table.add_row(
                local_now.strftime(LOCAL_TIMESTAMP_FORMAT),
                self.specification.fields_in_data_set(state),
            )
        return table

    def should_write(self, table: Table) -> bool:
        return bool(table.rows)


class RollingWindowConverter(Converter):
    """
    Single pass. Packet values are retained for ``retention`` after they
    were last received and evicted afterwards.
    """

    timestamp_label = "Timestamp"

    def __init__(self, specification: Specification, retention: timedelta = DEFAULT_RETENTION):
        super().__init__(specification)
        self.retention = retention

    def build_table(self, data, min_timestamp=None, max_timestamp=None) -> Table:
        reader = RecordingReader(data, min_timestamp, max_timestamp)
        table = Table(self.timestamp_label)

        first = reader.read_first_data_set()
        if first is None:
            return table
        state = first.copy()
        state.clear_all_packets()
        table.add_columns(self.specification.fields_in_data_set(state, include_empty=True))

        for data_set in reader.iter_data_sets():
            state.clear_packets_older_than(data_set.timestamp - self.retention)
            state.timestamp = data_set.timestamp
            state.add_data_set(data_set)
            table.add_row(
                format_utc_timestamp(data_set.timestamp),
                self.specification.fields_in_data_set(state),
            )
        return table


def make_converter(config: SyncConfig, specification: Specification) -> Converter:
    """Build the converter for the configured strategy."""
    if config.strategy == Strategy.ROLLING_WINDOW:
        return RollingWindowConverter(specification, retention=config.retention)
    return BoundedDayConverter(specification, tz=config.tz)
