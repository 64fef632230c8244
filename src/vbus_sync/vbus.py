"""
Reader for VBus recording files as written by RESOL data loggers.

A recording is a sequence of records. Every record starts with a 14 byte
header:

    offset 0   sync byte 0xA5
    offset 1   record type
    offset 2   total record length (uint16, little-endian)
    offset 4   copy of the total record length
    offset 6   timestamp, milliseconds since the Unix epoch (uint64, UTC)

Record types understood here:

    0x88  starts a new data set at the record's timestamp
    0x77  switches the VBus channel (uint8 at offset 14)
    0x44  one VBus protocol 1.0 packet:
          offset 16 destination, 18 source, 20 protocol, 22 command,
          24 frame count (all uint16), frame data from offset 28,
          four bytes per frame

Everything else is skipped. Garbage between records is skipped byte by byte
until the next plausible header, and a truncated trailing record ends the
stream.
"""

import struct
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

from .errors import ProtocolError

SYNC_BYTE = 0xA5
RECORD_HEADER_FORMAT = "<BBHHQ"
RECORD_HEADER_SIZE = struct.calcsize(RECORD_HEADER_FORMAT)  # 14 bytes

RECORD_TYPE_PACKET = 0x44
RECORD_TYPE_CHANNEL = 0x77
RECORD_TYPE_DATA_SET = 0x88

PACKET_HEADER_FORMAT = "<HHHHH"
PACKET_HEADER_OFFSET = 16
PACKET_DATA_OFFSET = 28
PROTOCOL_VERSION_1_0 = 0x10
BYTES_PER_FRAME = 4

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class PacketId(NamedTuple):
    """Identity of a packet within a data set; sorts in a stable order."""
    channel: int
    destination: int
    source: int
    command: int


@dataclass
class Packet:
    """
    One decoded VBus packet.

    ``frame_data`` is None once the packet's value has been cleared, which
    keeps the packet's place in a topology without carrying a value.
    """
    channel: int
    destination: int
    source: int
    command: int
    timestamp: datetime
    frame_data: Optional[bytes]

    @property
    def packet_id(self) -> PacketId:
        return PacketId(self.channel, self.destination, self.source, self.command)

    @property
    def has_data(self) -> bool:
        return self.frame_data is not None


@dataclass
class DataSet:
    """A timestamped collection of packets, at most one per packet id."""
    timestamp: Optional[datetime] = None
    packets: Dict[PacketId, Packet] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.packets)

    def add_packet(self, packet: Packet) -> None:
        self.packets[packet.packet_id] = replace(packet)

    def add_data_set(self, other: "DataSet") -> None:
        """Merge ``other`` into this set; newer packets replace older ones."""
        for packet in other.packets.values():
            self.add_packet(packet)

    def copy(self) -> "DataSet":
        result = DataSet(timestamp=self.timestamp)
        result.add_data_set(self)
        return result

    def clear_all_packets(self) -> None:
        for packet in self.packets.values():
            packet.frame_data = None

    def clear_packets_older_than(self, threshold: datetime) -> None:
        """Clear every packet received at or before ``threshold``."""
        for packet in self.packets.values():
            if packet.timestamp <= threshold:
                packet.frame_data = None

    def sorted_packets(self) -> List[Packet]:
        return [self.packets[key] for key in sorted(self.packets)]


def _to_datetime(milliseconds: int) -> datetime:
    try:
        return EPOCH + timedelta(milliseconds=milliseconds)
    except OverflowError as e:
        raise ProtocolError(f"Record timestamp out of range: {milliseconds}", cause=e) from e


class RecordingReader:
    """
    Decode data sets from the bytes of one or more concatenated recordings.

    Iteration always starts from the beginning of the buffer, so the same
    reader can be consumed several times.

    Args:
        data: Raw recording bytes
        min_timestamp: Inclusive lower bound for yielded data sets
        max_timestamp: Inclusive upper bound for yielded data sets
    """

    def __init__(
        self,
        data: bytes,
        min_timestamp: Optional[datetime] = None,
        max_timestamp: Optional[datetime] = None,
    ):
        self.data = bytes(data)
        self.min_timestamp = min_timestamp
        self.max_timestamp = max_timestamp

    def iter_data_sets(self) -> Iterator[DataSet]:
        """Yield the non-empty data sets inside the timestamp bounds, in order."""
        for data_set in self._data_sets():
            if self._in_bounds(data_set.timestamp):
                yield data_set

    def read_first_data_set(self) -> Optional[DataSet]:
        """Return the first data set inside the timestamp bounds, or None."""
        return next(self.iter_data_sets(), None)

    def read_topology_data_set(self) -> DataSet:
        """
        Union of all packets seen anywhere in the stream, ignoring the bounds.

        Topology-defining packets may precede the lower bound and still
        belong to the schema of the bounded interval.
        """
        topology = DataSet()
        for data_set in self._data_sets():
            topology.add_data_set(data_set)
        return topology

    # ---- internals ----

    def _in_bounds(self, timestamp: Optional[datetime]) -> bool:
        if timestamp is None:
            return False
        if self.min_timestamp is not None and timestamp < self.min_timestamp:
            return False
        if self.max_timestamp is not None and timestamp > self.max_timestamp:
            return False
        return True

    def _records(self) -> Iterator[Tuple[int, int, bytes]]:
        data = self.data
        size = len(data)
        offset = 0
        while offset + RECORD_HEADER_SIZE <= size:
            if data[offset] != SYNC_BYTE:
                offset += 1
                continue
            _, record_type, length, length_check, milliseconds = struct.unpack_from(
                RECORD_HEADER_FORMAT, data, offset
            )
            if length < RECORD_HEADER_SIZE or length != length_check:
                offset += 1
                continue
            if offset + length > size:
                break
            yield record_type, milliseconds, data[offset:offset + length]
            offset += length

    def _data_sets(self) -> Iterator[DataSet]:
        current: Optional[DataSet] = None
        channel = 0
        for record_type, milliseconds, record in self._records():
            if record_type == RECORD_TYPE_DATA_SET:
                if current is not None and len(current):
                    yield current
                current = DataSet(timestamp=_to_datetime(milliseconds))
            elif record_type == RECORD_TYPE_CHANNEL:
                if len(record) > RECORD_HEADER_SIZE:
                    channel = record[RECORD_HEADER_SIZE]
            elif record_type == RECORD_TYPE_PACKET:
                packet = _decode_packet(record, channel, _to_datetime(milliseconds))
                if packet is None:
                    continue
                if current is None:
                    current = DataSet(timestamp=packet.timestamp)
                current.add_packet(packet)
        if current is not None and len(current):
            yield current


def _decode_packet(record: bytes, channel: int, timestamp: datetime) -> Optional[Packet]:
    if len(record) < PACKET_DATA_OFFSET:
        return None
    destination, source, protocol, command, frame_count = struct.unpack_from(
        PACKET_HEADER_FORMAT, record, PACKET_HEADER_OFFSET
    )
    if protocol != PROTOCOL_VERSION_1_0:
        return None
    end = PACKET_DATA_OFFSET + frame_count * BYTES_PER_FRAME
    if end > len(record):
        return None
    return Packet(
        channel=channel,
        destination=destination,
        source=source,
        command=command,
        timestamp=timestamp,
        frame_data=record[PACKET_DATA_OFFSET:end],
    )
