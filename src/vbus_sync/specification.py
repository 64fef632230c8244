"""
Field projection: map decoded packets to named, unit-labelled values.

Field layouts come from a JSON specification file (see ``SpecificationFile``).
A default specification is bundled with the package.
"""

import json
from decimal import Decimal
from importlib import resources
from pathlib import Path
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

from pydantic import ValidationError

from .errors import FilesystemError, ProtocolError
from .models import FieldSpec, PacketSpec, SpecificationFile
from .vbus import DataSet, Packet, PacketId

DEFAULT_SPECIFICATION = "vbus_specification.json"


class ProjectedField(NamedTuple):
    """One projected value with the identity of the column it belongs to."""
    packet_id: PacketId
    field_id: str
    name: str
    unit_text: str
    value: str

    @property
    def column_key(self) -> Tuple[PacketId, str]:
        return (self.packet_id, self.field_id)

    @property
    def label(self) -> str:
        unit_text = self.unit_text.strip()
        if unit_text:
            return f"{self.name} [{unit_text}]"
        return self.name


def _precision(factor: float) -> int:
    exponent = Decimal(str(factor)).normalize().as_tuple().exponent
    return max(0, -exponent)


def format_raw_value(field: FieldSpec, frame_data: bytes) -> str:
    """
    Format one field's raw value with the precision its factor implies.

    Returns an empty string if the frame data is too short for the field.
    """
    end = field.offset + field.size
    if end > len(frame_data):
        return ""
    raw = int.from_bytes(frame_data[field.offset:end], "little", signed=field.signed)
    precision = _precision(field.factor)
    value = Decimal(raw) * Decimal(str(field.factor))
    return f"{value:.{precision}f}"


class Specification:
    """Field Projector backed by a validated ``SpecificationFile``."""

    def __init__(self, spec_file: SpecificationFile):
        self.spec_file = spec_file
        self._packets: Dict[Tuple[int, int, int], PacketSpec] = {
            (p.destination, p.source, p.command): p for p in spec_file.packets
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Specification":
        try:
            return cls(SpecificationFile.model_validate(data))
        except ValidationError as e:
            raise ProtocolError("Invalid field specification", cause=e) from e

    @classmethod
    def from_file(cls, filepath: Path) -> "Specification":
        """Load a specification JSON file."""
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise FilesystemError(f"Unable to read specification {filepath}", cause=e) from e
        except json.JSONDecodeError as e:
            raise ProtocolError(f"Specification {filepath} is not valid JSON", cause=e) from e
        return cls.from_dict(data)

    @classmethod
    def default(cls) -> "Specification":
        """Load the specification bundled with the package."""
        text = (resources.files("vbus_sync") / "data" / DEFAULT_SPECIFICATION).read_text(encoding="utf-8")
        return cls.from_dict(json.loads(text))

    @property
    def packets(self) -> List[PacketSpec]:
        return list(self.spec_file.packets)

    def packet_spec(self, packet: Packet) -> Optional[PacketSpec]:
        return self._packets.get((packet.destination, packet.source, packet.command))

    def fields_in_data_set(
        self, data_set: DataSet, include_empty: bool = False
    ) -> Iterator[ProjectedField]:
        """
        Yield the fields of every known packet in ``data_set`` in stable order.

        Packets without a value (cleared or evicted) are skipped unless
        ``include_empty`` is set, in which case their fields are yielded with
        an empty value. Packets missing from the specification yield nothing.
        """
        for packet in data_set.sorted_packets():
            packet_spec = self.packet_spec(packet)
            if packet_spec is None:
                continue
            if not packet.has_data and not include_empty:
                continue
            for field in packet_spec.fields:
                if packet.has_data:
                    value = format_raw_value(field, packet.frame_data)
                else:
                    value = ""
                yield ProjectedField(
                    packet_id=packet.packet_id,
                    field_id=field.id,
                    name=field.name,
                    unit_text=field.unit_text,
                    value=value,
                )
