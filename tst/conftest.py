"""
Pytest fixtures for vbus_sync tests.

Provides synthetic VBus recordings, a field specification with two devices
and a stub HTTP session that counts requests.
"""

import struct
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional, Tuple

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from vbus_sync.specification import Specification

BS_PLUS = (0x0010, 0x4221, 0x0100)
HEAT_METER = (0x0010, 0x7E11, 0x0100)


# ==================== Recording Builders ====================


def to_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def vbus_record(record_type: int, moment: datetime, body: bytes = b"") -> bytes:
    length = 14 + len(body)
    return struct.pack("<BBHHQ", 0xA5, record_type, length, length, to_ms(moment)) + body


def packet_record(
    moment: datetime,
    frame_data: bytes,
    address: Tuple[int, int, int] = BS_PLUS,
    protocol: int = 0x10,
) -> bytes:
    if len(frame_data) % 4:
        frame_data += b"\x00" * (4 - len(frame_data) % 4)
    destination, source, command = address
    body = struct.pack(
        "<HHHHHHH", 0, destination, source, protocol, command, len(frame_data) // 4, 0
    )
    return vbus_record(0x44, moment, body + frame_data)


def bs_plus_frame(t1: int = 0, t2: int = 0, t3: int = 0, t4: int = 0,
                  relay1: int = 0, relay2: int = 0, minutes: int = 0,
                  hours1: int = 0, hours2: int = 0) -> bytes:
    """Frame data of a DeltaSol BS Plus packet; temperatures in 0.1 degree steps."""
    return struct.pack("<4h2B2xH2x2H8x", t1, t2, t3, t4, relay1, relay2, minutes, hours1, hours2)


def heat_meter_frame(power: int = 0) -> bytes:
    return struct.pack("<I", power)


def data_set(moment: datetime, *packets: bytes) -> bytes:
    """One data set: a 0x88 header followed by its packet records."""
    if not packets:
        packets = (packet_record(moment, bs_plus_frame()),)
    return vbus_record(0x88, moment) + b"".join(packets)


def hourly_capture(day: datetime, base_temperature: int = 200) -> bytes:
    """A UTC day with one BS Plus data set at the top of every hour."""
    chunks = []
    for hour in range(24):
        moment = day + timedelta(hours=hour)
        chunks.append(data_set(moment, packet_record(moment, bs_plus_frame(t1=base_temperature + hour))))
    return b"".join(chunks)


@pytest.fixture
def recording() -> SimpleNamespace:
    """Builders for synthetic recordings."""
    return SimpleNamespace(
        record=vbus_record,
        packet=packet_record,
        bs_plus_frame=bs_plus_frame,
        heat_meter_frame=heat_meter_frame,
        data_set=data_set,
        hourly_capture=hourly_capture,
        to_ms=to_ms,
        BS_PLUS=BS_PLUS,
        HEAT_METER=HEAT_METER,
    )


@pytest.fixture
def june_first() -> datetime:
    return datetime(2021, 6, 1, tzinfo=timezone.utc)


@pytest.fixture
def utc_plus_two() -> timezone:
    return timezone(timedelta(hours=2))


# ==================== Specifications ====================


@pytest.fixture
def specification() -> Specification:
    """The bundled specification (BS Plus only)."""
    return Specification.default()


@pytest.fixture
def two_device_spec_data() -> dict:
    return {
        "packets": [
            {
                "destination": BS_PLUS[0],
                "source": BS_PLUS[1],
                "command": BS_PLUS[2],
                "name": "DeltaSol BS Plus",
                "fields": [
                    {"id": "000_2_0", "name": "Temperatur Sensor 1", "unit_text": " °C",
                     "offset": 0, "size": 2, "signed": True, "factor": 0.1},
                ],
            },
            {
                "destination": HEAT_METER[0],
                "source": HEAT_METER[1],
                "command": HEAT_METER[2],
                "name": "Waermemengenzaehler",
                "fields": [
                    {"id": "000_4_0", "name": "Leistung", "unit_text": "W",
                     "offset": 0, "size": 4, "factor": 1},
                ],
            },
        ]
    }


@pytest.fixture
def two_device_spec(two_device_spec_data) -> Specification:
    return Specification.from_dict(two_device_spec_data)


# ==================== Stub HTTP ====================


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b"", headers: Optional[dict] = None):
        self.status_code = status_code
        self.content = content
        self.headers = CaseInsensitiveDict(headers or {})
        self.closed = False

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")

    def close(self):
        self.closed = True


class FakeSession:
    """
    Stands in for ``requests.Session``.

    ``routes`` maps (method, url) to a FakeResponse, an exception instance,
    or a list of those consumed one per call. Unknown routes answer 404.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], object] = {}
        self.calls: List[Tuple[str, str]] = []

    def add(self, method: str, url: str, response) -> None:
        self.routes[(method, url)] = response

    def serve_capture(self, host: str, datecode: str, content: bytes) -> None:
        url = f"http://{host}/log/{datecode}_packets.vbus"
        self.add("HEAD", url, FakeResponse(headers={"Content-Length": str(len(content))}))
        self.add("GET", url, FakeResponse(content=content))

    def serve_index(self, host: str, datecodes: List[str]) -> None:
        links = "".join(
            f'<li><a href="{dc}_packets.vbus">{dc}_packets.vbus</a></li>' for dc in datecodes
        )
        html = f"<html><body><a href=\"../\">..</a><ul>{links}</ul></body></html>"
        self.add("GET", f"http://{host}/log/", FakeResponse(content=html.encode("utf-8")))

    def request(self, method: str, url: str, **kwargs):
        self.calls.append((method, url))
        response = self.routes.get((method, url), FakeResponse(status_code=404))
        if isinstance(response, list):
            response = response.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def count(self, method: str, url: Optional[str] = None) -> int:
        return sum(1 for m, u in self.calls if m == method and (url is None or u == url))


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def connection_error():
    return requests.ConnectionError("connection refused")
