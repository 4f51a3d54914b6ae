"""
Binary flight record parser.

Layout (little endian):

    magic           8 bytes   b"\\x89FLR\\r\\n\\x1a\\n"
    meta header    28 bytes   version u16, flags u16, launch epoch ms i64,
                              aircraft serial 16s (NUL padded)
    records        repeated   type u16, payload length u16, payload

Record types:

    HOME      (1)  lat f64, lon f64, altitude MSL m f32
    OSD       (2)  elapsed ms u32, lat f64, lon f64, altitude MSL m f32,
                   velocity north m/s f32, velocity east m/s f32,
                   satellites u8 (255 = not reported)
    BATTERY   (3)  elapsed ms u32, voltage mV u16, percent u8, serial 16s
    END  (0xFFFF)  empty, stops the stream

Unknown record types are skipped using their declared length. Every declared
length is checked against the remaining buffer before the payload is read.
"""

import logging
import math
import struct
from typing import Iterator, Optional

from dronelog.errors import MalformedRecord, TruncatedInput
from dronelog.models.raw import LogFormat, RawRecord, SourceContext
from dronelog.services.format_detector import FLIGHT_RECORD_MAGIC


logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS = {1}

META_HEADER = struct.Struct("<HHq16s")
RECORD_HEADER = struct.Struct("<HH")

RECORD_HOME = 1
RECORD_OSD = 2
RECORD_BATTERY = 3
RECORD_END = 0xFFFF

HOME_PAYLOAD = struct.Struct("<ddf")
OSD_PAYLOAD = struct.Struct("<IddfffB")
BATTERY_PAYLOAD = struct.Struct("<IHB16s")

PAYLOADS = {
    RECORD_HOME: HOME_PAYLOAD,
    RECORD_OSD: OSD_PAYLOAD,
    RECORD_BATTERY: BATTERY_PAYLOAD,
}

SATELLITES_NOT_REPORTED = 255

RECORDS_START = len(FLIGHT_RECORD_MAGIC) + META_HEADER.size


def decode_serial(raw: bytes) -> Optional[str]:
    text = raw.split(b"\x00", 1)[0].decode("ascii", errors="replace").strip()
    return text or None


class FlightRecordParser:
    """Parser for binary flight record files."""

    format = LogFormat.FLIGHT_RECORD

    def __init__(self, data: bytes, name: str = "", timezone: str = "UTC"):
        self._data = data
        self.name = name
        self.timezone = timezone

    def read_meta(self) -> tuple[int, int, Optional[str]]:
        """Return (version, launch epoch ms, aircraft serial)."""
        data = self._data
        if not data.startswith(FLIGHT_RECORD_MAGIC):
            raise MalformedRecord("Missing flight record marker", offset=0)
        if len(data) < RECORDS_START:
            raise TruncatedInput(
                f"Meta header needs {META_HEADER.size} bytes, file has {len(data) - len(FLIGHT_RECORD_MAGIC)}",
                offset=len(FLIGHT_RECORD_MAGIC),
            )

        version, _flags, launch_ms, serial = META_HEADER.unpack_from(data, len(FLIGHT_RECORD_MAGIC))
        if version not in SUPPORTED_VERSIONS:
            raise MalformedRecord(
                f"Unsupported flight record version {version}",
                offset=len(FLIGHT_RECORD_MAGIC),
            )
        return version, launch_ms, decode_serial(serial)

    def context(self) -> SourceContext:
        """
        Launch time comes from the meta header. The home elevation comes from
        the HOME record, or the first OSD frame when the file has none.
        """
        _, launch_ms, aircraft = self.read_meta()
        home_altitude: Optional[float] = None
        first_osd_altitude: Optional[float] = None

        for _, _, rtype, payload in self._frames():
            if rtype == RECORD_HOME:
                home_altitude = float(HOME_PAYLOAD.unpack(payload)[2])
                break
            if rtype == RECORD_OSD and first_osd_altitude is None:
                first_osd_altitude = float(OSD_PAYLOAD.unpack(payload)[3])

        if home_altitude is None or math.isnan(home_altitude):
            home_altitude = first_osd_altitude
        if home_altitude is not None and math.isnan(home_altitude):
            home_altitude = None

        logger.debug(f"Flight record from aircraft {aircraft}, launch {launch_ms}")
        return SourceContext(
            source_format=self.format,
            launch_time_ms=launch_ms,
            home_altitude_m=home_altitude,
            timezone="UTC",
        )

    def __iter__(self) -> Iterator[RawRecord]:
        self.read_meta()
        battery: dict = {}
        sample_index = 0

        for _, offset, rtype, payload in self._frames():
            if rtype == RECORD_BATTERY:
                _, millivolts, percent, serial = BATTERY_PAYLOAD.unpack(payload)
                battery = {
                    "battery_millivolts": millivolts,
                    "battery_percent": percent,
                    "battery_serial": decode_serial(serial),
                }
            elif rtype == RECORD_OSD:
                elapsed, lat, lon, alt, v_north, v_east, satellites = OSD_PAYLOAD.unpack(payload)
                fields = {
                    "elapsed_ms": elapsed,
                    "latitude": lat,
                    "longitude": lon,
                    "altitude_msl_m": alt,
                    "velocity_north_mps": v_north,
                    "velocity_east_mps": v_east,
                    "satellites": None if satellites == SATELLITES_NOT_REPORTED else satellites,
                }
                fields.update(battery)
                yield RawRecord(index=sample_index, offset=offset, fields=fields)
                sample_index += 1

    def _frames(self) -> Iterator[tuple[int, int, int, bytes]]:
        """Yield (frame index, byte offset, type, payload) for each record."""
        data = self._data
        size = len(data)
        pos = RECORDS_START
        index = 0

        while pos < size:
            if pos + RECORD_HEADER.size > size:
                raise TruncatedInput(f"Record header cut short at byte {pos}", offset=pos)

            rtype, length = RECORD_HEADER.unpack_from(data, pos)
            body = pos + RECORD_HEADER.size
            if body + length > size:
                raise TruncatedInput(
                    f"Record at byte {pos} declares {length} bytes, only {size - body} remain",
                    offset=pos,
                )
            if rtype == RECORD_END:
                return

            expected = PAYLOADS.get(rtype)
            if expected is not None and length != expected.size:
                raise MalformedRecord(
                    f"Record type {rtype} at byte {pos} has length {length}, expected {expected.size}",
                    index=index,
                    offset=pos,
                )
            if expected is None:
                logger.debug(f"Skipping unknown record type {rtype} at byte {pos}")

            yield index, pos, rtype, data[body:body + length]
            pos = body + length
            index += 1
