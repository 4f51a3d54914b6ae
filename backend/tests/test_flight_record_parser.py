"""
Tests for the binary flight record parser.
"""

import pytest

from dronelog.errors import MalformedRecord, TruncatedInput
from dronelog.services.flight_record_parser import (
    META_HEADER,
    OSD_PAYLOAD,
    RECORD_END,
    RECORD_OSD,
    RECORDS_START,
    FlightRecordParser,
)
from dronelog.services.format_detector import FLIGHT_RECORD_MAGIC
from dronelog.utils.sample_data import encode_flight_record, encode_record, generate_orbit_flight


LAUNCH_MS = 1716024600000


def _header(version: int = 1) -> bytes:
    return FLIGHT_RECORD_MAGIC + META_HEADER.pack(version, 0, LAUNCH_MS, b"AC1")


def _osd(elapsed: int, lat: float, lon: float, alt: float, satellites: int = 12) -> bytes:
    return encode_record(RECORD_OSD, OSD_PAYLOAD.pack(elapsed, lat, lon, alt, 3.0, 4.0, satellites))


@pytest.fixture
def synthetic_flight():
    return generate_orbit_flight(duration_s=20.0, sample_rate_hz=5.0, home_altitude_msl_m=410.0)


class TestFlightRecordParser:
    """Tests for decoding well-formed files."""

    def test_one_record_per_osd_frame(self, synthetic_flight):
        data = encode_flight_record(synthetic_flight)

        records = list(FlightRecordParser(data))

        assert len(records) == len(synthetic_flight.elapsed_ms)
        assert [r.index for r in records] == list(range(len(records)))

    def test_fields_decoded(self):
        data = _header() + _osd(1000, 47.5, 8.5, 420.0) + encode_record(RECORD_END, b"")

        record = next(iter(FlightRecordParser(data)))

        assert record.get("elapsed_ms") == 1000
        assert record.get("latitude") == 47.5
        assert record.get("longitude") == 8.5
        assert record.get("altitude_msl_m") == pytest.approx(420.0)
        assert record.get("velocity_north_mps") == pytest.approx(3.0)
        assert record.get("velocity_east_mps") == pytest.approx(4.0)
        assert record.get("satellites") == 12

    def test_offset_is_byte_position(self):
        data = _header() + _osd(0, 1.0, 2.0, 0.0) + _osd(100, 1.0, 2.0, 0.0)

        records = list(FlightRecordParser(data))

        assert records[0].offset == RECORDS_START
        assert records[1].offset == RECORDS_START + 4 + OSD_PAYLOAD.size

    def test_zero_satellites_distinct_from_unreported(self):
        """0 satellites is a reading; 255 means the field is absent."""
        data = _header() + _osd(0, 1.0, 2.0, 0.0, satellites=0) + _osd(100, 1.0, 2.0, 0.0, satellites=255)

        records = list(FlightRecordParser(data))

        assert records[0].get("satellites") == 0
        assert records[1].get("satellites") is None

    def test_battery_fields_attached(self, synthetic_flight):
        data = encode_flight_record(synthetic_flight, battery_every=5)

        records = list(FlightRecordParser(data))

        assert records[0].get("battery_serial") == "BAT0001"
        assert records[0].get("battery_percent") == 100
        assert records[0].get("battery_millivolts") == 16800

    def test_unknown_record_skipped(self):
        """Unknown record types are skipped by their declared length."""
        data = _header() + encode_record(77, b"\x01\x02\x03") + _osd(0, 1.0, 2.0, 0.0)

        records = list(FlightRecordParser(data))

        assert len(records) == 1

    def test_end_record_stops_stream(self):
        data = _header() + _osd(0, 1.0, 2.0, 0.0) + encode_record(RECORD_END, b"") + b"garbage"

        assert len(list(FlightRecordParser(data))) == 1

    def test_context_from_meta_and_home(self, synthetic_flight):
        context = FlightRecordParser(encode_flight_record(synthetic_flight)).context()

        assert context.launch_time_ms == synthetic_flight.launch_time_ms
        assert context.home_altitude_m == pytest.approx(410.0)

    def test_context_without_home_uses_first_frame(self):
        data = _header() + _osd(0, 1.0, 2.0, 300.0) + _osd(100, 1.0, 2.0, 320.0)

        context = FlightRecordParser(data).context()

        assert context.home_altitude_m == pytest.approx(300.0)


class TestCorruptInput:
    """Tests for rejection of corrupt files."""

    def test_declared_length_overruns_buffer(self):
        """A length past the end of the file is truncation, not a crash."""
        data = _header() + _osd(0, 1.0, 2.0, 0.0)
        frame = encode_record(RECORD_OSD, OSD_PAYLOAD.pack(100, 1.0, 2.0, 0.0, 0.0, 0.0, 10))
        data += frame[:-5]

        with pytest.raises(TruncatedInput) as exc_info:
            list(FlightRecordParser(data))

        assert exc_info.value.offset == RECORDS_START + 4 + OSD_PAYLOAD.size

    def test_cut_record_header(self):
        data = _header() + b"\x02"

        with pytest.raises(TruncatedInput):
            list(FlightRecordParser(data))

    def test_short_meta_header(self):
        with pytest.raises(TruncatedInput):
            list(FlightRecordParser(FLIGHT_RECORD_MAGIC + b"\x01\x00"))

    def test_wrong_payload_length(self):
        """A known record type with the wrong size is malformed."""
        data = _header() + encode_record(RECORD_OSD, b"\x00" * 10)

        with pytest.raises(MalformedRecord):
            list(FlightRecordParser(data))

    def test_unsupported_version(self):
        with pytest.raises(MalformedRecord):
            list(FlightRecordParser(_header(version=9)))

    def test_missing_magic(self):
        with pytest.raises(MalformedRecord):
            list(FlightRecordParser(b"not a flight record at all, definitely"))
