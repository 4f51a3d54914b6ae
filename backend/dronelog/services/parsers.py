"""
Parser registry.

Every LogFormat has exactly one parser class. The registry is checked at
import time, so adding a format without a parser fails immediately.
"""

from typing import Iterator, Protocol

from dronelog import config
from dronelog.models.raw import LogFormat, RawRecord, SourceContext
from dronelog.services.csv_parser import GenericCsvParser, LitchiCsvParser
from dronelog.services.flight_record_parser import FlightRecordParser


class LogParser(Protocol):
    """Parser interface for one source format."""

    format: LogFormat

    def context(self) -> SourceContext:
        ...

    def __iter__(self) -> Iterator[RawRecord]:
        ...


PARSERS: dict[LogFormat, type] = {
    LogFormat.FLIGHT_RECORD: FlightRecordParser,
    LogFormat.LITCHI_CSV: LitchiCsvParser,
    LogFormat.GENERIC_CSV: GenericCsvParser,
}

_missing = set(LogFormat) - set(PARSERS)
if _missing:
    raise RuntimeError(f"No parser registered for: {sorted(f.value for f in _missing)}")


def open_parser(fmt: LogFormat, data: bytes, name: str = "") -> LogParser:
    """Build the parser for a detected format."""
    return PARSERS[fmt](data, name=name, timezone=config.DEFAULT_TIMEZONE)
