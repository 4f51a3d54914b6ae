"""
CSV log parsers.

Litchi flight logs and CSVs with canonical column names. Columns are matched
by header name, so extra or reordered columns are fine. Rows are read lazily
in chunks, and iterating a parser again starts over from the first row.
Normalization happens in dronelog.services.normalizer.
"""

import io
import logging
import re
from typing import Iterator, Optional

import numpy as np
import pandas as pd

from dronelog.errors import MalformedRecord
from dronelog.models.raw import LogFormat, RawRecord, SourceContext
from dronelog.services.format_detector import split_header
from dronelog.services.normalizer import wall_clock_to_epoch_ms


logger = logging.getLogger(__name__)

CHUNK_ROWS = 5000

# Raw field name -> header variants (lowercase). Field names carry the unit.
LITCHI_COLUMNS = {
    # Time
    "elapsed_ms": ["time(millisecond)"],
    "datetime": ["datetime(utc)"],
    # Position
    "latitude": ["latitude"],
    "longitude": ["longitude"],
    "altitude_ft": ["altitude(feet)"],
    "altitude_m": ["altitude(m)", "altitude(meters)"],
    # Speed
    "speed_mph": ["speed(mph)"],
    "speed_mps": ["speed(m/s)"],
    "speed_kph": ["speed(km/h)", "speed(kph)"],
    # Signal
    "satellites": ["satellites"],
    # Battery
    "battery_percent": ["battery_percent", "batterypercent"],
    "battery_voltage": ["voltage(v)", "battery_voltage(v)"],
    "cell_voltage_1": ["voltagecell1"],
    "cell_voltage_2": ["voltagecell2"],
    "cell_voltage_3": ["voltagecell3"],
    "cell_voltage_4": ["voltagecell4"],
    "cell_voltage_5": ["voltagecell5"],
    "cell_voltage_6": ["voltagecell6"],
    "battery_serial": ["battery_serial", "battery_sn", "batteryserial"],
}

GENERIC_COLUMNS = {
    "timestamp_ms": ["timestamp_ms"],
    "datetime": ["datetime"],
    "latitude": ["latitude", "lat"],
    "longitude": ["longitude", "lon", "lng"],
    "altitude_m": ["altitude_m", "altitude"],
    "speed_mps": ["speed_mps", "speed(m/s)", "speed"],
    "speed_kph": ["speed_kph", "speed(km/h)"],
    "battery_voltage": ["battery_voltage", "voltage"],
    "battery_percent": ["battery_percent"],
    "satellites": ["satellites", "satellite_count", "sats"],
    "battery_serial": ["battery_serial", "battery_sn"],
}

STRING_FIELDS = frozenset({"datetime", "battery_serial"})

_PANDAS_LINE = re.compile(r"line (\d+)")


class CsvLogParser:
    """Shared machinery for header-matched CSV logs."""

    format: LogFormat
    COLUMNS: dict[str, list[str]] = {}
    REQUIRED = ("latitude", "longitude")

    def __init__(self, data: bytes, name: str = "", timezone: str = "UTC"):
        self._data = data
        self.name = name
        self.timezone = timezone

    def context(self) -> SourceContext:
        return SourceContext(source_format=self.format, timezone=self.timezone)

    def __iter__(self) -> Iterator[RawRecord]:
        lines = self._decode_lines()
        header_idx = self._find_header_line(lines)
        if header_idx is None:
            raise MalformedRecord("No header row found", offset=0)

        try:
            columns = split_header(lines[header_idx])
        except pd.errors.ParserError as e:
            raise MalformedRecord(f"Unreadable header row: {e}", offset=header_idx + 1) from e
        col_map = self._map_columns(columns)
        missing = [name for name in self.REQUIRED if col_map.get(name) is None]
        if missing:
            raise MalformedRecord(
                f"Missing required columns: {', '.join(missing)}",
                offset=header_idx + 1,
            )

        text = "\n".join(lines[header_idx:])
        start = 0
        with pd.read_csv(
            io.StringIO(text),
            dtype=str,
            chunksize=CHUNK_ROWS,
            skip_blank_lines=True,
            keep_default_na=False,
        ) as reader:
            while True:
                try:
                    chunk = next(reader)
                except StopIteration:
                    break
                except pd.errors.ParserError as e:
                    raise self._tokenizer_error(e, header_idx) from e

                chunk.columns = [str(c).strip().lower() for c in chunk.columns]
                yield from self._chunk_records(chunk, col_map, start, header_idx)
                start += len(chunk)

    def _decode_lines(self) -> list[str]:
        try:
            return self._data.decode("utf-8-sig").splitlines()
        except UnicodeDecodeError as e:
            raise MalformedRecord(f"File is not valid UTF-8 text (byte {e.start})", offset=e.start) from e

    def _find_header_line(self, lines: list[str]) -> Optional[int]:
        for i, line in enumerate(lines):
            stripped = line.strip()
            if stripped and not stripped.startswith("#"):
                return i
        return None

    def _map_columns(self, columns: list[str]) -> dict[str, Optional[str]]:
        col_map: dict[str, Optional[str]] = {}
        for std_name, variants in self.COLUMNS.items():
            col_map[std_name] = None
            for variant in variants:
                if variant in columns:
                    col_map[std_name] = variant
                    break
        return col_map

    def _tokenizer_error(self, error: Exception, header_idx: int) -> MalformedRecord:
        match = _PANDAS_LINE.search(str(error))
        if match is None:
            return MalformedRecord(f"Unparseable CSV row: {error}")
        line = int(match.group(1))  # 1-based, header is line 1
        return MalformedRecord(
            f"Unparseable CSV row at line {header_idx + line}",
            index=line - 2,
            offset=header_idx + line,
        )

    def _chunk_records(
        self,
        chunk: pd.DataFrame,
        col_map: dict[str, Optional[str]],
        start: int,
        header_idx: int,
    ) -> Iterator[RawRecord]:
        n_rows = len(chunk)
        if n_rows == 0:
            return

        first_line = header_idx + 2  # 1-based line of the first data row
        arrays: dict[str, np.ndarray] = {}
        bad_row: Optional[int] = None
        bad_reason = ""

        for std_name, col in col_map.items():
            if col is None or col not in chunk.columns:
                continue
            cells = chunk[col].str.strip()
            present = cells.notna() & (cells != "")

            if std_name in STRING_FIELDS:
                arrays[std_name] = np.where(present.to_numpy(), cells.to_numpy(dtype=object), None)
                continue

            values = pd.to_numeric(cells.where(present), errors="coerce")
            bad = (values.isna() & present).to_numpy()
            if std_name in self.REQUIRED:
                bad = bad | ~present.to_numpy()
            if bad.any():
                row = int(np.argmax(bad))
                if bad_row is None or row < bad_row:
                    bad_row = row
                    bad_reason = f"bad or missing value {chunk[col].iloc[row]!r} in column '{col}'"
            arrays[std_name] = values.to_numpy(dtype=np.float64)

        if bad_row is not None:
            index = start + bad_row
            raise MalformedRecord(
                f"Row {index} (line {first_line + index}): {bad_reason}",
                index=index,
                offset=first_line + index,
            )

        names = list(arrays)
        for i in range(n_rows):
            fields = {}
            for name in names:
                value = arrays[name][i]
                if name in STRING_FIELDS:
                    fields[name] = value
                else:
                    fields[name] = None if np.isnan(value) else float(value)
            index = start + i
            yield RawRecord(index=index, offset=first_line + index, fields=fields)


class LitchiCsvParser(CsvLogParser):
    """
    Parser for Litchi flight log CSV exports.

    Litchi logs elapsed milliseconds since launch plus a UTC wall clock;
    altitude is relative to the home point, in feet (or meters on newer
    exports), and speed in mph or m/s.
    """

    format = LogFormat.LITCHI_CSV
    COLUMNS = LITCHI_COLUMNS

    def context(self) -> SourceContext:
        first = next(iter(self), None)
        launch_time_ms = None
        if first is not None and first.get("datetime") is not None:
            try:
                wall_clock = wall_clock_to_epoch_ms(first.get("datetime"), "UTC")
            except ValueError as e:
                raise MalformedRecord(
                    f"Unparseable datetime(utc) {first.get('datetime')!r}",
                    index=first.index,
                    offset=first.offset,
                ) from e
            launch_time_ms = wall_clock - int(first.get("elapsed_ms") or 0)

        return SourceContext(
            source_format=self.format,
            launch_time_ms=launch_time_ms,
            timezone="UTC",
        )


class GenericCsvParser(CsvLogParser):
    """
    Parser for CSVs with canonical column names.

    Expected columns:
    - timestamp_ms (UTC epoch milliseconds) or datetime (ISO 8601)
    - latitude, longitude
    - optional altitude_m (above home point), speed_mps / speed_kph,
      battery_voltage, battery_percent, satellites, battery_serial
    """

    format = LogFormat.GENERIC_CSV
    COLUMNS = GENERIC_COLUMNS
