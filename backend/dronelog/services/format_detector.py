"""
Log format detection.

Decides which parser applies to a file by sniffing its structure: a binary
magic marker, or the column set of a CSV header row. The file extension is
only a hint and never decides on its own.
"""

import io
import logging
from pathlib import PurePath
from typing import Optional

import pandas as pd

from dronelog.errors import FormatUnrecognized
from dronelog.models.raw import LogFormat


logger = logging.getLogger(__name__)

# PNG-style marker: high bit, name, CRLF, DOS EOF, LF
FLIGHT_RECORD_MAGIC = b"\x89FLR\r\n\x1a\n"

SNIFF_BYTES = 8192

EXPECTED_EXTENSIONS = {
    LogFormat.FLIGHT_RECORD: {".flr", ".bin"},
    LogFormat.LITCHI_CSV: {".csv"},
    LogFormat.GENERIC_CSV: {".csv"},
}

LITCHI_REQUIRED = {"latitude", "longitude", "time(millisecond)", "datetime(utc)"}
GENERIC_REQUIRED = {"latitude", "longitude"}
GENERIC_TIME = {"timestamp_ms", "datetime"}


def detect_format(head: bytes, filename: Optional[str] = None) -> LogFormat:
    """
    Identify the log format from the first bytes of a file.

    Args:
        head: Leading bytes of the file (at least SNIFF_BYTES when available)
        filename: Original file name, used only to warn on mismatches

    Returns:
        The detected LogFormat

    Raises:
        FormatUnrecognized: if no supported structure matches
    """
    fmt = _sniff(head)
    if fmt is None:
        raise FormatUnrecognized(
            f"Unrecognized log format: {filename or 'upload'}"
        )

    if filename:
        suffix = PurePath(filename).suffix.lower()
        if suffix and suffix not in EXPECTED_EXTENSIONS[fmt]:
            logger.warning(
                f"File {filename} looks like {fmt.value} despite extension {suffix}"
            )
    return fmt


def read_header_columns(head: bytes) -> Optional[list[str]]:
    """Return normalized header column names of a CSV, or None if not text."""
    # A multi-byte character may be cut at the sniff boundary
    text = head.decode("utf-8-sig", errors="replace")

    if "\x00" in text:
        return None

    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        try:
            return split_header(stripped)
        except (pd.errors.ParserError, pd.errors.EmptyDataError):
            return None
    return None


def split_header(line: str) -> list[str]:
    """Lowercased column names of one CSV header line, unquoted as pandas reads them."""
    frame = pd.read_csv(io.StringIO(line), nrows=0, dtype=str)
    return [str(c).strip().lower() for c in frame.columns]


def _sniff(head: bytes) -> Optional[LogFormat]:
    if head.startswith(FLIGHT_RECORD_MAGIC):
        return LogFormat.FLIGHT_RECORD

    columns = read_header_columns(head)
    if not columns:
        return None
    column_set = set(columns)

    if LITCHI_REQUIRED <= column_set:
        return LogFormat.LITCHI_CSV
    if GENERIC_REQUIRED <= column_set and column_set & GENERIC_TIME:
        return LogFormat.GENERIC_CSV
    return None
