"""
Raw log model (source-format, unnormalized).

Parsers yield RawRecords whose field names carry the source unit
(altitude_ft, speed_mph, elapsed_ms, ...) and whose values are left exactly
as the source wrote them. The SourceContext carries per-file facts the
normalizer needs to interpret them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class LogFormat(Enum):
    """Supported source log formats."""

    FLIGHT_RECORD = "flight_record"  # binary proprietary flight record
    LITCHI_CSV = "litchi_csv"        # Litchi flight-planning app CSV export
    GENERIC_CSV = "generic_csv"      # CSV with canonical column names


@dataclass
class RawRecord:
    """One source row or frame, uninterpreted."""

    index: int                  # 0-based data row / frame number
    offset: int                 # line number (CSV) or byte offset (binary)
    fields: dict[str, Any] = field(default_factory=dict)

    def get(self, name: str) -> Any:
        return self.fields.get(name)


@dataclass
class SourceContext:
    """Per-file unit and reference information."""

    source_format: LogFormat
    launch_time_ms: Optional[int] = None  # wall clock at elapsed 0
    home_altitude_m: Optional[float] = None  # MSL elevation of the home point
    timezone: str = "UTC"                # for naive wall-clock strings
