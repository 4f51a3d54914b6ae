"""
Canonical flight data model.

All source formats are normalized into Samples with fixed units:
- timestamps: UTC epoch milliseconds
- position: decimal degrees WGS84
- altitude: meters above the home point
- speed: meters/second

Optional channels use None for "not provided by this source", never a
numeric sentinel.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Generic, Optional, TypeVar


T = TypeVar("T")


@dataclass(frozen=True)
class Sample:
    """One normalized telemetry reading."""

    timestamp_ms: int
    latitude: float
    longitude: float
    altitude_m: Optional[float] = None
    ground_speed_mps: Optional[float] = None
    battery_voltage: Optional[float] = None
    battery_percent: Optional[float] = None
    satellite_count: Optional[int] = None
    battery_serial: Optional[str] = None


@dataclass
class Flight:
    """
    Header of one imported log.

    Every statistic here is derived from the flight's samples by
    assemble_flight; only display_name is user-editable.
    """

    display_name: str
    source_file: str
    source_format: str
    start_time_ms: int
    duration_seconds: float
    distance_meters: float
    max_altitude_m: Optional[float]
    max_speed_mps: Optional[float]
    battery_serials: tuple[str, ...]
    battery_start_percent: Optional[float]
    battery_end_percent: Optional[float]
    sample_count: int
    id: Optional[int] = None
    imported_at: Optional[str] = None

    @property
    def start_time(self) -> datetime:
        return datetime.fromtimestamp(self.start_time_ms / 1000.0, tz=timezone.utc)

    @property
    def battery_used_percent(self) -> Optional[float]:
        if self.battery_start_percent is None or self.battery_end_percent is None:
            return None
        return self.battery_start_percent - self.battery_end_percent

    def statistics(self) -> tuple:
        """Derived fields only, for comparing against a recomputation."""
        return (
            self.start_time_ms,
            self.duration_seconds,
            self.distance_meters,
            self.max_altitude_m,
            self.max_speed_mps,
            self.battery_serials,
            self.battery_start_percent,
            self.battery_end_percent,
            self.sample_count,
        )


@dataclass
class ImportResult:
    """Outcome of one import call. Not persisted."""

    success: bool
    message: str
    flight_id: Optional[int] = None
    point_count: int = 0


@dataclass
class OperationResult:
    """Outcome of a delete or rename."""

    success: bool
    message: str
    not_found: bool = False
    rejected: bool = False  # invalid input, nothing attempted


@dataclass
class QueryResult(Generic[T]):
    """
    Outcome of a read.

    success is False when the flight does not exist (not_found) or the store
    could not be read; value is only set on success.
    """

    success: bool
    value: Optional[T] = None
    message: str = ""
    not_found: bool = False


@dataclass
class BatteryUsage:
    """Usage totals for one battery serial across all flights."""

    serial: str
    flight_count: int
    total_duration_seconds: float
    total_distance_meters: float


@dataclass
class OverviewStats:
    """Aggregate across every stored flight, computed on demand."""

    total_flights: int = 0
    total_duration_seconds: float = 0.0
    total_distance_meters: float = 0.0
    total_points: int = 0
    max_altitude_m: Optional[float] = None
    max_speed_mps: Optional[float] = None
    batteries: list[BatteryUsage] = field(default_factory=list)


TrackPoint = tuple[float, float, Optional[float]]  # (longitude, latitude, altitude_m)


@dataclass
class FlightData:
    """A flight header plus its (downsampled) track."""

    flight: Flight
    track: list[TrackPoint]

    @classmethod
    def from_samples(cls, flight: Flight, samples: list[Sample]) -> "FlightData":
        return cls(
            flight=flight,
            track=[(s.longitude, s.latitude, s.altitude_m) for s in samples],
        )
