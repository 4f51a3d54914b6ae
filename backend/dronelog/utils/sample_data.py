"""
Sample data generator for testing and demos.

Generates realistic-looking drone flights and writes them as Litchi CSV
exports or binary flight records.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import numpy as np

from dronelog.services.flight_record_parser import (
    BATTERY_PAYLOAD,
    HOME_PAYLOAD,
    META_HEADER,
    OSD_PAYLOAD,
    RECORD_BATTERY,
    RECORD_END,
    RECORD_HEADER,
    RECORD_HOME,
    RECORD_OSD,
    SATELLITES_NOT_REPORTED,
)
from dronelog.services.format_detector import FLIGHT_RECORD_MAGIC

FEET_PER_METER = 1 / 0.3048
MPH_PER_MPS = 1 / 0.44704
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

LITCHI_HEADER = (
    "latitude,longitude,altitude(feet),speed(mph),time(millisecond),"
    "datetime(utc),satellites,battery_percent,voltage(v),battery_serial"
)


@dataclass
class SyntheticFlight:
    """Time series of one generated flight, in canonical units."""
    launch_time_ms: int
    elapsed_ms: np.ndarray
    latitude: np.ndarray
    longitude: np.ndarray
    altitude_m: np.ndarray      # above home
    velocity_north: np.ndarray  # m/s
    velocity_east: np.ndarray   # m/s
    battery_percent: np.ndarray
    battery_voltage: np.ndarray
    satellites: np.ndarray
    home_altitude_msl_m: float = 0.0
    battery_serial: str = "BAT0001"

    @property
    def speed_mps(self) -> np.ndarray:
        return np.hypot(self.velocity_north, self.velocity_east)


def generate_orbit_flight(
    duration_s: float = 120.0,
    sample_rate_hz: float = 10.0,
    center_lat: float = 47.3977,
    center_lon: float = 8.5456,
    orbit_radius_m: float = 60.0,
    cruise_altitude_m: float = 40.0,
    home_altitude_msl_m: float = 410.0,
    launch: Optional[datetime] = None,
    battery_serial: str = "BAT0001",
    seed: Optional[int] = 0,
) -> SyntheticFlight:
    """
    Generate a take-off, one orbit around a point of interest, and landing.

    The first and last tenth of the flight are the climb and descent.
    """
    rng = np.random.default_rng(seed)
    launch = launch or datetime(2024, 5, 18, 9, 30, tzinfo=timezone.utc)

    n_samples = max(int(duration_s * sample_rate_hz), 2)
    t = np.linspace(0.0, duration_s, n_samples)

    # Circle centered one radius north of the home point, starting at home
    theta = 2 * np.pi * t / duration_s
    north = orbit_radius_m * (1 - np.cos(theta))
    east = orbit_radius_m * np.sin(theta)
    north += rng.normal(0, 0.2, n_samples)
    east += rng.normal(0, 0.2, n_samples)

    ramp = duration_s * 0.1
    altitude = cruise_altitude_m * np.clip(np.minimum(t, duration_s - t) / ramp, 0.0, 1.0)

    meters_per_deg_lat = 111320.0
    meters_per_deg_lon = 111320.0 * np.cos(np.radians(center_lat))
    lat = center_lat + north / meters_per_deg_lat
    lon = center_lon + east / meters_per_deg_lon

    dt = np.gradient(t)
    v_north = np.gradient(north) / dt
    v_east = np.gradient(east) / dt

    battery_percent = np.round(100.0 - 35.0 * t / duration_s)
    battery_voltage = 16.8 - 2.0 * (100.0 - battery_percent) / 100.0
    satellites = np.clip(np.round(14 + rng.normal(0, 1.5, n_samples)), 6, 22)

    return SyntheticFlight(
        launch_time_ms=int(launch.timestamp() * 1000),
        elapsed_ms=np.round(t * 1000).astype(np.int64),
        latitude=lat,
        longitude=lon,
        altitude_m=altitude,
        velocity_north=v_north,
        velocity_east=v_east,
        battery_percent=battery_percent,
        battery_voltage=battery_voltage,
        satellites=satellites.astype(np.int64),
        home_altitude_msl_m=home_altitude_msl_m,
        battery_serial=battery_serial,
    )


def litchi_csv_bytes(flight: SyntheticFlight) -> bytes:
    """Render a flight as a Litchi CSV export."""
    lines = [LITCHI_HEADER]
    speed_mph = flight.speed_mps * MPH_PER_MPS
    altitude_ft = flight.altitude_m * FEET_PER_METER

    for i in range(len(flight.elapsed_ms)):
        wall_clock = EPOCH + timedelta(milliseconds=flight.launch_time_ms + int(flight.elapsed_ms[i]))
        lines.append(
            f"{flight.latitude[i]:.7f},"
            f"{flight.longitude[i]:.7f},"
            f"{altitude_ft[i]:.2f},"
            f"{speed_mph[i]:.2f},"
            f"{int(flight.elapsed_ms[i])},"
            f"{wall_clock.strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]},"
            f"{int(flight.satellites[i])},"
            f"{int(flight.battery_percent[i])},"
            f"{flight.battery_voltage[i]:.2f},"
            f"{flight.battery_serial}"
        )
    return ("\n".join(lines) + "\n").encode("utf-8")


def encode_flight_record(
    flight: SyntheticFlight,
    include_home: bool = True,
    battery_every: int = 10,
    aircraft_serial: str = "AC12345",
) -> bytes:
    """
    Encode a flight as a binary flight record.

    A BATTERY record precedes every battery_every-th OSD frame.
    """
    out = bytearray(FLIGHT_RECORD_MAGIC)
    out += META_HEADER.pack(1, 0, flight.launch_time_ms, aircraft_serial.encode("ascii"))

    if include_home:
        out += encode_record(
            RECORD_HOME,
            HOME_PAYLOAD.pack(
                float(flight.latitude[0]),
                float(flight.longitude[0]),
                flight.home_altitude_msl_m,
            ),
        )

    serial = flight.battery_serial.encode("ascii")
    for i in range(len(flight.elapsed_ms)):
        elapsed = int(flight.elapsed_ms[i])
        if i % battery_every == 0:
            out += encode_record(
                RECORD_BATTERY,
                BATTERY_PAYLOAD.pack(
                    elapsed,
                    int(round(flight.battery_voltage[i] * 1000)),
                    int(flight.battery_percent[i]),
                    serial,
                ),
            )
        satellites = flight.satellites[i]
        out += encode_record(
            RECORD_OSD,
            OSD_PAYLOAD.pack(
                elapsed,
                float(flight.latitude[i]),
                float(flight.longitude[i]),
                float(flight.home_altitude_msl_m + flight.altitude_m[i]),
                float(flight.velocity_north[i]),
                float(flight.velocity_east[i]),
                SATELLITES_NOT_REPORTED if satellites < 0 else int(satellites),
            ),
        )

    out += encode_record(RECORD_END, b"")
    return bytes(out)


def encode_record(record_type: int, payload: bytes) -> bytes:
    """Frame one record: type, payload length, payload."""
    return RECORD_HEADER.pack(record_type, len(payload)) + payload


def generate_test_data_set(output_folder: Path) -> list[Path]:
    """Generate a set of test log files."""
    output_folder.mkdir(parents=True, exist_ok=True)

    files = []

    morning = generate_orbit_flight(duration_s=180.0, orbit_radius_m=80.0, seed=1)
    path = output_folder / "orbit_morning.csv"
    path.write_bytes(litchi_csv_bytes(morning))
    files.append(path)

    evening = generate_orbit_flight(
        duration_s=240.0,
        orbit_radius_m=120.0,
        cruise_altitude_m=60.0,
        launch=datetime(2024, 5, 18, 18, 45, tzinfo=timezone.utc),
        battery_serial="BAT0002",
        seed=2,
    )
    path = output_folder / "orbit_evening.flr"
    path.write_bytes(encode_flight_record(evening))
    files.append(path)

    return files


if __name__ == "__main__":
    # Generate test data when run directly
    output = Path("./data/samples")
    files = generate_test_data_set(output)
    print(f"Generated {len(files)} test files in {output}")
    for f in files:
        print(f"  - {f.name}")
