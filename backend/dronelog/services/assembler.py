"""
Flight assembly.

Derives the Flight header from a normalized sample sequence. The same
function is used at import time and to verify stored flights, so every
statistic is reproducible from the samples alone.
"""

from typing import Iterable, Optional

import numpy as np

from dronelog.errors import InsufficientData
from dronelog.models.flight import Flight, Sample
from dronelog.utils.geo import path_distance


MIN_SAMPLES = 2


def assemble_flight(
    samples: Iterable[Sample],
    display_name: Optional[str] = None,
    source_file: str = "",
    source_format: str = "",
) -> tuple[Flight, list[Sample]]:
    """
    Build a Flight header (without id) from one file's samples.

    Samples are stably sorted by timestamp, so equal timestamps keep their
    source order.

    Returns:
        (flight, ordered samples)

    Raises:
        InsufficientData: if fewer than two samples are given
    """
    ordered = sorted(samples, key=lambda s: s.timestamp_ms)
    if len(ordered) < MIN_SAMPLES:
        raise InsufficientData(
            f"Flight needs at least {MIN_SAMPLES} samples, got {len(ordered)}",
            sample_count=len(ordered),
        )

    first, last = ordered[0], ordered[-1]
    lat = np.fromiter((s.latitude for s in ordered), dtype=np.float64, count=len(ordered))
    lon = np.fromiter((s.longitude for s in ordered), dtype=np.float64, count=len(ordered))

    percents = [s.battery_percent for s in ordered if s.battery_percent is not None]
    serials = {s.battery_serial for s in ordered if s.battery_serial is not None}

    flight = Flight(
        display_name=display_name or default_display_name(first.timestamp_ms),
        source_file=source_file,
        source_format=source_format,
        start_time_ms=first.timestamp_ms,
        duration_seconds=(last.timestamp_ms - first.timestamp_ms) / 1000.0,
        distance_meters=path_distance(lat, lon),
        max_altitude_m=_max_present(s.altitude_m for s in ordered),
        max_speed_mps=_max_present(s.ground_speed_mps for s in ordered),
        battery_serials=tuple(sorted(serials)),
        battery_start_percent=percents[0] if percents else None,
        battery_end_percent=percents[-1] if percents else None,
        sample_count=len(ordered),
    )
    return flight, ordered


def default_display_name(start_time_ms: int) -> str:
    """Label used when a log has no file name."""
    start = np.datetime64(start_time_ms, "ms").astype("datetime64[m]")
    return f"Flight {str(start).replace('T', ' ')} UTC"


def _max_present(values: Iterable[Optional[float]]) -> Optional[float]:
    present = np.array([v for v in values if v is not None], dtype=np.float64)
    if present.size == 0:
        return None
    return float(np.max(present))
