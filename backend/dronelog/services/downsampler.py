"""
Shape-preserving downsampling for map and chart display.

Largest-triangle-three-buckets generalized to several channels: each sample
is a point in a normalized (time, east, north, altitude, speed) space, and
from every bucket we keep the sample farthest from the line joining the
previously kept sample to the next bucket's centroid. Turns, climbs and
speed changes survive; straight, steady legs are thinned.
"""

import logging
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from dronelog.models.flight import Sample
from dronelog.utils.geo import project_local


logger = logging.getLogger(__name__)


def downsample(samples: Sequence[Sample], max_points: int) -> list[Sample]:
    """
    Reduce a time-ordered sample sequence to at most max_points samples.

    The first and last samples are always kept. A sequence that already fits
    is returned unchanged (as a new list).

    Raises:
        ValueError: if max_points < 1
    """
    if max_points < 1:
        raise ValueError(f"max_points must be at least 1, got {max_points}")

    n = len(samples)
    if n <= max_points:
        return list(samples)
    if max_points == 1:
        return [samples[0]]

    features = _feature_matrix(samples)
    bucket_count = max_points - 2
    edges = np.linspace(1, n - 1, bucket_count + 1).astype(np.int64)

    selected = [0]
    for b in range(bucket_count):
        start, end = edges[b], edges[b + 1]
        if b + 1 < bucket_count:
            next_centroid = features[edges[b + 1]:edges[b + 2]].mean(axis=0)
        else:
            next_centroid = features[n - 1]

        deviation = _distance_to_line(features[start:end], features[selected[-1]], next_centroid)
        selected.append(int(start + np.argmax(deviation)))
    selected.append(n - 1)

    logger.debug(f"Downsampled {n} samples to {len(selected)}")
    return [samples[i] for i in selected]


def _feature_matrix(samples: Sequence[Sample]) -> NDArray[np.float64]:
    """Columns scaled to [0, 1]; absent channels and flat columns become 0."""
    time = np.array([s.timestamp_ms for s in samples], dtype=np.float64)
    lat = np.array([s.latitude for s in samples], dtype=np.float64)
    lon = np.array([s.longitude for s in samples], dtype=np.float64)
    alt = np.array([np.nan if s.altitude_m is None else s.altitude_m for s in samples], dtype=np.float64)
    speed = np.array(
        [np.nan if s.ground_speed_mps is None else s.ground_speed_mps for s in samples],
        dtype=np.float64,
    )

    plane = project_local(lat, lon)
    columns = np.column_stack([time, plane.east, plane.north, np.nan_to_num(alt), np.nan_to_num(speed)])

    low = columns.min(axis=0)
    span = columns.max(axis=0) - low
    # Sub-micro spans are projection rounding, not signal
    flat = span < 1e-6
    span[flat] = 1.0
    columns[:, flat] = low[flat]
    return (columns - low) / span


def _distance_to_line(
    points: NDArray[np.float64],
    a: NDArray[np.float64],
    c: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Perpendicular distance from each point to the line through a and c."""
    direction = c - a
    offsets = points - a
    length_sq = float(direction @ direction)
    if length_sq == 0.0:
        return np.linalg.norm(offsets, axis=1)
    projection = np.outer(offsets @ direction / length_sq, direction)
    return np.linalg.norm(offsets - projection, axis=1)
