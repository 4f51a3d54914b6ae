"""
Tests for track downsampling.
"""

import numpy as np
import pytest

from dronelog.models.flight import Sample
from dronelog.services.downsampler import downsample


def _line(n: int) -> list[Sample]:
    """Straight, steady flight north."""
    return [
        Sample(timestamp_ms=i * 100, latitude=47.0 + i * 1e-5, longitude=8.0, altitude_m=30.0, ground_speed_mps=5.0)
        for i in range(n)
    ]


class TestDownsample:
    """Tests for shape-preserving reduction."""

    def test_short_input_unchanged(self):
        samples = _line(50)

        result = downsample(samples, 100)

        assert result == samples
        assert result is not samples

    def test_exact_fit_unchanged(self):
        samples = _line(100)
        assert downsample(samples, 100) == samples

    def test_endpoints_kept(self):
        samples = _line(1000)

        result = downsample(samples, 37)

        assert len(result) == 37
        assert result[0] == samples[0]
        assert result[-1] == samples[-1]

    def test_three_of_ten_thousand(self):
        samples = _line(10_000)

        result = downsample(samples, 3)

        assert len(result) == 3
        assert result[0] == samples[0]
        assert result[-1] == samples[-1]

    def test_two_points_are_endpoints(self):
        samples = _line(10)
        assert downsample(samples, 2) == [samples[0], samples[-1]]

    def test_one_point_is_first(self):
        samples = _line(10)
        assert downsample(samples, 1) == [samples[0]]

    def test_invalid_max_points(self):
        with pytest.raises(ValueError):
            downsample(_line(10), 0)

    def test_preserves_order_and_subset(self):
        samples = _line(500)

        result = downsample(samples, 40)

        timestamps = [s.timestamp_ms for s in result]
        assert timestamps == sorted(timestamps)
        assert len(set(timestamps)) == len(timestamps)
        assert all(s in samples for s in result)

    def test_keeps_sharp_turn(self):
        """The apex of an out-and-back leg should survive heavy reduction."""
        n = 1001
        north = np.concatenate([np.linspace(0, 1e-3, n // 2 + 1), np.linspace(1e-3, 0, n // 2 + 1)[1:]])
        samples = [
            Sample(timestamp_ms=i * 100, latitude=47.0 + north[i], longitude=8.0)
            for i in range(n)
        ]
        apex = samples[n // 2]

        result = downsample(samples, 3)

        assert result[1] == apex

    def test_keeps_altitude_spike(self):
        """A short climb in an otherwise level flight should be kept."""
        samples = _line(600)
        spike = 300
        samples[spike] = Sample(
            timestamp_ms=samples[spike].timestamp_ms,
            latitude=samples[spike].latitude,
            longitude=samples[spike].longitude,
            altitude_m=120.0,
            ground_speed_mps=5.0,
        )

        result = downsample(samples, 10)

        assert samples[spike] in result

    def test_missing_channels(self):
        """Samples without altitude or speed still downsample."""
        samples = [
            Sample(timestamp_ms=i * 1000, latitude=47.0 + (i % 7) * 1e-5, longitude=8.0 + i * 1e-5)
            for i in range(200)
        ]

        result = downsample(samples, 20)

        assert len(result) == 20
