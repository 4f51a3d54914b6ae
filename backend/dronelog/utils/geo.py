"""
Geodesy helpers.

Great-circle distances for flight statistics and a local east/north
projection used when comparing track shapes in meters.
"""

import numpy as np
from numpy.typing import ArrayLike, NDArray
from dataclasses import dataclass

EARTH_RADIUS_M = 6371000.0  # mean radius, used by haversine

# WGS84 ellipsoid constants
WGS84_A = 6378137.0              # Semi-major axis (meters)
WGS84_F = 1 / 298.257223563      # Flattening
WGS84_B = WGS84_A * (1 - WGS84_F)  # Semi-minor axis
WGS84_E2 = 1 - (WGS84_B**2 / WGS84_A**2)  # First eccentricity squared


@dataclass
class LocalProjection:
    """Horizontal positions relative to the first point."""
    east: NDArray[np.float64]    # meters
    north: NDArray[np.float64]   # meters
    origin_lat: float
    origin_lon: float


def haversine_distance(lat1: ArrayLike, lon1: ArrayLike, lat2: ArrayLike, lon2: ArrayLike):
    """
    Great-circle distance between points, in meters.

    Accepts scalars or equally shaped arrays. Identical points give exactly 0.
    """
    lat1_rad = np.radians(lat1)
    lat2_rad = np.radians(lat2)
    dlat = np.radians(np.subtract(lat2, lat1))
    dlon = np.radians(np.subtract(lon2, lon1))

    a = np.sin(dlat / 2)**2 + np.cos(lat1_rad) * np.cos(lat2_rad) * np.sin(dlon / 2)**2
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def path_distance(lat: NDArray[np.float64], lon: NDArray[np.float64]) -> float:
    """Sum of great-circle distances between consecutive points."""
    if len(lat) < 2:
        return 0.0
    legs = haversine_distance(lat[:-1], lon[:-1], lat[1:], lon[1:])
    return float(np.sum(legs))


def project_local(lat: ArrayLike, lon: ArrayLike) -> LocalProjection:
    """
    Project WGS84 positions onto the tangent plane at the first point.

    Points are placed on the ellipsoid surface, converted to Earth-centered
    coordinates and rotated into the origin's east/north axes.

    Args:
        lat: Latitude array in degrees
        lon: Longitude array in degrees

    Returns:
        LocalProjection with east/north arrays in meters and the origin
    """
    lat = np.asarray(lat, dtype=np.float64)
    lon = np.asarray(lon, dtype=np.float64)
    if len(lat) == 0:
        empty = np.zeros(0, dtype=np.float64)
        return LocalProjection(east=empty, north=empty, origin_lat=0.0, origin_lon=0.0)

    phi = np.radians(lat)
    lam = np.radians(lon)

    # Prime vertical radius of curvature
    n = WGS84_A / np.sqrt(1 - WGS84_E2 * np.sin(phi)**2)
    ecef = np.column_stack([
        n * np.cos(phi) * np.cos(lam),
        n * np.cos(phi) * np.sin(lam),
        n * (1 - WGS84_E2) * np.sin(phi),
    ])
    offsets = ecef - ecef[0]

    phi0, lam0 = phi[0], lam[0]
    east_axis = np.array([-np.sin(lam0), np.cos(lam0), 0.0])
    north_axis = np.array([
        -np.sin(phi0) * np.cos(lam0),
        -np.sin(phi0) * np.sin(lam0),
        np.cos(phi0),
    ])

    return LocalProjection(
        east=offsets @ east_axis,
        north=offsets @ north_axis,
        origin_lat=float(lat[0]),
        origin_lon=float(lon[0]),
    )
