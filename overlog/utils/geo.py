"""
Geodesy utilities.

Great-circle distance, bearing and forward projection on a spherical Earth,
a local equirectangular tangent plane, and the unit conversions used by the
telemetry model and the overlay renderer.

None of these functions raise: degenerate inputs (identical points, zero
elapsed time) produce finite, documented results.
"""

import math
from typing import Union

import numpy as np
from numpy.typing import ArrayLike, NDArray


EARTH_RADIUS_M = 6371000.0  # Earth's mean radius in meters

MS_TO_KMH = 3.6
MS_TO_MPH = 2.23694


def haversine_distance(
    lat1: ArrayLike,
    lon1: ArrayLike,
    lat2: ArrayLike,
    lon2: ArrayLike,
) -> Union[float, NDArray[np.float64]]:
    """
    Calculate great-circle distance between two points.

    Accepts scalars or equally shaped arrays. Scalars return a float.

    Args:
        lat1, lon1: First point coordinates in degrees
        lat2, lon2: Second point coordinates in degrees

    Returns:
        Distance in meters
    """
    lat1_rad = np.radians(lat1)
    lat2_rad = np.radians(lat2)
    dlat = np.radians(np.subtract(lat2, lat1))
    dlon = np.radians(np.subtract(lon2, lon1))

    a = np.sin(dlat / 2)**2 + np.cos(lat1_rad) * np.cos(lat2_rad) * np.sin(dlon / 2)**2
    # Rounding can push `a` a hair outside [0, 1] for antipodal points
    c = 2 * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))

    distance = EARTH_RADIUS_M * c
    if np.ndim(distance) == 0:
        return float(distance)
    return distance


def bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Initial bearing from point 1 to point 2.

    Returns:
        Compass bearing in degrees, normalized to [0, 360)
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlon = math.radians(lon2 - lon1)

    y = math.sin(dlon) * math.cos(lat2_rad)
    x = math.cos(lat1_rad) * math.sin(lat2_rad) - math.sin(lat1_rad) * math.cos(lat2_rad) * math.cos(dlon)

    return normalize_angle(math.degrees(math.atan2(y, x)))


def destination(lat: float, lon: float, bearing_deg: float, distance_m: float) -> tuple[float, float]:
    """
    Project a point `distance_m` meters along `bearing_deg` from (lat, lon).

    Returns:
        Tuple of (lat, lon) in degrees
    """
    lat_rad = math.radians(lat)
    lon_rad = math.radians(lon)
    brg = math.radians(bearing_deg)
    angular = distance_m / EARTH_RADIUS_M

    lat2 = math.asin(
        math.sin(lat_rad) * math.cos(angular)
        + math.cos(lat_rad) * math.sin(angular) * math.cos(brg)
    )
    lon2 = lon_rad + math.atan2(
        math.sin(brg) * math.sin(angular) * math.cos(lat_rad),
        math.cos(angular) - math.sin(lat_rad) * math.sin(lat2),
    )

    return math.degrees(lat2), math.degrees(lon2)


def wgs84_to_local(lat: float, lon: float, ref_lat: float, ref_lon: float) -> tuple[float, float]:
    """
    Convert WGS84 coordinates to a local flat plane around a reference point.

    Equirectangular approximation: only valid for distances where the
    flat-Earth assumption holds (a race track, not a country).

    Returns:
        Tuple of (x, y) in meters, X east and Y north of the reference
    """
    ref_lat_rad = math.radians(ref_lat)
    x = math.radians(lon - ref_lon) * EARTH_RADIUS_M * math.cos(ref_lat_rad)
    y = math.radians(lat - ref_lat) * EARTH_RADIUS_M
    return x, y


def local_to_wgs84(x: float, y: float, ref_lat: float, ref_lon: float) -> tuple[float, float]:
    """Inverse of :func:`wgs84_to_local` for the same reference point."""
    ref_lat_rad = math.radians(ref_lat)
    lat = ref_lat + math.degrees(y / EARTH_RADIUS_M)
    lon = ref_lon + math.degrees(x / (EARTH_RADIUS_M * math.cos(ref_lat_rad)))
    return lat, lon


def ms_to_kmh(speed_ms: float) -> float:
    return speed_ms * MS_TO_KMH


def kmh_to_ms(speed_kmh: float) -> float:
    return speed_kmh / MS_TO_KMH


def ms_to_mph(speed_ms: float) -> float:
    return speed_ms * MS_TO_MPH


def mph_to_ms(speed_mph: float) -> float:
    return speed_mph / MS_TO_MPH


def degrees_to_radians(degrees: float) -> float:
    return degrees * math.pi / 180.0


def radians_to_degrees(radians: float) -> float:
    return radians * 180.0 / math.pi


def normalize_angle(angle: float) -> float:
    """Wrap an angle in degrees into [0, 360)."""
    normalized = angle % 360.0
    # -1e-17 % 360 rounds up to 360.0
    if normalized >= 360.0:
        normalized = 0.0
    return normalized


def g_force_magnitude(gx: float, gy: float, gz: float) -> float:
    """Total G-force magnitude from the three accelerometer axes."""
    return math.sqrt(gx * gx + gy * gy + gz * gz)


def acceleration(speed1: float, speed2: float, dt: float) -> float:
    """
    Average acceleration between two speed samples.

    Zero elapsed time saturates to 0 rather than dividing by zero.
    """
    if dt == 0:
        return 0.0
    return (speed2 - speed1) / dt
