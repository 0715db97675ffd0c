"""Geospatial and calendar helpers for candidate search and scoring.

Pure functions, no I/O.  Distances are great-circle kilometres on a
spherical earth; bounding boxes use the flat approximation of 111 km per
degree of latitude, with longitude degrees widened by ``1 / cos(lat)``.
"""

from __future__ import annotations

import math
from datetime import date
from typing import NamedTuple

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 111.0

# Below this cosine the longitude span exceeds the whole globe anyway.
_MIN_COS_LATITUDE = 1e-6


class BoundingBox(NamedTuple):
    """Inclusive latitude/longitude ranges in degrees."""

    min_latitude: float
    max_latitude: float
    min_longitude: float
    max_longitude: float


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return the great-circle distance between two points in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def bounding_box(latitude: float, longitude: float, radius_km: float) -> BoundingBox:
    """Return the box of roughly ``radius_km`` around a point.

    Longitude ranges are not wrapped across the antimeridian; near the
    poles the longitude span saturates at the full [-180, 180] range.
    """
    lat_range = radius_km / KM_PER_DEGREE
    cos_lat = abs(math.cos(math.radians(latitude)))
    if cos_lat < _MIN_COS_LATITUDE:
        lng_range = 180.0
    else:
        lng_range = min(180.0, radius_km / (KM_PER_DEGREE * cos_lat))
    return BoundingBox(
        min_latitude=latitude - lat_range,
        max_latitude=latitude + lat_range,
        min_longitude=longitude - lng_range,
        max_longitude=longitude + lng_range,
    )


def day_difference(first: date, second: date) -> int:
    """Absolute number of whole days between two calendar dates."""
    return abs((first - second).days)
