"""
Geofence evaluation - haversine distance and radius test
"""
from __future__ import annotations

import math
from typing import Optional

from ..common.validators import require_finite
from ..core.constants import EARTH_RADIUS_M
from .model import Coordinate, OfficeGeofence


def distance(a: Coordinate, b: Coordinate) -> float:
    """
    Great-circle distance between two coordinates using the haversine formula

    Returns:
        float: Distance in meters

    Raises:
        InvalidCoordinateError: If any coordinate is NaN or infinite
    """
    lat1 = require_finite(a.lat, "lat")
    lon1 = require_finite(a.lng, "lng")
    lat2 = require_finite(b.lat, "lat")
    lon2 = require_finite(b.lng, "lng")

    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    h = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) *
         math.sin(delta_lon / 2) ** 2)
    h = min(h, 1.0)
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_M * c


def is_within_radius(sample: Coordinate, geofence: OfficeGeofence, *, meters: Optional[float] = None) -> bool:
    """Inclusive radius test; pass ``meters`` when the distance is already known."""
    if meters is None:
        meters = distance(sample, geofence.center)
    return meters <= geofence.radius_m
