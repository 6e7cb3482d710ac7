from __future__ import annotations

from dataclasses import dataclass

from ..common.validators import require_finite, require_latitude, require_longitude
from ..core.exceptions import ValidationError


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 latitude/longitude pair in degrees."""

    lat: float
    lng: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "lat", require_latitude(self.lat, "lat"))
        object.__setattr__(self, "lng", require_longitude(self.lng, "lng"))


@dataclass(frozen=True)
class OfficeGeofence:
    """Circular boundary around the office, injected from configuration."""

    center: Coordinate
    radius_m: float

    def __post_init__(self) -> None:
        radius = require_finite(self.radius_m, "radius_m")
        if radius < 0:
            raise ValidationError("radius_m must not be negative")
        object.__setattr__(self, "radius_m", radius)

    @classmethod
    def from_settings(cls, *, lat: float, lng: float, radius_m: float) -> "OfficeGeofence":
        return cls(center=Coordinate(lat=lat, lng=lng), radius_m=radius_m)
