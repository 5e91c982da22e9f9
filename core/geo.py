"""
core/geo.py -- Great-circle distance and the geofence membership predicate.

Pure functions over plain floats; no I/O, no state. Everything that decides
"is this user inside their allowed area" funnels through is_within_area().

Distance uses the Haversine formula on a spherical Earth (R = 6,371,000 m).
Inputs outside the valid latitude/longitude ranges produce a mathematically
defined but physically meaningless number -- callers that accept coordinates
from the outside world validate them with Coordinate.validate() first.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from core.errors import ValidationError

EARTH_RADIUS_METERS = 6_371_000.0


def distance_meters(lat_a: float, lon_a: float, lat_b: float, lon_b: float) -> float:
    """Return the great-circle distance in meters between two points given in degrees."""
    phi_a = math.radians(lat_a)
    phi_b = math.radians(lat_b)
    d_phi = math.radians(lat_b - lat_a)
    d_lambda = math.radians(lon_b - lon_a)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi_a) * math.cos(phi_b) * math.sin(d_lambda / 2) ** 2
    # Rounding can push a a hair above 1.0 for antipodal points.
    a = min(1.0, a)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def is_within_area(
    current_lat: float,
    current_lon: float,
    center_lat: float,
    center_lon: float,
    radius_meters: float,
) -> bool:
    """Return True if the current point lies inside the circle. The boundary counts as inside."""
    return distance_meters(current_lat, current_lon, center_lat, center_lon) <= radius_meters


@dataclass(frozen=True)
class Coordinate:
    """A (latitude, longitude) pair in degrees. Passed by value, never persisted on its own."""

    latitude: float
    longitude: float

    @classmethod
    def from_parts(cls, latitude: float | None, longitude: float | None) -> Coordinate | None:
        """Build a Coordinate only when both parts are present.

        Exactly one part present is treated the same as neither -- a half
        coordinate carries no usable location.
        """
        if latitude is None or longitude is None:
            return None
        return cls(float(latitude), float(longitude))

    def validate(self) -> Coordinate:
        """Raise ValidationError unless latitude is in [-90, 90] and longitude in [-180, 180]."""
        if not (math.isfinite(self.latitude) and math.isfinite(self.longitude)):
            raise ValidationError("Latitude and longitude must be finite numbers.")
        if not -90.0 <= self.latitude <= 90.0:
            raise ValidationError("Latitude must be between -90 and 90 degrees.")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValidationError("Longitude must be between -180 and 180 degrees.")
        return self

    @property
    def in_range(self) -> bool:
        try:
            self.validate()
        except ValidationError:
            return False
        return True

    def distance_to(self, other: Coordinate) -> float:
        return distance_meters(self.latitude, self.longitude, other.latitude, other.longitude)
