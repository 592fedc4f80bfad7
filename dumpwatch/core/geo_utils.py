"""
DumpWatch - Geospatial Utilities
Great-circle distance and radius tests used to cluster dump reports.
"""

import math
from typing import Tuple
from dataclasses import dataclass

from dumpwatch.core.constants import EARTH_RADIUS_M, METERS_PER_DEGREE_LAT


@dataclass(frozen=True)
class BoundingBox:
    """Geographic bounding box."""
    west: float   # min longitude
    south: float  # min latitude
    east: float   # max longitude
    north: float  # max latitude

    def contains(self, latitude: float, longitude: float) -> bool:
        """Check if a coordinate is within the bounding box."""
        return (
            self.west <= longitude <= self.east and
            self.south <= latitude <= self.north
        )

    def to_tuple(self) -> Tuple[float, float, float, float]:
        return (self.west, self.south, self.east, self.north)


def haversine_distance(
    lat1: float, lon1: float,
    lat2: float, lon2: float
) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Args:
        lat1, lon1: First point coordinates in decimal degrees
        lat2, lon2: Second point coordinates in decimal degrees

    Returns:
        Distance in meters
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    # Haversine formula
    a = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def is_within_radius(
    lat1: float, lon1: float,
    lat2: float, lon2: float,
    radius_m: float
) -> bool:
    """Check whether two points are at most ``radius_m`` meters apart."""
    return haversine_distance(lat1, lon1, lat2, lon2) <= radius_m


def meters_to_degrees_lat(meters: float) -> float:
    """Convert meters to degrees of latitude."""
    return meters / METERS_PER_DEGREE_LAT


def meters_to_degrees_lon(meters: float, latitude: float) -> float:
    """Convert meters to degrees of longitude at a given latitude."""
    return meters / (METERS_PER_DEGREE_LAT * math.cos(math.radians(latitude)))


def bounding_box_around(
    latitude: float,
    longitude: float,
    radius_m: float
) -> BoundingBox:
    """
    Build a rectangle that contains every point within ``radius_m`` of a center.

    The box is padded by 1% so that it never excludes a point the exact
    haversine test would accept. When the circle reaches a pole or crosses
    the antimeridian the box spans every longitude.

    Args:
        latitude, longitude: Center coordinates in decimal degrees
        radius_m: Radius in meters

    Returns:
        BoundingBox suitable as a candidate prefilter
    """
    padded = radius_m * 1.01
    dlat = meters_to_degrees_lat(padded)
    south = max(-90.0, latitude - dlat)
    north = min(90.0, latitude + dlat)

    if south <= -90.0 or north >= 90.0:
        return BoundingBox(west=-180.0, south=south, east=180.0, north=north)

    # Widest longitude extent is at the latitude closest to a pole
    extreme_lat = max(abs(south), abs(north))
    dlon = meters_to_degrees_lon(padded, extreme_lat)
    west = longitude - dlon
    east = longitude + dlon

    if west < -180.0 or east > 180.0:
        return BoundingBox(west=-180.0, south=south, east=180.0, north=north)

    return BoundingBox(west=west, south=south, east=east, north=north)
