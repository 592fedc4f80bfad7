"""
DumpWatch - Core Utilities
Central configuration, logging, errors and geospatial helpers.
"""

from dumpwatch.core.config import settings
from dumpwatch.core.constants import (
    CONSENSUS_THRESHOLD,
    DEFAULT_CLUSTER_RADIUS_M,
    DEFAULT_REPUTATION_POINTS,
    EARTH_RADIUS_M,
)
from dumpwatch.core.geo_utils import (
    haversine_distance,
    is_within_radius,
    bounding_box_around,
)

__all__ = [
    "settings",
    "CONSENSUS_THRESHOLD",
    "DEFAULT_CLUSTER_RADIUS_M",
    "DEFAULT_REPUTATION_POINTS",
    "EARTH_RADIUS_M",
    "haversine_distance",
    "is_within_radius",
    "bounding_box_around",
]
