"""
DumpWatch - Constants and Reference Data
Static values used throughout the application.
"""

from typing import Tuple

# =============================================================================
# GEOGRAPHY
# =============================================================================

# Mean Earth radius used by the haversine formula
EARTH_RADIUS_M: float = 6_371_000.0

LATITUDE_RANGE: Tuple[float, float] = (-90.0, 90.0)
LONGITUDE_RANGE: Tuple[float, float] = (-180.0, 180.0)

# Meters per degree of latitude (spherical approximation)
METERS_PER_DEGREE_LAT: float = 111_320.0

# =============================================================================
# CONSENSUS
# =============================================================================

# Distinct verifiers needed before a report becomes VERIFIED
CONSENSUS_THRESHOLD: int = 2

DEFAULT_CLUSTER_RADIUS_M: float = 100.0
DEFAULT_REPUTATION_POINTS: int = 10

# =============================================================================
# PHOTOS
# =============================================================================

MIN_PHOTO_BASE64_LENGTH: int = 100
MAX_DESCRIPTION_LENGTH: int = 2000
