"""
Tests for geospatial utilities
"""
import pytest

import sys
sys.path.insert(0, '.')

from dumpwatch.core.geo_utils import (
    BoundingBox,
    bounding_box_around,
    haversine_distance,
    is_within_radius,
)


class TestHaversineDistance:
    """Test suite for great-circle distance."""

    def test_distance_to_self_is_zero(self):
        """Test a point is zero meters from itself."""
        assert haversine_distance(3.8480, 11.5021, 3.8480, 11.5021) == 0.0

    def test_distance_is_symmetric(self):
        """Test distance does not depend on argument order."""
        pairs = [
            ((3.8480, 11.5021), (3.8481, 11.5022)),
            ((-22.5, -45.5), (-23.5, -46.5)),
            ((89.9, 0.0), (-89.9, 179.9)),
            ((0.0, -179.99), (0.0, 179.99)),
        ]
        for (lat1, lon1), (lat2, lon2) in pairs:
            assert haversine_distance(lat1, lon1, lat2, lon2) == haversine_distance(lat2, lon2, lat1, lon1)

    def test_one_degree_of_longitude_at_equator(self):
        """Test distance uses a 6 371 km sphere."""
        assert haversine_distance(0, 0, 0, 1) == pytest.approx(111194.93, rel=1e-6)

    def test_nearby_reports_are_about_fifteen_meters_apart(self):
        """Test the reference cluster distance."""
        distance = haversine_distance(3.8480, 11.5021, 3.8481, 11.5022)
        assert 15.0 < distance < 16.5

    def test_distance_is_deterministic(self):
        """Test repeated calls return identical values."""
        first = haversine_distance(48.8566, 2.3522, 48.8570, 2.3530)
        for _ in range(10):
            assert haversine_distance(48.8566, 2.3522, 48.8570, 2.3530) == first

    def test_antimeridian_crossing(self):
        """Test points on either side of the antimeridian are close."""
        assert haversine_distance(0.0, 179.9995, 0.0, -179.9995) < 150


class TestWithinRadius:
    """Test suite for radius membership."""

    def test_inside_radius(self):
        assert is_within_radius(3.8480, 11.5021, 3.8481, 11.5022, 100)

    def test_outside_radius(self):
        assert not is_within_radius(3.8480, 11.5021, 3.8525, 11.5021, 100)

    def test_boundary_is_inclusive(self):
        """Test a point exactly at the radius counts as inside."""
        distance = haversine_distance(10.0, 10.0, 10.0005, 10.0)
        assert is_within_radius(10.0, 10.0, 10.0005, 10.0, distance)


class TestBoundingBox:
    """Test suite for candidate prefilter boxes."""

    def test_box_contains_every_point_within_radius(self):
        """Test the box never excludes an in-radius point."""
        center_lat, center_lon, radius = 60.0, 25.0, 100.0
        box = bounding_box_around(center_lat, center_lon, radius)

        for dlat in range(-12, 13):
            for dlon in range(-25, 26):
                lat = center_lat + dlat * 0.0001
                lon = center_lon + dlon * 0.0001
                if is_within_radius(center_lat, center_lon, lat, lon, radius):
                    assert box.contains(lat, lon)

    def test_box_is_tight_enough_to_filter(self):
        """Test far points fall outside the box."""
        box = bounding_box_around(3.8480, 11.5021, 100)
        assert not box.contains(3.8525, 11.5021)
        assert not box.contains(3.8480, 11.5100)

    def test_box_near_pole_spans_all_longitudes(self):
        box = bounding_box_around(89.9995, 10.0, 100)
        assert box.west == -180.0
        assert box.east == 180.0
        assert box.north == 90.0

    def test_box_across_antimeridian_spans_all_longitudes(self):
        box = bounding_box_around(0.0, 179.9999, 100)
        assert box.contains(0.0, -179.9999)

    def test_contains(self):
        box = BoundingBox(west=-1, south=-1, east=1, north=1)
        assert box.contains(0, 0)
        assert not box.contains(2, 0)
        assert box.to_tuple() == (-1, -1, 1, 1)
