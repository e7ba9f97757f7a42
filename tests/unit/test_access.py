"""
Unit tests for road class quality and mode accessibility.
"""

import pytest

from parcel_atlas.models import TransportMode
from parcel_atlas.routing.access import RoadAccess


class TestRoadAccess:
    """Test road class tables."""

    @pytest.mark.parametrize("fclass,expected", [
        ("motorway", 10),
        ("primary", 8),
        ("Residential", 5),
        ("footway", 2),
        ("made_up", 4),
        ("", 4),
    ])
    def test_get_quality(self, fclass, expected):
        """Test class quality with case folding and the default."""
        assert RoadAccess.get_quality(fclass) == expected

    def test_motorway_closed_to_walking(self):
        """Test motorways only admit motor vehicles."""
        assert RoadAccess.allows("motorway", TransportMode.DRIVING)
        assert RoadAccess.allows("motorway", TransportMode.MOTORCYCLE)
        assert not RoadAccess.allows("motorway", TransportMode.WALKING)
        assert not RoadAccess.allows("motorway", TransportMode.CYCLING)

    def test_footway_walking_only(self):
        """Test footways only admit walking."""
        assert RoadAccess.allows("footway", TransportMode.WALKING)
        assert not RoadAccess.allows("footway", TransportMode.DRIVING)

    def test_unknown_class_open_to_all(self):
        """Test unlisted classes admit every mode."""
        assert all(RoadAccess.allows("made_up", mode) for mode in TransportMode)

    def test_road_quality_distance_penalty(self):
        """Test quality drops by one point per 20 m."""
        assert RoadAccess.road_quality("primary", 40.0, TransportMode.DRIVING) == pytest.approx(6.0)

    def test_road_quality_penalty_capped(self):
        """Test the distance penalty never exceeds the cap."""
        assert RoadAccess.road_quality("primary", 1000.0, TransportMode.DRIVING) == pytest.approx(3.0)
        assert RoadAccess.road_quality("primary", 1000.0, TransportMode.DRIVING, max_penalty=2.0) == pytest.approx(6.0)

    def test_road_quality_incompatible(self):
        """Test incompatible roads score zero."""
        assert RoadAccess.road_quality("footway", 0.0, TransportMode.DRIVING) == 0.0

    def test_access_quality_takes_best(self):
        """Test the best road counts."""
        roads = [("footway", 1.0), ("residential", 20.0), ("primary", 100.0)]
        assert RoadAccess.access_quality(roads, TransportMode.DRIVING) == pytest.approx(4.0)
        assert RoadAccess.access_quality([], TransportMode.DRIVING) == 0.0

    def test_is_accessible(self):
        """Test accessibility fails only when every class excludes the mode."""
        assert not RoadAccess.is_accessible(["footway", "steps"], TransportMode.DRIVING)
        assert RoadAccess.is_accessible(["footway", "service"], TransportMode.DRIVING)
        assert RoadAccess.is_accessible([], TransportMode.DRIVING)
