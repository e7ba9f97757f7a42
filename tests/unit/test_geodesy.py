"""
Unit tests for geodesic measurements and geometry helpers.
"""

import math

import pytest
from shapely.geometry import LineString, Point, Polygon, box

from parcel_atlas.index.geodesy import (
    geodesic_distance,
    geodesic_length,
    nearest_pair,
    point_distance,
    project_onto,
)
from parcel_atlas.index.geometry import (
    WEB_MERCATOR,
    WGS84,
    expand_bounds,
    make_transformer,
    project_geometry,
    repair_geometry,
)


class TestGeodesy:
    """Test distances on the WGS84 ellipsoid."""

    def test_point_distance_one_millidegree_latitude(self):
        """Test 0.001 deg of latitude near the equator is ~110.6 m."""
        assert point_distance(36.82, -1.29, 36.82, -1.291) == pytest.approx(110.57, abs=0.1)

    def test_point_distance_symmetric(self):
        """Test distance does not depend on argument order."""
        a = point_distance(36.82, -1.29, 36.83, -1.28)
        b = point_distance(36.83, -1.28, 36.82, -1.29)
        assert a == pytest.approx(b)

    def test_point_inside_polygon_is_zero(self):
        """Test a point inside a polygon is 0 m away."""
        assert geodesic_distance(Point(36.8202, -1.2895), box(36.82, -1.29, 36.8204, -1.2885)) == 0.0

    def test_point_to_polygon_edge(self):
        """Test distance to a polygon measures to its nearest edge."""
        dist = geodesic_distance(Point(36.8202, -1.29003), box(36.82, -1.29, 36.8204, -1.2885))
        assert dist == pytest.approx(3.32, abs=0.05)

    def test_point_to_line(self):
        """Test distance from a point to a line segment."""
        line = LineString([(36.8195, -1.290057), (36.8216, -1.290057)])
        assert geodesic_distance(Point(36.8202, -1.29003), line) == pytest.approx(2.99, abs=0.05)

    def test_line_length_along_equator(self):
        """Test 0.01 deg of longitude on the equator is ~1113.2 m."""
        assert geodesic_length(LineString([(0.0, 0.0), (0.01, 0.0)])) == pytest.approx(1113.19, abs=0.1)

    def test_nearest_pair_on_line(self):
        """Test closest points land on the line and the query point."""
        line = LineString([(36.8195, -1.290057), (36.8216, -1.290057)])
        on_line, on_point = nearest_pair(line, Point(36.8202, -1.29003))
        assert on_line.x == pytest.approx(36.8202)
        assert on_line.y == pytest.approx(-1.290057)
        assert on_point.x == pytest.approx(36.8202)

    def test_project_onto(self):
        """Test projection of a point onto a vertical line."""
        line = LineString([(36.82047, -1.2895), (36.82047, -1.2884)])
        projected = project_onto(line, Point(36.820436, -1.2888))
        assert projected.x == pytest.approx(36.82047)
        assert projected.y == pytest.approx(-1.2888)


class TestGeometryHelpers:
    """Test CRS transforms, repair and envelopes."""

    def test_same_crs_has_no_transformer(self):
        """Test identical CRS produce no transformer."""
        assert make_transformer(WGS84, "epsg:4326") is None

    def test_project_to_web_mercator_and_back(self):
        """Test a round trip through EPSG:3857 preserves coordinates."""
        to_merc = make_transformer(WGS84, WEB_MERCATOR)
        to_geo = make_transformer(WEB_MERCATOR, WGS84)
        point = Point(36.8202, -1.2895)
        projected = project_geometry(point, to_merc)
        assert abs(projected.x) > 1000
        back = project_geometry(projected, to_geo)
        assert back.x == pytest.approx(36.8202)
        assert back.y == pytest.approx(-1.2895)

    def test_repair_valid_polygon(self):
        """Test valid polygons pass unchanged."""
        outcome = repair_geometry(box(0, 0, 1, 1))
        assert outcome.action == "ok"
        assert outcome.geometry.equals(box(0, 0, 1, 1))

    def test_repair_bowtie(self):
        """Test self-intersecting polygons are repaired into polygonal parts."""
        bowtie = Polygon([(0, 0), (1, 1), (1, 0), (0, 1)])
        outcome = repair_geometry(bowtie)
        assert outcome.action == "repaired"
        assert outcome.geometry.is_valid
        assert outcome.geometry.area > 0
        assert outcome.reason

    def test_drop_zero_length_line(self):
        """Test zero-length lines are dropped."""
        outcome = repair_geometry(LineString([(1, 1), (1, 1)]))
        assert outcome.action == "dropped"
        assert outcome.geometry is None

    def test_drop_empty_geometry(self):
        """Test empty and missing geometries are dropped."""
        assert repair_geometry(None).action == "dropped"
        assert repair_geometry(Polygon()).action == "dropped"

    def test_drop_non_finite_point(self):
        """Test points with non-finite coordinates are dropped."""
        assert repair_geometry(Point(math.inf, 0)).action == "dropped"

    def test_expand_bounds_covers_radius(self):
        """Test geographic expansion covers the requested metres."""
        bounds = expand_bounds((36.82, -1.29, 36.82, -1.29), 100.0)
        assert point_distance(36.82, -1.29, 36.82, bounds[1]) >= 100.0
        assert point_distance(36.82, -1.29, bounds[0], -1.29) >= 100.0

    def test_expand_bounds_planar(self):
        """Test projected expansion adds the radius in CRS units."""
        assert expand_bounds((0, 0, 10, 10), 5, geographic=False) == (-5, -5, 15, 15)
