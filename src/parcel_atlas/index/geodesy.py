"""
Geodesic measurements on the WGS84 ellipsoid.

All functions take shapely geometries in EPSG:4326 (x=lng, y=lat) and
return metres.
"""

import math
from typing import Tuple

from pyproj import Geod
from shapely import affinity
from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry
from shapely.ops import nearest_points

_GEOD = Geod(ellps="WGS84")


def point_distance(lng1: float, lat1: float, lng2: float, lat2: float) -> float:
    """Ellipsoidal distance in meters between two lon/lat positions."""
    _, _, dist = _GEOD.inv(lng1, lat1, lng2, lat2)
    return abs(float(dist))


def nearest_pair(a: BaseGeometry, b: BaseGeometry) -> Tuple[Point, Point]:
    """Closest points between two lon/lat geometries.

    Longitudes are scaled by cos(latitude) around the pair's mean latitude
    before the search so that "closest" matches ground distance, then the
    points are mapped back to lon/lat.
    """
    lat0 = (a.centroid.y + b.centroid.y) / 2.0
    xfact = max(math.cos(math.radians(lat0)), 1e-6)

    scaled_a = affinity.scale(a, xfact=xfact, yfact=1.0, origin=(0, 0))
    scaled_b = affinity.scale(b, xfact=xfact, yfact=1.0, origin=(0, 0))
    pa, pb = nearest_points(scaled_a, scaled_b)

    return Point(pa.x / xfact, pa.y), Point(pb.x / xfact, pb.y)


def geodesic_distance(a: BaseGeometry, b: BaseGeometry) -> float:
    """Distance in meters between two lon/lat geometries.

    Point-to-point uses the ellipsoidal inverse problem directly; anything
    else measures between the nearest boundary points. Touching or
    overlapping geometries are 0 m apart.
    """
    if a.geom_type == "Point" and b.geom_type == "Point":
        return point_distance(a.x, a.y, b.x, b.y)
    if a.intersects(b):
        return 0.0
    pa, pb = nearest_pair(a, b)
    return point_distance(pa.x, pa.y, pb.x, pb.y)


def project_onto(line: BaseGeometry, point: BaseGeometry) -> Point:
    """Point on ``line`` closest to ``point``."""
    on_line, _ = nearest_pair(line, point)
    return on_line


def geodesic_length(geom: BaseGeometry) -> float:
    """Length in meters of a lon/lat line geometry."""
    return abs(float(_GEOD.geometry_length(geom)))
