"""
Geometry helpers shared by the spatial indexes.

CRS transforms (pyproj), validity repair of incoming geometries and
conversion of metre radii into search envelopes.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

from pyproj import CRS, Transformer
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import transform, unary_union
from shapely.validation import explain_validity, make_valid

logger = logging.getLogger(__name__)

WGS84 = "EPSG:4326"
WEB_MERCATOR = "EPSG:3857"

# Lower bounds on the ground length of one degree, so envelopes never under-cover
METERS_PER_DEGREE_LAT = 110_000.0
METERS_PER_DEGREE_LON_EQUATOR = 110_000.0

Bounds = Tuple[float, float, float, float]


def is_geographic(crs: str) -> bool:
    """Return True when the CRS uses angular (lat/lng) coordinates."""
    return CRS.from_user_input(crs).is_geographic


def make_transformer(src_crs: str, dst_crs: str) -> Optional[Transformer]:
    """Build a transformer between two CRS, or None when they are the same."""
    src = CRS.from_user_input(src_crs)
    dst = CRS.from_user_input(dst_crs)
    if src == dst:
        return None
    return Transformer.from_crs(src, dst, always_xy=True)


def project_geometry(geom: BaseGeometry, transformer: Optional[Transformer]) -> BaseGeometry:
    """Project a shapely geometry using a pyproj transformer (no-op when None)."""
    if transformer is None:
        return geom
    return transform(transformer.transform, geom)


@dataclass
class RepairOutcome:
    """Result of validating one incoming geometry."""
    geometry: Optional[BaseGeometry]
    action: str  # "ok", "repaired" or "dropped"
    reason: Optional[str] = None


def polygonal_part(geom: BaseGeometry) -> Optional[BaseGeometry]:
    """Keep only the polygonal members of a make_valid() result."""
    if isinstance(geom, (Polygon, MultiPolygon)):
        return geom
    polygons = []
    for part in getattr(geom, "geoms", []):
        if isinstance(part, Polygon):
            polygons.append(part)
        elif isinstance(part, MultiPolygon):
            polygons.extend(part.geoms)
    if not polygons:
        return None
    return unary_union(polygons)


def _has_finite_bounds(geom: BaseGeometry) -> bool:
    return all(math.isfinite(v) for v in geom.bounds)


def repair_geometry(geom: Optional[BaseGeometry]) -> RepairOutcome:
    """Validate a geometry, applying the standard polygon validity fix.

    Never raises: anything that cannot be used comes back as "dropped"
    with a reason for the build diagnostics.
    """
    if geom is None or geom.is_empty:
        return RepairOutcome(None, "dropped", "empty geometry")
    if not _has_finite_bounds(geom):
        return RepairOutcome(None, "dropped", "non-finite coordinates")

    geom_type = geom.geom_type

    if geom_type in ("Point", "MultiPoint"):
        return RepairOutcome(geom, "ok")

    if geom_type in ("LineString", "MultiLineString"):
        if geom.length == 0:
            return RepairOutcome(None, "dropped", "zero-length line")
        return RepairOutcome(geom, "ok")

    if geom_type in ("Polygon", "MultiPolygon"):
        if geom.is_valid:
            if geom.area == 0:
                return RepairOutcome(None, "dropped", "zero-area polygon")
            return RepairOutcome(geom, "ok")
        reason = explain_validity(geom)
        fixed = polygonal_part(make_valid(geom))
        if fixed is None or fixed.is_empty or fixed.area == 0:
            return RepairOutcome(None, "dropped", f"unrepairable polygon: {reason}")
        return RepairOutcome(fixed, "repaired", reason)

    return RepairOutcome(None, "dropped", f"unsupported geometry type {geom_type}")


def expand_bounds(bounds: Bounds, meters: float, geographic: bool = True) -> Bounds:
    """Grow a bounding box by a metre radius.

    Geographic boxes are grown by a conservative number of degrees so the
    result always covers every point within ``meters`` of the original box.
    """
    minx, miny, maxx, maxy = bounds
    if not geographic:
        return (minx - meters, miny - meters, maxx + meters, maxy + meters)

    dlat = meters / METERS_PER_DEGREE_LAT
    south = max(-90.0, miny - dlat)
    north = min(90.0, maxy + dlat)

    max_abs_lat = min(max(abs(south), abs(north)), 89.9)
    cos_lat = max(math.cos(math.radians(max_abs_lat)), 1e-6)
    dlon = meters / (METERS_PER_DEGREE_LON_EQUATOR * cos_lat)

    west = minx - dlon
    east = maxx + dlon
    if east - west >= 360.0:
        west, east = -180.0, 180.0
    return (west, south, east, north)


def bounds_cover(outer: Bounds, inner: Bounds) -> bool:
    """True if ``outer`` fully contains ``inner``."""
    return (
        outer[0] <= inner[0]
        and outer[1] <= inner[1]
        and outer[2] >= inner[2]
        and outer[3] >= inner[3]
    )
