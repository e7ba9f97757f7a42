"""
Spatial indexing.

Modules:
- geometry: CRS transforms, validity repair, metre/degree envelopes
- geodesy: geodesic distances and lengths on WGS84
- spatial_index: STRtree-backed per-collection index
"""

from parcel_atlas.index.geodesy import geodesic_distance, geodesic_length, point_distance
from parcel_atlas.index.geometry import WEB_MERCATOR, WGS84
from parcel_atlas.index.spatial_index import IndexDiagnostic, SpatialIndex

__all__ = [
    "SpatialIndex",
    "IndexDiagnostic",
    "geodesic_distance",
    "geodesic_length",
    "point_distance",
    "WGS84",
    "WEB_MERCATOR",
]
