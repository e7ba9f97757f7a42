"""
Context resolver.

Composes spatial index queries into the spatial context of a parcel:
its centroid, the entry points around it, the named roads near each
entry point and the administrative block it falls in.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry

from parcel_atlas.config_manager import EngineSettings
from parcel_atlas.errors import InvalidInputError, NotFoundError
from parcel_atlas.models import AdministrativeBlock, Coordinate, EntryPoint, Parcel
from parcel_atlas.store.snapshot import Snapshot, SnapshotHandle

logger = logging.getLogger(__name__)

Destination = Union[str, int, Parcel]


@dataclass
class NearestRoad:
    """A named road near an entry point."""
    gid: int
    name: Optional[str]
    fclass: str
    ref: Optional[str]
    distance_m: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gid": self.gid,
            "name": self.name,
            "fclass": self.fclass,
            "ref": self.ref,
            "distance": round(self.distance_m, 2),
        }


@dataclass
class ContextEntryPoint:
    """Entry point of a parcel together with its nearby roads."""
    entry_point: EntryPoint
    coordinates: Coordinate
    distance_to_parcel_m: float
    nearest_roads: List[NearestRoad] = field(default_factory=list)

    @property
    def gid(self) -> int:
        return self.entry_point.gid

    @property
    def label(self) -> int:
        return self.entry_point.label

    @property
    def access_road(self) -> Optional[NearestRoad]:
        return self.nearest_roads[0] if self.nearest_roads else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gid": self.gid,
            "label": self.label,
            "coordinates": self.coordinates.to_dict(),
            "distance_to_parcel": round(self.distance_to_parcel_m, 2),
            "nearest_roads": [road.to_dict() for road in self.nearest_roads],
        }


@dataclass
class ParcelContext:
    """Resolved spatial context of one parcel.

    ``geometry`` is the parcel polygon in EPSG:4326. ``admin_block_match``
    is "intersects" when the block overlaps the parcel and "nearest" when
    it was picked by centroid distance.
    """
    parcel: Parcel
    geometry: BaseGeometry
    centroid: Coordinate
    entry_points: List[ContextEntryPoint]
    admin_block: Optional[AdministrativeBlock] = None
    admin_block_match: Optional[str] = None
    admin_block_distance_m: Optional[float] = None
    snapshot_version: int = 0

    def entry_point_by_label(self, label: int) -> Optional[ContextEntryPoint]:
        for candidate in self.entry_points:
            if candidate.label == label:
                return candidate
        return None

    def to_dict(self) -> Dict[str, Any]:
        admin = None
        if self.admin_block is not None:
            admin = self.admin_block.summary()
            admin["match"] = self.admin_block_match
            admin["distance"] = round(self.admin_block_distance_m or 0.0, 2)

        parcel = self.parcel.summary()
        parcel["geometry"] = mapping(self.geometry)
        return {
            "parcel": parcel,
            "centroid": self.centroid.to_dict(),
            "entry_points": [ep.to_dict() for ep in self.entry_points],
            "administrative_block": admin,
        }


class ContextResolver:
    """Resolves parcels and their spatial context against the active snapshot."""

    def __init__(self, handle: SnapshotHandle, settings: Optional[EngineSettings] = None):
        self.handle = handle
        self.settings = settings or EngineSettings()

    def resolve_by_point(self, lat: Any, lng: Any) -> ParcelContext:
        """Context of the parcel at a location.

        The point must be inside the parcel or within the configured
        boundary tolerance (1 m by default). No nearest-parcel fallback.

        Raises:
            InvalidInputError: For malformed coordinates
            NotFoundError: If no parcel is at the location
        """
        coordinate = Coordinate.parse(lat, lng)
        snapshot = self.handle.current()
        gid = self.locate_parcel(snapshot, coordinate)
        if gid is None:
            raise NotFoundError(f"No parcel found at ({coordinate.lat}, {coordinate.lng})")
        return self.build_context(snapshot, gid)

    def resolve_by_lr_no(self, lr_no: Any, snapshot: Optional[Snapshot] = None) -> ParcelContext:
        if not isinstance(lr_no, str) or not lr_no.strip():
            raise InvalidInputError("Registration code (lr_no) must be a non-empty string")
        snapshot = snapshot or self.handle.current()
        gid = snapshot.parcel_gid(lr_no.strip())
        if gid is None:
            raise NotFoundError(f"Parcel {lr_no} not found")
        return self.build_context(snapshot, gid)

    def resolve_by_id(self, gid: Any, snapshot: Optional[Snapshot] = None) -> ParcelContext:
        if isinstance(gid, bool) or not isinstance(gid, int):
            raise InvalidInputError(f"Parcel id must be an integer, got {gid!r}")
        snapshot = snapshot or self.handle.current()
        if gid not in snapshot.parcels:
            raise NotFoundError(f"Parcel {gid} not found")
        return self.build_context(snapshot, gid)

    def resolve(self, destination: Destination, snapshot: Optional[Snapshot] = None) -> ParcelContext:
        """Resolve a destination given as registration code, parcel id or Parcel."""
        snapshot = snapshot or self.handle.current()
        if isinstance(destination, Parcel):
            return self.resolve_by_id(destination.gid, snapshot)
        if isinstance(destination, str):
            return self.resolve_by_lr_no(destination, snapshot)
        if isinstance(destination, int) and not isinstance(destination, bool):
            return self.resolve_by_id(destination, snapshot)
        raise InvalidInputError(f"Cannot resolve destination {destination!r}")

    def locate_parcel(self, snapshot: Snapshot, coordinate: Coordinate) -> Optional[int]:
        """Parcel id covering a coordinate, allowing the boundary tolerance."""
        point = coordinate.to_point()
        gid = snapshot.parcel_index.containing(point)
        if gid is not None:
            return gid
        hits = snapshot.parcel_index.nearest(
            point, k=1, max_distance=self.settings.parcel_point_tolerance_m
        )
        return hits[0][0] if hits else None

    def nearest_roads(self, snapshot: Snapshot, geometry: BaseGeometry) -> List[NearestRoad]:
        """Named roads near a geometry, nearest first."""
        hits = snapshot.road_index.nearest(
            geometry,
            k=self.settings.max_roads_per_entry_point,
            max_distance=self.settings.road_search_radius_m,
            where=lambda gid: snapshot.roads[gid].is_named,
        )
        roads = []
        for gid, dist in hits:
            road = snapshot.roads[gid]
            roads.append(NearestRoad(gid, road.name, road.fclass, road.ref, dist))
        return roads

    def _entry_points(self, snapshot: Snapshot, parcel_geom: BaseGeometry) -> List[ContextEntryPoint]:
        hits = snapshot.entry_point_index.nearest(
            parcel_geom, k=None, max_distance=self.settings.entry_point_radius_m
        )
        results = []
        for gid, dist in hits:
            point = snapshot.entry_point_index.geometry(gid).centroid
            results.append(ContextEntryPoint(
                entry_point=snapshot.entry_points[gid],
                coordinates=Coordinate(lat=point.y, lng=point.x),
                distance_to_parcel_m=dist,
                nearest_roads=self.nearest_roads(snapshot, point),
            ))
        return results

    def _admin_block(
        self, snapshot: Snapshot, parcel_geom: BaseGeometry, centroid: BaseGeometry
    ) -> Tuple[Optional[AdministrativeBlock], Optional[str], Optional[float]]:
        intersecting = snapshot.admin_index.intersects(parcel_geom)
        if intersecting:
            return snapshot.admin_blocks[intersecting[0]], "intersects", 0.0

        nearest = snapshot.admin_index.nearest(centroid, k=1)
        if nearest:
            gid, dist = nearest[0]
            return snapshot.admin_blocks[gid], "nearest", dist

        return None, None, None

    def build_context(self, snapshot: Snapshot, gid: int) -> ParcelContext:
        """Assemble the full context of one parcel from a snapshot."""
        parcel = snapshot.parcels[gid]
        geometry = snapshot.parcel_index.geometry(gid)
        centroid = geometry.centroid

        entry_points = self._entry_points(snapshot, geometry)
        admin_block, match, admin_distance = self._admin_block(snapshot, geometry, centroid)

        logger.debug(
            f"Context for parcel {parcel.lr_no}: {len(entry_points)} entry points, "
            f"admin block {admin_block.gid if admin_block else None} ({match})"
        )
        return ParcelContext(
            parcel=parcel,
            geometry=geometry,
            centroid=Coordinate(lat=centroid.y, lng=centroid.x),
            entry_points=entry_points,
            admin_block=admin_block,
            admin_block_match=match,
            admin_block_distance_m=admin_distance,
            snapshot_version=snapshot.version,
        )
