"""
Per-collection spatial index.

Wraps a shapely STRtree over one geometry collection and answers the
bounding-box, nearest-neighbour, containment and intersection queries
the resolver, tile encoder and routing engine are built from.
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from pyproj.exceptions import CRSError
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry
from shapely.strtree import STRtree

from parcel_atlas.errors import IndexBuildError, InvalidInputError
from parcel_atlas.index.geodesy import geodesic_distance
from parcel_atlas.index.geometry import (
    WGS84,
    Bounds,
    bounds_cover,
    expand_bounds,
    is_geographic,
    make_transformer,
    project_geometry,
    repair_geometry,
)

logger = logging.getLogger(__name__)

# First search radius (meters, or CRS units for projected indexes) of an unbounded nearest query
INITIAL_SEARCH_RADIUS = 250.0
SEARCH_RADIUS_GROWTH = 4.0


@dataclass
class IndexDiagnostic:
    """A geometry that was repaired or dropped while building an index."""
    collection: str
    feature_id: Any
    action: str
    reason: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SpatialIndex:
    """Bounding-box tree over one collection of (id, geometry) pairs.

    Geometries are transformed from ``source_crs`` into ``crs`` while the
    index is built. Distances are geodesic meters when ``crs`` is
    geographic and planar CRS units otherwise.

    Results are always ordered by distance and then id, so equal distances
    never reorder between calls.
    """

    def __init__(
        self,
        name: str,
        entries: Iterable[Tuple[int, Optional[BaseGeometry]]],
        crs: str = WGS84,
        source_crs: Optional[str] = None,
    ):
        self.name = name
        self.crs = crs
        self.diagnostics: List[IndexDiagnostic] = []

        try:
            self.geographic = is_geographic(crs)
            transformer = make_transformer(source_crs or crs, crs)
        except CRSError as e:
            raise IndexBuildError(f"{name}: invalid CRS ({source_crs} -> {crs}): {e}") from e

        ids: List[int] = []
        geoms: List[BaseGeometry] = []
        seen = set()
        total = 0

        for feature_id, geom in entries:
            total += 1
            if feature_id in seen:
                self._diagnose(feature_id, "dropped", "duplicate id")
                continue

            if geom is not None and not geom.is_empty:
                try:
                    geom = project_geometry(geom, transformer)
                except Exception as e:
                    self._diagnose(feature_id, "dropped", f"transform failed: {e}")
                    continue

            outcome = repair_geometry(geom)
            if outcome.action != "ok":
                self._diagnose(feature_id, outcome.action, outcome.reason)
            if outcome.geometry is None:
                continue

            seen.add(feature_id)
            ids.append(feature_id)
            geoms.append(outcome.geometry)

        if total and not ids:
            raise IndexBuildError(f"{name}: none of the {total} features could be indexed")

        self._ids = ids
        self._geoms = geoms
        self._positions = {feature_id: i for i, feature_id in enumerate(ids)}
        self._tree = STRtree(geoms) if geoms else None
        self.bounds = self._total_bounds(geoms)

        logger.info(
            f"Indexed {len(ids)} {name} features in {crs} "
            f"({len(self.diagnostics)} repaired or dropped)"
        )

    def _diagnose(self, feature_id: Any, action: str, reason: Optional[str]) -> None:
        logger.warning(f"{self.name} feature {feature_id} {action}: {reason}")
        self.diagnostics.append(IndexDiagnostic(self.name, feature_id, action, reason))

    @staticmethod
    def _total_bounds(geoms: Sequence[BaseGeometry]) -> Optional[Bounds]:
        if not geoms:
            return None
        all_bounds = [g.bounds for g in geoms]
        return (
            min(b[0] for b in all_bounds),
            min(b[1] for b in all_bounds),
            max(b[2] for b in all_bounds),
            max(b[3] for b in all_bounds),
        )

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, feature_id: Any) -> bool:
        return feature_id in self._positions

    def ids(self) -> List[int]:
        return list(self._ids)

    def items(self) -> Iterator[Tuple[int, BaseGeometry]]:
        return zip(self._ids, self._geoms)

    def geometry(self, feature_id: int) -> BaseGeometry:
        """Indexed geometry (in the index CRS) for an id."""
        return self._geoms[self._positions[feature_id]]

    def distance(self, a: BaseGeometry, b: BaseGeometry) -> float:
        """Distance between two geometries expressed in this index's CRS."""
        if self.geographic:
            return geodesic_distance(a, b)
        return float(a.distance(b))

    def query_bbox(self, envelope: Union[BaseGeometry, Bounds]) -> List[int]:
        """Ids whose bounding box intersects the envelope (unrefined candidates)."""
        if self._tree is None:
            return []
        if not isinstance(envelope, BaseGeometry):
            envelope = box(*envelope)
        return sorted(self._ids[i] for i in self._tree.query(envelope))

    def _candidate_positions(self, bounds: Bounds) -> List[int]:
        if self._tree is None:
            return []
        return [int(i) for i in self._tree.query(box(*bounds))]

    def _rank(
        self,
        geometry: BaseGeometry,
        positions: Iterable[int],
        max_distance: Optional[float],
        where: Optional[Callable[[int], bool]],
    ) -> List[Tuple[int, float]]:
        results = []
        for pos in positions:
            feature_id = self._ids[pos]
            if where is not None and not where(feature_id):
                continue
            try:
                dist = self.distance(geometry, self._geoms[pos])
            except Exception as e:
                logger.debug(f"{self.name}: distance to {feature_id} failed: {e}")
                continue
            if not math.isfinite(dist):
                continue
            if max_distance is not None and dist > max_distance:
                continue
            results.append((feature_id, dist))

        results.sort(key=lambda r: (r[1], r[0]))
        return results

    def nearest(
        self,
        geometry: BaseGeometry,
        k: Optional[int] = 1,
        max_distance: Optional[float] = None,
        where: Optional[Callable[[int], bool]] = None,
    ) -> List[Tuple[int, float]]:
        """Nearest entries to a geometry as (id, distance) pairs.

        Args:
            geometry: Query geometry in the index CRS
            k: Maximum number of results (None for all within max_distance)
            max_distance: Exclude entries farther than this
            where: Optional id predicate applied before measuring

        Returns:
            Pairs ordered by ascending distance, ties by ascending id
        """
        if max_distance is not None and max_distance < 0:
            raise InvalidInputError(f"max_distance must be non-negative, got {max_distance}")
        if k is not None and k < 1:
            return []
        if self._tree is None or geometry is None or geometry.is_empty:
            return []

        if max_distance is not None:
            bounds = expand_bounds(geometry.bounds, max_distance, self.geographic)
            ranked = self._rank(geometry, self._candidate_positions(bounds), max_distance, where)
            return ranked if k is None else ranked[:k]

        if k is None:
            return self._rank(geometry, range(len(self._ids)), None, where)

        # Grow the search window until k hits are provably the nearest ones
        radius = INITIAL_SEARCH_RADIUS
        while True:
            bounds = expand_bounds(geometry.bounds, radius, self.geographic)
            exhaustive = bounds_cover(bounds, self.bounds)
            ranked = self._rank(geometry, self._candidate_positions(bounds), None, where)
            within = [r for r in ranked if r[1] <= radius]
            if len(within) >= k:
                return within[:k]
            if exhaustive:
                return ranked[:k]
            radius *= SEARCH_RADIUS_GROWTH

    def containing(self, point: BaseGeometry) -> Optional[int]:
        """Lowest id whose geometry covers the point (boundary included)."""
        matches = []
        for pos in self._candidate_positions(point.bounds):
            try:
                if self._geoms[pos].covers(point):
                    matches.append(self._ids[pos])
            except Exception as e:
                logger.debug(f"{self.name}: containment test on {self._ids[pos]} failed: {e}")
        return min(matches) if matches else None

    def intersects(self, geometry: BaseGeometry) -> List[int]:
        """Ids whose geometry intersects the given geometry, ascending."""
        matches = []
        for pos in self._candidate_positions(geometry.bounds):
            try:
                if self._geoms[pos].intersects(geometry):
                    matches.append(self._ids[pos])
            except Exception as e:
                logger.debug(f"{self.name}: intersection test on {self._ids[pos]} failed: {e}")
        return sorted(matches)
