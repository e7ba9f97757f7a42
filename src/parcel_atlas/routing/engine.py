"""
Routing engine.

Selects an entry point of a destination parcel and builds a route to it,
either from the directions provider or by stitching named road
segments between the origin and the entry point's access road.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from shapely.geometry import LineString, Point, mapping
from shapely.geometry.base import BaseGeometry

from parcel_atlas.address import physical_address, short_code
from parcel_atlas.config_manager import EngineSettings
from parcel_atlas.context.resolver import (
    ContextEntryPoint,
    ContextResolver,
    Destination,
    NearestRoad,
    ParcelContext,
)
from parcel_atlas.errors import (
    EntryPointNotFoundError,
    InvalidInputError,
    NoEntryPointsError,
    NoRouteError,
)
from parcel_atlas.index.geodesy import geodesic_distance, geodesic_length, project_onto
from parcel_atlas.models import Coordinate, Parcel, TrafficLevel, TransportMode
from parcel_atlas.routing.access import RoadAccess
from parcel_atlas.routing.directions import DirectionsProvider, DirectionsResult, traffic_level
from parcel_atlas.store.snapshot import Snapshot, SnapshotHandle

logger = logging.getLogger(__name__)

SOURCE_STITCHED = "stitched"
SOURCE_DIRECTIONS = "directions"
SOURCE_STRAIGHT_LINE = "straight_line"
UNNAMED_ROAD = "Unnamed Road"


@dataclass
class RouteSegment:
    """One road (or provider step) of a route."""
    sequence: int
    name: Optional[str]
    distance_m: float
    road_gid: Optional[int] = None
    fclass: Optional[str] = None
    duration_s: Optional[float] = None
    geometry: Optional[BaseGeometry] = None
    maneuver: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "gid": self.road_gid,
            "name": self.name,
            "road_type": self.fclass,
            "distance": round(self.distance_m, 2),
            "duration": round(self.duration_s, 2) if self.duration_s is not None else None,
            "maneuver_type": self.maneuver,
            "geometry": mapping(self.geometry) if self.geometry is not None else None,
        }


@dataclass
class RouteInstruction:
    """A turn-by-turn instruction with its own incremental distance."""
    step: int
    text: str
    distance_m: float
    type: str
    road_name: Optional[str] = None
    duration_s: Optional[float] = None
    coordinates: Optional[Coordinate] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "instruction": self.text,
            "distance": round(self.distance_m, 2),
            "duration": round(self.duration_s, 2) if self.duration_s is not None else None,
            "type": self.type,
            "road_name": self.road_name,
            "coordinates": self.coordinates.to_dict() if self.coordinates else None,
        }


@dataclass
class RouteResult:
    """Route from an origin to one entry point of a parcel."""
    parcel: Parcel
    entry_point: ContextEntryPoint
    access_road: Optional[NearestRoad]
    mode: TransportMode
    segments: List[RouteSegment]
    instructions: List[RouteInstruction]
    total_distance: float
    walk_distance: float
    physical_address: str
    short_code: str
    total_duration: Optional[float] = None
    traffic_level: TrafficLevel = TrafficLevel.UNKNOWN
    source: str = SOURCE_STITCHED
    accessible: bool = True

    @property
    def has_traffic(self) -> bool:
        return self.traffic_level != TrafficLevel.UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "destination": {
                "parcel": self.parcel.summary(),
                "entry_point": self.entry_point.to_dict(),
                "access_road": self.access_road.to_dict() if self.access_road else None,
                "physical_address": self.physical_address,
                "short_code": self.short_code,
            },
            "route": {
                "segments": [segment.to_dict() for segment in self.segments],
                "total_distance": round(self.total_distance, 2),
                "walk_distance": round(self.walk_distance, 2),
                "total_duration": round(self.total_duration, 2) if self.total_duration is not None else None,
                "mode": self.mode.value,
                "has_traffic": self.has_traffic,
                "traffic_level": self.traffic_level.value,
                "source": self.source,
                "accessible": self.accessible,
                "entry_point": {
                    "lat": self.entry_point.coordinates.lat,
                    "lng": self.entry_point.coordinates.lng,
                    "label": self.entry_point.label,
                },
            },
            "instructions": [instruction.to_dict() for instruction in self.instructions],
        }


@dataclass
class EntryPointScore:
    """Selection score of one candidate entry point (lower is better)."""
    entry_point: ContextEntryPoint
    distance_m: float
    access_quality: float
    score: float
    accessible: bool = True


@dataclass
class _Leg:
    """Route body before the walk and arrival steps are appended."""
    segments: List[RouteSegment]
    instructions: List[RouteInstruction]
    distance_m: float
    road_end: Point
    duration_s: Optional[float] = None
    traffic: TrafficLevel = TrafficLevel.UNKNOWN
    source: str = SOURCE_STITCHED


class RoutingEngine:
    """Entry-point selection, route stitching and alternatives."""

    def __init__(
        self,
        handle: SnapshotHandle,
        resolver: ContextResolver,
        settings: Optional[EngineSettings] = None,
        directions_provider: Optional[DirectionsProvider] = None,
    ):
        self.handle = handle
        self.resolver = resolver
        self.settings = settings or EngineSettings()
        self.directions_provider = directions_provider

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def calculate_route(
        self,
        origin: Any,
        destination: Destination,
        mode: Union[str, TransportMode] = TransportMode.DRIVING,
        preferred_entry_label: Optional[Any] = None,
    ) -> RouteResult:
        """Route from an origin to the best (or preferred) entry point.

        Raises:
            InvalidInputError: Malformed origin, mode or label
            NotFoundError: Unknown destination parcel
            NoEntryPointsError: Parcel has no entry points
            EntryPointNotFoundError: Preferred label not among the parcel's entry points
            NoRouteError: No named road to start or end the route
        """
        origin = Coordinate.coerce(origin)
        mode = TransportMode.parse(mode)
        snapshot = self.handle.current()
        context = self._context_with_entry_points(destination, snapshot)

        if preferred_entry_label is not None:
            label = self._parse_label(preferred_entry_label)
            entry = context.entry_point_by_label(label)
            if entry is None:
                raise EntryPointNotFoundError(
                    f"Entry point {label} not found for parcel {context.parcel.lr_no}"
                )
        else:
            entry = self.select_entry_point(snapshot, context, origin, mode)

        return self.route_to_entry_point(snapshot, context, entry, origin, mode)

    def alternative_routes(
        self,
        origin: Any,
        destination: Destination,
        mode: Union[str, TransportMode] = TransportMode.DRIVING,
    ) -> List[RouteResult]:
        """One route per entry point, sorted by ascending total distance.

        Entry points whose route fails are logged and left out.
        """
        origin = Coordinate.coerce(origin)
        mode = TransportMode.parse(mode)
        snapshot = self.handle.current()
        context = self._context_with_entry_points(destination, snapshot)

        results: List[RouteResult] = []
        workers = max(1, min(self.settings.max_workers, len(context.entry_points)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(self.route_to_entry_point, snapshot, context, entry, origin, mode): entry
                for entry in context.entry_points
            }
            for future in as_completed(futures):
                entry = futures[future]
                try:
                    results.append(future.result())
                except Exception as e:
                    logger.warning(
                        f"No route to entry point {entry.label} of parcel {context.parcel.lr_no}: {e}"
                    )

        if self.settings.alternatives_inaccessible_last:
            results.sort(key=lambda r: (not r.accessible, r.total_distance, r.entry_point.gid))
        else:
            results.sort(key=lambda r: (r.total_distance, r.entry_point.gid))
        return results

    def preview_route(
        self,
        origin: Any,
        destination: Any,
        mode: Union[str, TransportMode] = TransportMode.DRIVING,
    ) -> Dict[str, Any]:
        """Distance/duration summary between an origin and a destination.

        ``destination`` is a coordinate, or a parcel code/id (its centroid).
        Falls back to the straight-line distance when no provider answers.
        """
        origin = Coordinate.coerce(origin)
        mode = TransportMode.parse(mode)
        if isinstance(destination, (str, int, Parcel)) and not isinstance(destination, bool):
            target = self.resolver.resolve(destination).centroid
        else:
            target = Coordinate.coerce(destination)

        distance: float
        duration: Optional[float] = None
        source = SOURCE_STRAIGHT_LINE
        if self.directions_provider is not None:
            try:
                result = self.directions_provider.get_directions(origin, target, mode)
                distance, duration, source = result.total_distance, result.total_duration, SOURCE_DIRECTIONS
            except Exception as e:
                logger.warning(f"Directions provider unavailable for preview, using straight line: {e}")
        if source == SOURCE_STRAIGHT_LINE:
            distance = geodesic_distance(origin.to_point(), target.to_point())

        return {
            "distance": round(distance, 2),
            "duration": round(duration, 2) if duration is not None else None,
            "mode": mode.value,
            "source": source,
            "formatted": {
                "distance": f"{distance / 1000:.1f} km",
                "duration": f"{math.ceil(duration / 60)} min" if duration is not None else None,
            },
        }

    def road_name(self, lat: Any, lng: Any) -> Dict[str, Any]:
        """Name of the road at a coordinate.

        Uses the nearest named road within the road search radius, then the
        directions provider, and reports ``Unnamed Road`` when neither has one.

        Raises:
            InvalidInputError: Missing or out-of-range coordinate
        """
        coordinate = Coordinate.parse(lat, lng)
        snapshot = self.handle.current()

        name = None
        hits = snapshot.road_index.nearest(
            coordinate.to_point(),
            k=1,
            max_distance=self.settings.road_search_radius_m,
            where=lambda gid: snapshot.roads[gid].is_named,
        )
        if hits:
            name = snapshot.roads[hits[0][0]].name
        elif self.directions_provider is not None:
            try:
                name = self.directions_provider.road_name(coordinate)
            except Exception as e:
                logger.warning(f"Road name lookup failed at {coordinate.lat},{coordinate.lng}: {e}")

        return {
            "coordinates": coordinate.to_dict(),
            "road_name": name or UNNAMED_ROAD,
        }

    # ------------------------------------------------------------------
    # Entry point selection
    # ------------------------------------------------------------------

    def score_entry_points(
        self,
        snapshot: Snapshot,
        context: ParcelContext,
        origin: Coordinate,
        mode: TransportMode,
    ) -> List[EntryPointScore]:
        """Composite score of every entry point: distance*w_d - quality*w_q."""
        origin_point = origin.to_point()
        scores = []
        for entry in context.entry_points:
            point = snapshot.entry_point_index.geometry(entry.gid)
            nearby = self._nearby_road_classes(snapshot, point)
            distance = geodesic_distance(origin_point, point)
            quality = RoadAccess.access_quality(nearby, mode, self.settings.max_quality_penalty)
            score = distance * self.settings.distance_weight - quality * self.settings.quality_weight
            scores.append(EntryPointScore(
                entry_point=entry,
                distance_m=distance,
                access_quality=quality,
                score=score,
                accessible=RoadAccess.is_accessible((fclass for fclass, _ in nearby), mode),
            ))
        return scores

    def select_entry_point(
        self,
        snapshot: Snapshot,
        context: ParcelContext,
        origin: Coordinate,
        mode: TransportMode,
    ) -> ContextEntryPoint:
        """Entry point with the lowest score; ties by distance then id."""
        scores = self.score_entry_points(snapshot, context, origin, mode)
        best = min(scores, key=lambda s: (s.score, s.distance_m, s.entry_point.gid))
        logger.debug(
            f"Selected entry point {best.entry_point.label} of {context.parcel.lr_no} "
            f"(score {best.score:.2f}, quality {best.access_quality:.2f})"
        )
        return best.entry_point

    def _nearby_road_classes(self, snapshot: Snapshot, point: BaseGeometry) -> List[Tuple[str, float]]:
        hits = snapshot.road_index.nearest(
            point, k=None, max_distance=self.settings.access_quality_radius_m
        )
        return [(snapshot.roads[gid].fclass, dist) for gid, dist in hits]

    # ------------------------------------------------------------------
    # Route construction
    # ------------------------------------------------------------------

    def route_to_entry_point(
        self,
        snapshot: Snapshot,
        context: ParcelContext,
        entry: ContextEntryPoint,
        origin: Coordinate,
        mode: TransportMode,
    ) -> RouteResult:
        """Route to one specific entry point of a resolved parcel."""
        entry_geom = snapshot.entry_point_index.geometry(entry.gid)
        access_road = entry.access_road or self._fallback_access_road(snapshot, entry_geom)
        if access_road is None:
            raise NoRouteError(f"No named road reaches entry point {entry.label}")

        leg = None
        if self.directions_provider is not None:
            try:
                leg = self._directions_leg(snapshot, origin, entry_geom, access_road, mode)
            except Exception as e:
                logger.warning(f"Directions provider unavailable, using stitched route: {e}")
        if leg is None:
            leg = self._stitched_leg(snapshot, origin, entry_geom, access_road)

        walk = geodesic_distance(leg.road_end, entry_geom)
        instructions = list(leg.instructions)
        instructions.append(RouteInstruction(
            step=len(instructions) + 1,
            text=f"Walk {walk:.0f}m to Entry Point {entry.label}",
            distance_m=walk,
            type="walk",
            coordinates=entry.coordinates,
        ))
        instructions.append(RouteInstruction(
            step=len(instructions) + 1,
            text=f"You have arrived at {context.parcel.lr_no}",
            distance_m=0.0,
            type="arrival",
            coordinates=entry.coordinates,
        ))

        nearby = self._nearby_road_classes(snapshot, entry_geom)
        return RouteResult(
            parcel=context.parcel,
            entry_point=entry,
            access_road=access_road,
            mode=mode,
            segments=leg.segments,
            instructions=instructions,
            total_distance=leg.distance_m + walk,
            walk_distance=walk,
            physical_address=physical_address(context.parcel, context.admin_block, access_road, entry),
            short_code=short_code(context.parcel),
            total_duration=leg.duration_s,
            traffic_level=leg.traffic,
            source=leg.source,
            accessible=RoadAccess.is_accessible((fclass for fclass, _ in nearby), mode),
        )

    def _fallback_access_road(self, snapshot: Snapshot, point: BaseGeometry) -> Optional[NearestRoad]:
        """Nearest named road at any distance."""
        hits = snapshot.road_index.nearest(point, k=1, where=lambda gid: snapshot.roads[gid].is_named)
        if not hits:
            return None
        gid, dist = hits[0]
        road = snapshot.roads[gid]
        return NearestRoad(gid, road.name, road.fclass, road.ref, dist)

    def _segment(self, snapshot: Snapshot, road_gid: int, sequence: int) -> RouteSegment:
        road = snapshot.roads[road_gid]
        geometry = snapshot.road_index.geometry(road_gid)
        return RouteSegment(
            sequence=sequence,
            name=road.name,
            distance_m=geodesic_length(geometry),
            road_gid=road_gid,
            fclass=road.fclass,
            geometry=geometry,
        )

    def stitch_segments(
        self,
        snapshot: Snapshot,
        origin_point: Point,
        entry_geom: BaseGeometry,
        access_road_gid: int,
    ) -> Tuple[List[RouteSegment], Point]:
        """Start road, up to N intermediate named roads, then the access road.

        Returns:
            Tuple of (segments, point on the access road closest to the entry point)
        """
        index = snapshot.road_index

        def named(gid: int) -> bool:
            return snapshot.roads[gid].is_named

        start = index.nearest(origin_point, k=1, where=named)
        if not start:
            raise NoRouteError("No named road near the origin")
        start_gid = start[0][0]

        access_geom = index.geometry(access_road_gid)
        road_end = project_onto(access_geom, entry_geom)

        if start_gid == access_road_gid:
            return [self._segment(snapshot, start_gid, 1)], road_end

        anchor_a = project_onto(index.geometry(start_gid), origin_point)
        anchor_b = road_end
        corridor = LineString([anchor_a, anchor_b]) if not anchor_a.equals(anchor_b) else anchor_a

        excluded = {start_gid, access_road_gid}
        candidates = index.nearest(
            corridor,
            k=None,
            max_distance=self.settings.intermediate_corridor_m,
            where=lambda gid: gid not in excluded and named(gid),
        )

        ranked = []
        for gid, _ in candidates:
            geometry = index.geometry(gid)
            try:
                rank = index.distance(anchor_a, geometry) + index.distance(anchor_b, geometry)
            except Exception as e:
                logger.debug(f"Skipping intermediate road {gid}: {e}")
                continue
            ranked.append((rank, gid))
        ranked.sort()

        gids = [start_gid] + [gid for _, gid in ranked[: self.settings.max_intermediate_roads]] + [access_road_gid]
        return [self._segment(snapshot, gid, i + 1) for i, gid in enumerate(gids)], road_end

    def _stitched_leg(
        self,
        snapshot: Snapshot,
        origin: Coordinate,
        entry_geom: BaseGeometry,
        access_road: NearestRoad,
    ) -> _Leg:
        segments, road_end = self.stitch_segments(snapshot, origin.to_point(), entry_geom, access_road.gid)
        return _Leg(
            segments=segments,
            instructions=self._stitched_instructions(segments, access_road),
            distance_m=sum(segment.distance_m for segment in segments),
            road_end=road_end,
        )

    @staticmethod
    def _stitched_instructions(segments: List[RouteSegment], access_road: NearestRoad) -> List[RouteInstruction]:
        """Head/continue/turn steps whose distances add up to the segment total."""
        first = segments[0]
        instructions = [RouteInstruction(
            step=1,
            text=f"Head towards {first.name or 'the destination'}",
            distance_m=first.distance_m if len(segments) > 1 else 0.0,
            type="start",
            road_name=first.name,
        )]

        for segment in segments[1:-1]:
            previous = instructions[-1]
            if segment.name == previous.road_name:
                previous.distance_m += segment.distance_m
                continue
            instructions.append(RouteInstruction(
                step=len(instructions) + 1,
                text=f"Continue on {segment.name}",
                distance_m=segment.distance_m,
                type="continue",
                road_name=segment.name,
            ))

        instructions.append(RouteInstruction(
            step=len(instructions) + 1,
            text=f"Turn onto {access_road.name}",
            distance_m=segments[-1].distance_m,
            type="turn",
            road_name=access_road.name,
        ))
        return instructions

    def _directions_leg(
        self,
        snapshot: Snapshot,
        origin: Coordinate,
        entry_geom: BaseGeometry,
        access_road: NearestRoad,
        mode: TransportMode,
    ) -> _Leg:
        road_end = project_onto(snapshot.road_index.geometry(access_road.gid), entry_geom)
        target = Coordinate(lat=road_end.y, lng=road_end.x)
        result: DirectionsResult = self.directions_provider.get_directions(origin, target, mode)
        if not result.steps:
            raise NoRouteError("Directions provider returned no steps")

        segments = []
        instructions = []
        for i, step in enumerate(result.steps, start=1):
            segments.append(RouteSegment(
                sequence=i,
                name=step.name or None,
                distance_m=step.distance_m,
                duration_s=step.duration_s,
                geometry=step.geometry,
                maneuver=step.maneuver,
            ))
            instructions.append(RouteInstruction(
                step=i,
                text=step.instruction or f"Continue on {step.name or 'the road'}",
                distance_m=step.distance_m,
                type=step.maneuver or "continue",
                road_name=step.name or None,
                duration_s=step.duration_s,
            ))

        return _Leg(
            segments=segments,
            instructions=instructions,
            distance_m=sum(step.distance_m for step in result.steps),
            road_end=road_end,
            duration_s=result.total_duration,
            traffic=traffic_level(result.congestion_samples),
            source=SOURCE_DIRECTIONS,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _context_with_entry_points(self, destination: Destination, snapshot: Snapshot) -> ParcelContext:
        context = self.resolver.resolve(destination, snapshot)
        if not context.entry_points:
            raise NoEntryPointsError(
                f"Parcel {context.parcel.lr_no} has no entry points within "
                f"{self.resolver.settings.entry_point_radius_m:g} m"
            )
        return context

    @staticmethod
    def _parse_label(label: Any) -> int:
        if isinstance(label, bool):
            raise InvalidInputError(f"Invalid entry point label: {label!r}")
        try:
            return int(label)
        except (TypeError, ValueError):
            raise InvalidInputError(f"Invalid entry point label: {label!r}")
