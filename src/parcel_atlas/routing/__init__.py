"""
Routing to parcel entry points.

Modules:
- access: road class quality and mode accessibility tables
- directions: directions provider interface and Mapbox client
- engine: entry point selection, route stitching and alternatives
"""

from parcel_atlas.routing.access import RoadAccess
from parcel_atlas.routing.directions import (
    DirectionsProvider,
    DirectionsResult,
    DirectionsStep,
    MapboxDirectionsProvider,
    traffic_level,
)
from parcel_atlas.routing.engine import (
    EntryPointScore,
    RouteInstruction,
    RouteResult,
    RouteSegment,
    RoutingEngine,
)

__all__ = [
    "RoadAccess",
    "DirectionsProvider",
    "DirectionsResult",
    "DirectionsStep",
    "MapboxDirectionsProvider",
    "traffic_level",
    "RoutingEngine",
    "RouteResult",
    "RouteSegment",
    "RouteInstruction",
    "EntryPointScore",
]
