"""
ParcelAtlas: the engine's public entry point.

Owns the snapshot handle and wires the resolver, search, tile encoder
and routing engine to it.
"""

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Union

from parcel_atlas.address import physical_address, short_code
from parcel_atlas.config_manager import AtlasConfig, EngineSettings
from parcel_atlas.context.resolver import ContextResolver, Destination, ParcelContext
from parcel_atlas.context.search import ParcelSearch, ParcelSummary
from parcel_atlas.errors import InvalidInputError
from parcel_atlas.models import Parcel, TransportMode
from parcel_atlas.routing.directions import DirectionsProvider, MapboxDirectionsProvider
from parcel_atlas.routing.engine import RouteResult, RoutingEngine
from parcel_atlas.store.loader import load_collections
from parcel_atlas.store.snapshot import Snapshot, SnapshotHandle
from parcel_atlas.tiles.encoder import TileEncoder

logger = logging.getLogger(__name__)


class ParcelAtlas:
    """Spatial context, tile and route service over one snapshot handle."""

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        directions_provider: Optional[DirectionsProvider] = None,
        config: Optional[AtlasConfig] = None,
    ):
        """Initialize the service.

        Args:
            settings: Engine thresholds (defaults when omitted)
            directions_provider: Optional external directions provider
            config: Full configuration, used by ``reload``
        """
        self.config = config
        self.settings = settings or (config.engine if config else EngineSettings())
        self.handle = SnapshotHandle()
        self._version_lock = threading.Lock()
        self._next_version = 1

        self.resolver = ContextResolver(self.handle, self.settings)
        self.search = ParcelSearch(self.handle, self.resolver)
        self.tiles = TileEncoder(self.handle, self.settings)
        self.routing = RoutingEngine(self.handle, self.resolver, self.settings, directions_provider)

    @classmethod
    def from_config(cls, config: AtlasConfig, load: bool = True) -> "ParcelAtlas":
        """Build the service (and optionally load data) from configuration."""
        provider = None
        directions = config.directions
        if directions.enabled:
            if directions.access_token:
                provider = MapboxDirectionsProvider(
                    access_token=directions.access_token,
                    base_url=directions.base_url,
                    timeout_s=directions.timeout_s,
                )
            else:
                logger.warning("Directions enabled but no access token configured; using stitched routes")

        atlas = cls(settings=config.engine, directions_provider=provider, config=config)
        if load:
            atlas.reload()
        return atlas

    # ------------------------------------------------------------------
    # Snapshot management
    # ------------------------------------------------------------------

    def load_snapshot(
        self,
        parcels: Iterable[Any],
        entry_points: Iterable[Any],
        roads: Iterable[Any],
        admin_blocks: Iterable[Any],
        crs: Union[None, str, Dict[str, str]] = None,
    ) -> SnapshotHandle:
        """Build a snapshot from records and install it atomically.

        Raises:
            IndexBuildError: If a non-empty collection is entirely unusable
        """
        with self._version_lock:
            version = self._next_version
            self._next_version += 1
        snapshot = Snapshot.build(parcels, entry_points, roads, admin_blocks, crs=crs, version=version)
        self.handle.install(snapshot)
        return self.handle

    def reload(self) -> SnapshotHandle:
        """Reload all collections from the configured data sources."""
        if self.config is None:
            raise InvalidInputError("No data configuration to reload from")
        loaded = load_collections(self.config.data)
        return self.load_snapshot(
            loaded.parcels,
            loaded.entry_points,
            loaded.roads,
            loaded.admin_blocks,
            crs=loaded.crs,
        )

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def resolve_context(
        self,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        lr_no: Optional[str] = None,
        gid: Optional[int] = None,
    ) -> ParcelContext:
        """Resolve a parcel context by location, registration code or id.

        Exactly one of (lat, lng), lr_no or gid must be given.
        """
        given = sum([lat is not None or lng is not None, lr_no is not None, gid is not None])
        if given != 1:
            raise InvalidInputError("Provide exactly one of lat/lng, lr_no or gid")
        if lr_no is not None:
            return self.resolver.resolve_by_lr_no(lr_no)
        if gid is not None:
            return self.resolver.resolve_by_id(gid)
        return self.resolver.resolve_by_point(lat, lng)

    def search_parcels(self, **criteria: Any) -> Union[List[ParcelSummary], List[ParcelContext]]:
        return self.search.search(**criteria)

    def list_parcels(self, page: int = 1, limit: int = 50) -> Dict[str, Any]:
        return self.search.list_parcels(page=page, limit=limit)

    def suggest(self, q: str, limit: int = 5) -> List[ParcelSummary]:
        return self.search.suggest(q, limit=limit)

    # ------------------------------------------------------------------
    # Tiles and routes
    # ------------------------------------------------------------------

    def render_tile(self, z: int, x: int, y: int) -> bytes:
        return self.tiles.render(z, x, y)

    def calculate_route(
        self,
        origin: Any,
        destination: Destination,
        mode: Union[str, TransportMode] = TransportMode.DRIVING,
        preferred_entry_label: Optional[Any] = None,
    ) -> RouteResult:
        return self.routing.calculate_route(origin, destination, mode, preferred_entry_label)

    def alternative_routes(
        self,
        origin: Any,
        destination: Destination,
        mode: Union[str, TransportMode] = TransportMode.DRIVING,
    ) -> List[RouteResult]:
        return self.routing.alternative_routes(origin, destination, mode)

    def preview_route(
        self,
        origin: Any,
        destination: Any,
        mode: Union[str, TransportMode] = TransportMode.DRIVING,
    ) -> Dict[str, Any]:
        return self.routing.preview_route(origin, destination, mode)

    def road_name(self, lat: Any, lng: Any) -> Dict[str, Any]:
        return self.routing.road_name(lat, lng)

    # ------------------------------------------------------------------
    # Addresses
    # ------------------------------------------------------------------

    @staticmethod
    def physical_address(parcel: Any, admin_block: Any = None, access_road: Any = None, entry_point: Any = None) -> str:
        return physical_address(parcel, admin_block, access_road, entry_point)

    @staticmethod
    def short_code(parcel: Union[Parcel, str]) -> str:
        return short_code(parcel)

    def describe_address(self, destination: Destination) -> Dict[str, Any]:
        """Address and short code of a parcel, via its first entry point."""
        context = self.resolver.resolve(destination)
        entry = context.entry_points[0] if context.entry_points else None
        access_road = entry.access_road if entry else None
        return {
            "lr_no": context.parcel.lr_no,
            "physical_address": physical_address(context.parcel, context.admin_block, access_road, entry),
            "short_code": short_code(context.parcel),
        }
