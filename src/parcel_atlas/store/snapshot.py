"""
Geometry store: immutable snapshots of the four collections and the
handle that swaps them on reload.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel

from parcel_atlas.errors import ParcelAtlasError
from parcel_atlas.index.geometry import WEB_MERCATOR, WGS84
from parcel_atlas.index.spatial_index import IndexDiagnostic, SpatialIndex
from parcel_atlas.models import AdministrativeBlock, EntryPoint, Parcel, Road

logger = logging.getLogger(__name__)

COLLECTIONS = ("parcels", "entry_points", "roads", "admin_blocks")

ModelT = TypeVar("ModelT", bound=BaseModel)
CrsSpec = Union[None, str, Mapping[str, str]]


def _coerce_records(model: Type[ModelT], records: Iterable[Any]) -> List[ModelT]:
    """Accept model instances or plain mappings."""
    coerced = []
    for record in records:
        if isinstance(record, model):
            coerced.append(record)
        else:
            coerced.append(model(**record))
    return coerced


def _by_gid(records: Iterable[ModelT], index: SpatialIndex) -> Dict[int, ModelT]:
    """Records that made it into the index, first occurrence of each gid."""
    by_gid: Dict[int, ModelT] = {}
    for record in records:
        if record.gid in index and record.gid not in by_gid:
            by_gid[record.gid] = record
    return by_gid


def _resolve_crs(crs: CrsSpec) -> Dict[str, str]:
    if crs is None:
        return {name: WGS84 for name in COLLECTIONS}
    if isinstance(crs, str):
        return {name: crs for name in COLLECTIONS}
    return {name: crs.get(name, WGS84) for name in COLLECTIONS}


class Snapshot:
    """One immutable generation of the geometry store.

    Holds the typed records of every collection and the spatial indexes
    built over them. Query indexes are in EPSG:4326; parcels also get a
    EPSG:3857 index used only for tile rendering.
    """

    def __init__(
        self,
        parcels: Dict[int, Parcel],
        entry_points: Dict[int, EntryPoint],
        roads: Dict[int, Road],
        admin_blocks: Dict[int, AdministrativeBlock],
        parcel_index: SpatialIndex,
        parcel_tile_index: SpatialIndex,
        entry_point_index: SpatialIndex,
        road_index: SpatialIndex,
        admin_index: SpatialIndex,
        diagnostics: List[IndexDiagnostic],
        version: int = 1,
    ):
        self.parcels = parcels
        self.entry_points = entry_points
        self.roads = roads
        self.admin_blocks = admin_blocks
        self.parcel_index = parcel_index
        self.parcel_tile_index = parcel_tile_index
        self.entry_point_index = entry_point_index
        self.road_index = road_index
        self.admin_index = admin_index
        self.diagnostics = diagnostics
        self.version = version
        self.loaded_at = datetime.now(timezone.utc)
        self.parcels_by_lr_no = {p.lr_no: gid for gid, p in parcels.items()}

    @classmethod
    def build(
        cls,
        parcels: Iterable[Any],
        entry_points: Iterable[Any],
        roads: Iterable[Any],
        admin_blocks: Iterable[Any],
        crs: CrsSpec = None,
        version: int = 1,
    ) -> "Snapshot":
        """Validate records and build every index.

        Args:
            parcels, entry_points, roads, admin_blocks: Model instances or mappings
            crs: Source CRS, either one for all collections or a per-collection mapping
            version: Snapshot generation number

        Raises:
            IndexBuildError: If a non-empty collection has no usable geometry
        """
        source_crs = _resolve_crs(crs)
        diagnostics: List[IndexDiagnostic] = []

        parcel_records = _coerce_records(Parcel, parcels)
        entry_records = _coerce_records(EntryPoint, entry_points)
        road_records = _coerce_records(Road, roads)
        admin_records = _coerce_records(AdministrativeBlock, admin_blocks)

        # Registration codes must be unique; the lowest gid wins
        unique_parcels = []
        seen_codes: Dict[str, int] = {}
        for parcel in sorted(parcel_records, key=lambda p: p.gid):
            if parcel.lr_no in seen_codes:
                reason = f"duplicate lr_no {parcel.lr_no!r} (kept gid {seen_codes[parcel.lr_no]})"
                logger.warning(f"parcels feature {parcel.gid} dropped: {reason}")
                diagnostics.append(IndexDiagnostic("parcels", parcel.gid, "dropped", reason))
                continue
            seen_codes[parcel.lr_no] = parcel.gid
            unique_parcels.append(parcel)

        parcel_index = SpatialIndex(
            "parcels", ((p.gid, p.geometry) for p in unique_parcels),
            crs=WGS84, source_crs=source_crs["parcels"],
        )
        parcel_tile_index = SpatialIndex(
            "parcel_tiles", ((p.gid, p.geometry) for p in unique_parcels if p.gid in parcel_index),
            crs=WEB_MERCATOR, source_crs=source_crs["parcels"],
        )
        entry_point_index = SpatialIndex(
            "entry_points", ((e.gid, e.geometry) for e in entry_records),
            crs=WGS84, source_crs=source_crs["entry_points"],
        )
        road_index = SpatialIndex(
            "roads", ((r.gid, r.geometry) for r in road_records),
            crs=WGS84, source_crs=source_crs["roads"],
        )
        admin_index = SpatialIndex(
            "admin_blocks", ((a.gid, a.geometry) for a in admin_records),
            crs=WGS84, source_crs=source_crs["admin_blocks"],
        )

        for index in (parcel_index, parcel_tile_index, entry_point_index, road_index, admin_index):
            diagnostics.extend(index.diagnostics)

        snapshot = cls(
            parcels=_by_gid(unique_parcels, parcel_index),
            entry_points=_by_gid(entry_records, entry_point_index),
            roads=_by_gid(road_records, road_index),
            admin_blocks=_by_gid(admin_records, admin_index),
            parcel_index=parcel_index,
            parcel_tile_index=parcel_tile_index,
            entry_point_index=entry_point_index,
            road_index=road_index,
            admin_index=admin_index,
            diagnostics=diagnostics,
            version=version,
        )
        logger.info(f"Built snapshot v{version}: {snapshot.stats()}")
        return snapshot

    def stats(self) -> Dict[str, int]:
        return {
            "parcels": len(self.parcels),
            "entry_points": len(self.entry_points),
            "roads": len(self.roads),
            "admin_blocks": len(self.admin_blocks),
            "diagnostics": len(self.diagnostics),
        }

    def parcel_gid(self, lr_no: str) -> Optional[int]:
        return self.parcels_by_lr_no.get(lr_no)


class SnapshotHandle:
    """Holder of the active snapshot.

    ``install`` swaps the reference under a lock. Readers call ``current``
    once per operation and keep using that snapshot until they finish, so
    a reload never shows them a half-built index.
    """

    def __init__(self, snapshot: Optional[Snapshot] = None):
        self._lock = threading.Lock()
        self._snapshot = snapshot

    def install(self, snapshot: Snapshot) -> Optional[Snapshot]:
        """Make ``snapshot`` active and return the one it replaced."""
        with self._lock:
            previous = self._snapshot
            self._snapshot = snapshot
        logger.info(f"Installed snapshot v{snapshot.version}")
        return previous

    def current(self) -> Snapshot:
        with self._lock:
            snapshot = self._snapshot
        if snapshot is None:
            raise ParcelAtlasError("No snapshot has been loaded")
        return snapshot

    @property
    def loaded(self) -> bool:
        return self._snapshot is not None

    @property
    def version(self) -> int:
        return self._snapshot.version if self._snapshot is not None else 0
