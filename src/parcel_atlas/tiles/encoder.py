"""
Vector tile encoder.

Renders the parcels intersecting a z/x/y Web Mercator tile into a
Mapbox Vector Tile with a single "parcels" layer.
"""

import logging
import math
from typing import Any, Dict, List, Optional, Tuple

import mapbox_vector_tile
import shapely
from shapely import affinity
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry
from shapely.ops import clip_by_rect

from parcel_atlas.address import display_label
from parcel_atlas.config_manager import EngineSettings
from parcel_atlas.errors import InvalidInputError
from parcel_atlas.index.geometry import Bounds, polygonal_part
from parcel_atlas.store.snapshot import Snapshot, SnapshotHandle

logger = logging.getLogger(__name__)

# Half the side of the EPSG:3857 square world
WEB_MERCATOR_ORIGIN = 20037508.342789244
MAX_ZOOM = 30
MAX_LATITUDE = 85.05112878

EMPTY_TILE = b""


def validate_tile(z: Any, x: Any, y: Any) -> None:
    """Raise InvalidInputError unless z/x/y address a tile of the pyramid."""
    for name, value in (("z", z), ("x", x), ("y", y)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidInputError(f"Tile {name} must be an integer, got {value!r}")
    if not 0 <= z <= MAX_ZOOM:
        raise InvalidInputError(f"Zoom must be between 0 and {MAX_ZOOM}, got {z}")
    n = 2 ** z
    if not (0 <= x < n and 0 <= y < n):
        raise InvalidInputError(f"Tile {z}/{x}/{y} is outside the zoom {z} grid")


def tile_envelope(z: int, x: int, y: int) -> Bounds:
    """EPSG:3857 bounds (minx, miny, maxx, maxy) of an XYZ tile."""
    size = 2 * WEB_MERCATOR_ORIGIN / (2 ** z)
    minx = -WEB_MERCATOR_ORIGIN + x * size
    maxy = WEB_MERCATOR_ORIGIN - y * size
    return (minx, maxy - size, minx + size, maxy)


def tile_for_lonlat(lng: float, lat: float, z: int) -> Tuple[int, int]:
    """XYZ column/row containing a lon/lat position at zoom z."""
    lat = max(min(lat, MAX_LATITUDE), -MAX_LATITUDE)
    n = 2 ** z
    x = int((lng + 180.0) / 360.0 * n)
    y = int((1.0 - math.log(math.tan(math.radians(lat)) + 1 / math.cos(math.radians(lat))) / math.pi) / 2.0 * n)
    return min(max(x, 0), n - 1), min(max(y, 0), n - 1)


class TileEncoder:
    """Builds parcel vector tiles from the active snapshot."""

    def __init__(self, handle: SnapshotHandle, settings: Optional[EngineSettings] = None):
        self.handle = handle
        self.settings = settings or EngineSettings()

    def render(self, z: int, x: int, y: int) -> bytes:
        """Encoded tile bytes; b"" when the tile is empty or rendering fails.

        Raises:
            InvalidInputError: For malformed tile addresses only
        """
        validate_tile(z, x, y)
        try:
            features = self.features(self.handle.current(), z, x, y)
            if not features:
                return EMPTY_TILE
            return mapbox_vector_tile.encode(
                [{"name": self.settings.tile_layer, "features": features}],
                default_options={"extents": self.settings.tile_extent},
            )
        except Exception as e:
            logger.warning(f"Tile {z}/{x}/{y} failed, serving empty tile: {e}")
            return EMPTY_TILE

    def features(self, snapshot: Snapshot, z: int, x: int, y: int) -> List[Dict[str, Any]]:
        """Tile-local parcel features ready for the encoder, ordered by gid."""
        minx, miny, maxx, maxy = tile_envelope(z, x, y)
        size = maxx - minx
        margin = size * self.settings.tile_buffer / self.settings.tile_extent
        clip_bounds = (minx - margin, miny - margin, maxx + margin, maxy + margin)
        envelope = box(minx, miny, maxx, maxy)

        index = snapshot.parcel_tile_index
        features = []
        for gid in index.query_bbox(clip_bounds):
            try:
                geometry = index.geometry(gid)
                if not geometry.intersects(envelope):
                    continue
                local = self._to_tile_grid(clip_by_rect(geometry, *clip_bounds), minx, miny, size)
                if local is None:
                    continue
                features.append({
                    "geometry": local,
                    "properties": self._properties(snapshot, gid),
                    "id": gid,
                })
            except Exception as e:
                logger.debug(f"Skipping parcel {gid} in tile {z}/{x}/{y}: {e}")

        return features

    def _to_tile_grid(self, geometry: BaseGeometry, minx: float, miny: float, size: float) -> Optional[BaseGeometry]:
        """Scale into the integer tile grid (y up); None if nothing is left."""
        if geometry.is_empty:
            return None
        scale = self.settings.tile_extent / size
        local = affinity.affine_transform(geometry, [scale, 0, 0, scale, -minx * scale, -miny * scale])
        local = polygonal_part(shapely.set_precision(local, 1.0))
        if local is None or local.is_empty or local.area <= 0:
            return None
        return local

    def _properties(self, snapshot: Snapshot, gid: int) -> Dict[str, Any]:
        parcel = snapshot.parcels[gid]
        properties = {
            "gid": gid,
            "lr_no": parcel.lr_no,
            "display_label": display_label(parcel.lr_no, self._block_short_name(snapshot, gid)),
        }
        for key in ("area", "fr_no", "entity"):
            value = getattr(parcel, key)
            if value is not None:
                properties[key] = value
        return properties

    @staticmethod
    def _block_short_name(snapshot: Snapshot, gid: int) -> Optional[str]:
        """Short name of the first block intersecting the parcel (no nearest fallback)."""
        blocks = snapshot.admin_index.intersects(snapshot.parcel_index.geometry(gid))
        if not blocks:
            return None
        return snapshot.admin_blocks[blocks[0]].short_name
