"""
Parcel vector tiles.
"""

from parcel_atlas.tiles.encoder import (
    EMPTY_TILE,
    TileEncoder,
    tile_envelope,
    tile_for_lonlat,
    validate_tile,
)

__all__ = [
    "TileEncoder",
    "EMPTY_TILE",
    "tile_envelope",
    "tile_for_lonlat",
    "validate_tile",
]
