"""
Geometry store.

Modules:
- snapshot: immutable Snapshot of the four collections and the SnapshotHandle
- loader: reading collections from vector files with geopandas
"""

from parcel_atlas.store.loader import LoadedCollections, load_collections, read_collection
from parcel_atlas.store.snapshot import COLLECTIONS, Snapshot, SnapshotHandle

__all__ = [
    "Snapshot",
    "SnapshotHandle",
    "COLLECTIONS",
    "LoadedCollections",
    "load_collections",
    "read_collection",
]
