"""
Load the four geometry collections from GeoPackage, GeoJSON or Shapefile.

Geometries are kept in their file CRS; reprojection happens when the
snapshot indexes are built.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import geopandas as gpd
import pandas as pd
from pydantic import ValidationError

from parcel_atlas.index.geometry import WGS84
from parcel_atlas.models import AdministrativeBlock, EntryPoint, Parcel, Road

logger = logging.getLogger(__name__)

MODELS = {
    "parcels": Parcel,
    "entry_points": EntryPoint,
    "roads": Road,
    "admin_blocks": AdministrativeBlock,
}

FIELDS = {
    "parcels": ("lr_no", "fr_no", "area", "entity"),
    "entry_points": ("label",),
    "roads": ("name", "fclass", "ref"),
    "admin_blocks": ("name", "constituency", "county", "short_name"),
}

TEXT_FIELDS = {"lr_no", "fr_no", "entity", "name", "fclass", "ref", "constituency", "county", "short_name"}

# Source column names (shapefile-truncated or OSM style) -> record field
COLUMN_ALIASES = {
    "id": "gid",
    "fid": "gid",
    "constituen": "constituency",
    "county_nam": "county",
    "shortname": "short_name",
    "road_name": "name",
    "road_ref": "ref",
    "highway": "fclass",
}


@dataclass
class LoadedCollections:
    """Typed records of all four collections plus their source CRS."""
    parcels: List[Parcel] = field(default_factory=list)
    entry_points: List[EntryPoint] = field(default_factory=list)
    roads: List[Road] = field(default_factory=list)
    admin_blocks: List[AdministrativeBlock] = field(default_factory=list)
    crs: Dict[str, str] = field(default_factory=dict)
    skipped: Dict[str, int] = field(default_factory=dict)

    def counts(self) -> Dict[str, int]:
        return {
            "parcels": len(self.parcels),
            "entry_points": len(self.entry_points),
            "roads": len(self.roads),
            "admin_blocks": len(self.admin_blocks),
        }


def _normalize_columns(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Lower-case column names and map known aliases onto record fields."""
    gdf = gdf.rename(columns={c: c.lower() for c in gdf.columns if c != gdf.geometry.name})
    for alias, target in COLUMN_ALIASES.items():
        if alias in gdf.columns and target not in gdf.columns:
            gdf[target] = gdf[alias]
    return gdf


def _clean(value: Any) -> Any:
    """Convert pandas/numpy nulls and scalars into plain Python values."""
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if hasattr(value, "item"):
        return value.item()
    return value


def read_collection(name: str, path: Path, layer: Optional[str] = None, crs: Optional[str] = None) -> Tuple[List[Any], str, int]:
    """Read one collection into typed records.

    Args:
        name: Collection name (parcels, entry_points, roads, admin_blocks)
        path: Vector file path
        layer: Layer name for multi-layer sources such as GeoPackage
        crs: CRS to assume when the file does not declare one

    Returns:
        Tuple of (records, crs, skipped_rows)
    """
    model = MODELS[name]
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{name} file not found: {path}")

    logger.info(f"Loading {name} from {path}" + (f" (layer {layer})" if layer else ""))
    gdf = gpd.read_file(path, layer=layer) if layer else gpd.read_file(path)
    gdf = _normalize_columns(gdf)

    if gdf.crs is not None:
        source_crs = gdf.crs.to_string()
        if crs and gdf.crs != crs:
            logger.warning(f"{name}: file CRS {source_crs} overrides configured {crs}")
    else:
        source_crs = crs or WGS84

    if "gid" not in gdf.columns:
        # No identifier column, fall back to row position
        gdf["gid"] = range(1, len(gdf) + 1)

    records = []
    skipped = 0
    for _, row in gdf.iterrows():
        gid = _clean(row.get("gid"))
        geom = row.geometry
        if gid is None or geom is None or geom.is_empty:
            skipped += 1
            continue

        try:
            values = {"gid": int(gid), "geometry": geom}
        except (TypeError, ValueError):
            skipped += 1
            logger.warning(f"{name}: skipping row with non-integer id {gid!r}")
            continue
        for column in FIELDS[name]:
            if column not in gdf.columns:
                continue
            value = _clean(row.get(column))
            if value is not None and column in TEXT_FIELDS:
                value = str(value).strip() or None
            if value is not None:
                values[column] = value

        try:
            records.append(model(**values))
        except ValidationError as e:
            skipped += 1
            logger.warning(f"{name}: skipping row {gid}: {e.errors()[0]['msg']}")

    if skipped:
        logger.warning(f"{name}: skipped {skipped} rows without usable id, geometry or attributes")
    logger.info(f"Loaded {len(records)} {name} ({source_crs})")
    return records, source_crs, skipped


def load_collections(data_config: Mapping[str, Any]) -> LoadedCollections:
    """Load every collection described by the ``data`` config section.

    Args:
        data_config: Mapping of collection name -> DataSource (path, layer, crs)
    """
    loaded = LoadedCollections()
    for name in MODELS:
        source = data_config[name]
        records, crs, skipped = read_collection(name, source.path, source.layer, source.crs)
        setattr(loaded, name, records)
        loaded.crs[name] = crs
        loaded.skipped[name] = skipped
    return loaded
