"""
Shared fixtures: a small synthetic dataset around Nairobi (lat ~ -1.29).

Layout (EPSG:4326):
- Parcel 1 "LR/123/45" inside block Kilimani (KLM), entry points E1 (south,
  next to Main Rd) and E2 (east, next to the Off Rd footway)
- Parcel 2 "209/1234" just east of Kilimani, entry point E3 on Main Rd
- Parcel 3 "209/9999" with no entry points
- Ngong Rd runs parallel to Main Rd ~215 m south; Link Rd joins them
"""

import geopandas as gpd
import pytest
from shapely.geometry import LineString, Point, box

from parcel_atlas.config_manager import EngineSettings
from parcel_atlas.context.resolver import ContextResolver
from parcel_atlas.models import AdministrativeBlock, EntryPoint, Parcel, Road
from parcel_atlas.service import ParcelAtlas
from parcel_atlas.store.snapshot import Snapshot, SnapshotHandle

MAIN_RD_LAT = -1.290057

ORIGIN_SAME_ROAD = {"lat": -1.29008, "lng": 36.8196}
ORIGIN_FAR = {"lat": -1.29215, "lng": 36.8230}

POINT_INSIDE_P1 = (-1.2895, 36.8202)


def make_parcels():
    return [
        Parcel(gid=1, lr_no="LR/123/45", fr_no="FR/1", area=7300.0, entity="Residential",
               geometry=box(36.8200, -1.2900, 36.8204, -1.2885)),
        Parcel(gid=2, lr_no="209/1234", fr_no="FR/2", area=7300.0, entity="Residential",
               geometry=box(36.8210, -1.2900, 36.8214, -1.2885)),
        Parcel(gid=3, lr_no="209/9999", fr_no="FR/3", area=1960.0, entity="Commercial",
               geometry=box(36.8230, -1.2900, 36.8234, -1.2896)),
    ]


def make_entry_points():
    return [
        EntryPoint(gid=1, label=1, geometry=Point(36.8202, -1.29003)),
        EntryPoint(gid=2, label=2, geometry=Point(36.820436, -1.2888)),
        EntryPoint(gid=3, label=3, geometry=Point(36.8212, -1.29003)),
    ]


def make_roads():
    return [
        Road(gid=10, name="Main Rd", fclass="residential",
             geometry=LineString([(36.8195, MAIN_RD_LAT), (36.8216, MAIN_RD_LAT)])),
        Road(gid=11, name="Off Rd", fclass="footway",
             geometry=LineString([(36.82047, -1.2895), (36.82047, -1.2884)])),
        Road(gid=12, name="Ngong Rd", fclass="primary", ref="C60",
             geometry=LineString([(36.8150, -1.2920), (36.8250, -1.2920)])),
        Road(gid=13, name="Link Rd", fclass="tertiary",
             geometry=LineString([(36.8198, -1.2920), (36.8198, MAIN_RD_LAT)])),
        Road(gid=14, name=None, fclass="service",
             geometry=LineString([(36.8228, -1.29225), (36.8232, -1.29225)])),
        Road(gid=15, name="Far Rd", fclass="residential",
             geometry=LineString([(36.8100, -1.3100), (36.8300, -1.3100)])),
    ]


def make_admin_blocks():
    return [
        AdministrativeBlock(gid=1, name="Kilimani", constituency="Dagoretti North", county="Nairobi",
                            short_name="KLM", geometry=box(36.8190, -1.2910, 36.8208, -1.2880)),
        AdministrativeBlock(gid=2, name="Westlands", constituency="Westlands", county="Nairobi",
                            short_name="WST", geometry=box(36.8300, -1.2910, 36.8400, -1.2880)),
    ]


@pytest.fixture
def parcels():
    return make_parcels()


@pytest.fixture
def entry_points():
    return make_entry_points()


@pytest.fixture
def roads():
    return make_roads()


@pytest.fixture
def admin_blocks():
    return make_admin_blocks()


@pytest.fixture
def snapshot(parcels, entry_points, roads, admin_blocks):
    """Snapshot built from the synthetic dataset."""
    return Snapshot.build(parcels, entry_points, roads, admin_blocks)


@pytest.fixture
def handle(snapshot):
    return SnapshotHandle(snapshot)


@pytest.fixture
def settings():
    return EngineSettings()


@pytest.fixture
def resolver(handle, settings):
    return ContextResolver(handle, settings)


@pytest.fixture
def atlas(parcels, entry_points, roads, admin_blocks):
    """ParcelAtlas service with the synthetic snapshot loaded."""
    service = ParcelAtlas()
    service.load_snapshot(parcels, entry_points, roads, admin_blocks)
    return service


def _frame(records, crs="EPSG:4326"):
    rows = [record.dict() for record in records]
    return gpd.GeoDataFrame(rows, geometry="geometry", crs="EPSG:4326").to_crs(crs)


@pytest.fixture
def dataset_dir(tmp_path):
    """The synthetic dataset written as GeoPackages with source column names.

    Parcels are stored in EPSG:3857 like the production data.
    """
    data_dir = tmp_path / "data"
    data_dir.mkdir()

    parcels = _frame(make_parcels(), crs="EPSG:3857")
    parcels.to_file(data_dir / "land_parcel.gpkg", layer="land_parcel", driver="GPKG")

    _frame(make_entry_points()).to_file(data_dir / "entry_points.gpkg", layer="entry_points", driver="GPKG")
    _frame(make_roads()).to_file(data_dir / "roads.gpkg", layer="roads", driver="GPKG")

    blocks = _frame(make_admin_blocks()).rename(
        columns={"constituency": "constituen", "county": "county_nam"}
    )
    blocks.to_file(data_dir / "administrative_block.gpkg", layer="administrative_block", driver="GPKG")

    return data_dir


@pytest.fixture
def config_dict(dataset_dir):
    """Configuration mapping pointing at ``dataset_dir``."""
    return {
        "name": "test_atlas",
        "data": {
            "parcels": {"path": str(dataset_dir / "land_parcel.gpkg"), "layer": "land_parcel", "crs": "EPSG:3857"},
            "entry_points": {"path": str(dataset_dir / "entry_points.gpkg"), "layer": "entry_points"},
            "roads": {"path": str(dataset_dir / "roads.gpkg"), "layer": "roads"},
            "admin_blocks": {
                "path": str(dataset_dir / "administrative_block.gpkg"),
                "layer": "administrative_block",
            },
        },
        "engine": {"max_workers": 2},
        "directions": {"enabled": False},
    }
