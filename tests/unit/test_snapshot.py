"""
Unit tests for geometry store snapshots and the snapshot handle.
"""

import threading

import pytest
from pyproj import Transformer
from shapely.geometry import LineString, Polygon, box
from shapely.ops import transform

from parcel_atlas.errors import IndexBuildError, ParcelAtlasError
from parcel_atlas.models import Parcel, Road
from parcel_atlas.store.snapshot import Snapshot, SnapshotHandle


class TestSnapshotBuild:
    """Test building immutable snapshots."""

    def test_build_counts(self, snapshot):
        """Test every collection is indexed."""
        assert snapshot.stats() == {
            "parcels": 3,
            "entry_points": 3,
            "roads": 6,
            "admin_blocks": 2,
            "diagnostics": 0,
        }
        assert snapshot.parcel_gid("LR/123/45") == 1
        assert snapshot.parcel_gid("missing") is None

    def test_parcel_indexes_use_expected_crs(self, snapshot):
        """Test parcels get a geographic query index and a Web Mercator tile index."""
        assert snapshot.parcel_index.crs == "EPSG:4326"
        assert snapshot.parcel_index.geographic
        assert snapshot.parcel_tile_index.crs == "EPSG:3857"
        assert not snapshot.parcel_tile_index.geographic
        assert abs(snapshot.parcel_tile_index.geometry(1).bounds[0]) > 1_000_000

    def test_accepts_mappings(self):
        """Test plain dict records are validated into models."""
        snapshot = Snapshot.build(
            parcels=[{"gid": 1, "lr_no": "A/1", "geometry": box(36.82, -1.29, 36.821, -1.289)}],
            entry_points=[],
            roads=[],
            admin_blocks=[],
        )
        assert isinstance(snapshot.parcels[1], Parcel)

    def test_duplicate_lr_no_dropped(self, parcels, entry_points, roads, admin_blocks):
        """Test registration codes stay unique; the lowest gid wins."""
        parcels = parcels + [
            Parcel(gid=9, lr_no="LR/123/45", geometry=box(36.83, -1.29, 36.831, -1.289)),
        ]
        snapshot = Snapshot.build(parcels, entry_points, roads, admin_blocks)
        assert 9 not in snapshot.parcels
        assert snapshot.parcel_gid("LR/123/45") == 1
        assert any(d.feature_id == 9 and d.action == "dropped" for d in snapshot.diagnostics)

    def test_invalid_geometries_repaired_or_dropped(self, parcels, entry_points, roads, admin_blocks):
        """Test bad geometries produce diagnostics instead of failing the build."""
        parcels = parcels + [
            Parcel(gid=4, lr_no="BOW/1",
                   geometry=Polygon([(36.83, -1.28), (36.831, -1.279), (36.831, -1.28), (36.83, -1.279)])),
        ]
        roads = roads + [
            Road(gid=99, name="Stub", geometry=LineString([(36.82, -1.29), (36.82, -1.29)])),
        ]
        snapshot = Snapshot.build(parcels, entry_points, roads, admin_blocks)

        assert 4 in snapshot.parcels
        assert snapshot.parcel_index.geometry(4).is_valid
        assert 99 not in snapshot.roads
        actions = {(d.collection, d.feature_id): d.action for d in snapshot.diagnostics}
        assert actions[("parcels", 4)] == "repaired"
        assert actions[("roads", 99)] == "dropped"

    def test_unusable_collection_is_fatal(self, parcels, entry_points, admin_blocks):
        """Test a collection with no usable geometry raises IndexBuildError."""
        roads = [Road(gid=1, name="Stub", geometry=LineString([(0, 0), (0, 0)]))]
        with pytest.raises(IndexBuildError):
            Snapshot.build(parcels, entry_points, roads, admin_blocks)

    def test_projected_parcels_converted(self, parcels, entry_points, roads, admin_blocks):
        """Test parcels stored in EPSG:3857 are converted at build time."""
        to_merc = Transformer.from_crs("EPSG:4326", "EPSG:3857", always_xy=True)
        parcels = [
            p.copy(update={"geometry": transform(to_merc.transform, p.geometry)})
            for p in parcels
        ]
        snapshot = Snapshot.build(
            parcels, entry_points, roads, admin_blocks,
            crs={"parcels": "EPSG:3857"},
        )
        minx, miny, maxx, maxy = snapshot.parcel_index.geometry(1).bounds
        assert minx == pytest.approx(36.8200)
        assert maxy == pytest.approx(-1.2885)
        assert snapshot.parcel_tile_index.geometry(1).bounds[0] == pytest.approx(
            parcels[0].geometry.bounds[0]
        )


class TestSnapshotHandle:
    """Test atomic snapshot replacement."""

    def test_current_without_snapshot(self):
        """Test reading before any load is an error."""
        handle = SnapshotHandle()
        assert not handle.loaded
        with pytest.raises(ParcelAtlasError):
            handle.current()

    def test_install_swaps_and_returns_previous(self, snapshot, parcels, roads):
        """Test install replaces the snapshot and hands back the old one."""
        handle = SnapshotHandle(snapshot)
        replacement = Snapshot.build(parcels[:1], [], roads, [], version=2)

        previous = handle.install(replacement)

        assert previous is snapshot
        assert handle.current() is replacement
        assert handle.version == 2

    def test_old_snapshot_usable_after_swap(self, snapshot, parcels, roads):
        """Test readers holding the old snapshot keep a complete view."""
        handle = SnapshotHandle(snapshot)
        held = handle.current()
        handle.install(Snapshot.build(parcels[:1], [], roads, [], version=2))

        assert len(held.parcels) == 3
        assert held.parcel_index.containing(parcels[2].geometry.centroid) == 3

    def test_concurrent_readers_see_whole_snapshots(self, snapshot, parcels, roads):
        """Test readers never observe a snapshot mid-swap."""
        handle = SnapshotHandle(snapshot)
        small = Snapshot.build(parcels[:1], [], roads, [], version=2)
        seen = []

        def reader():
            for _ in range(200):
                current = handle.current()
                seen.append((current.version, len(current.parcels), len(current.parcel_index)))

        threads = [threading.Thread(target=reader) for _ in range(4)]
        for t in threads:
            t.start()
        for i in range(50):
            handle.install(small if i % 2 == 0 else snapshot)
        for t in threads:
            t.join()

        assert set(seen) <= {(1, 3, 3), (2, 1, 1)}
