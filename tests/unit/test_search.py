"""
Unit tests for parcel search, listing and suggestions.
"""

import pytest

from parcel_atlas.context.search import ParcelSearch
from parcel_atlas.errors import InvalidInputError


@pytest.fixture
def search(handle):
    return ParcelSearch(handle)


class TestSearch:
    """Test attribute and proximity search."""

    def test_lr_no_substring(self, search):
        """Test case-insensitive substring match ordered by code."""
        results = search.search(lr_no="209")
        assert [r.lr_no for r in results] == ["209/1234", "209/9999"]
        assert results[0].distance_m is None

    def test_fr_no_substring(self, search):
        """Test the secondary code filter."""
        assert [r.gid for r in search.search(fr_no="fr/3")] == [3]

    def test_radius(self, search):
        """Test proximity search orders by distance and honours the radius."""
        results = search.search(lat=-1.2895, lng=36.8202, radius_m=100)
        assert [r.gid for r in results] == [1, 2]
        assert results[0].distance_m == 0.0
        assert results[1].distance_m == pytest.approx(89.0, abs=0.5)

    def test_radius_default(self, search):
        """Test the default 1 km radius reaches every sample parcel."""
        assert len(search.search(lat=-1.2895, lng=36.8202)) == 3

    def test_combined_filters(self, search):
        """Test code and proximity filters combine."""
        results = search.search(lr_no="209", lat=-1.2895, lng=36.8202, radius_m=500)
        assert [r.gid for r in results] == [2, 3]

    def test_limit(self, search):
        """Test results are capped at limit."""
        assert len(search.search(lr_no="/", limit=1)) == 1

    @pytest.mark.parametrize("kwargs", [
        {"limit": 0},
        {"limit": 51},
        {"lat": -1.29},
        {"lat": -1.29, "lng": 36.82, "radius_m": 0},
        {"lat": -1.29, "lng": 36.82, "radius_m": 20000},
        {"lat": 120, "lng": 36.82},
    ])
    def test_invalid_parameters(self, search, kwargs):
        """Test out-of-range parameters are invalid input."""
        with pytest.raises(InvalidInputError):
            search.search(**kwargs)

    def test_with_context(self, search):
        """Test each hit can carry its entry points, roads and admin block."""
        results = search.search(lat=-1.2895, lng=36.8202, radius_m=10, with_context=True)
        assert len(results) == 1

        context = results[0]
        assert context.parcel.lr_no == "LR/123/45"
        assert [ep.label for ep in context.entry_points] == [1, 2]
        assert context.entry_points[0].access_road.name == "Main Rd"
        assert context.admin_block.short_name == "KLM"

        result = context.to_dict()
        assert result["administrative_block"]["name"] == "Kilimani"
        assert result["centroid"]["lng"] == pytest.approx(36.8202)

    def test_with_context_by_code(self, search):
        """Test code searches return contexts in code order."""
        results = search.search(lr_no="209", with_context=True)
        assert [c.parcel.gid for c in results] == [2, 3]

    def test_summary_dict(self, search):
        """Test the summary serialization."""
        result = search.search(lat=-1.2895, lng=36.8202, radius_m=10)[0].to_dict()
        assert result["lr_no"] == "LR/123/45"
        assert result["distance"] == 0.0
        assert result["centroid"]["lng"] == pytest.approx(36.8202)


class TestListParcels:
    """Test paginated listing."""

    def test_first_page(self, search):
        """Test page contents and pagination metadata."""
        page = search.list_parcels(page=1, limit=2)
        assert [p["gid"] for p in page["data"]] == [1, 2]
        assert page["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}

    def test_last_page(self, search):
        """Test the final partial page."""
        assert [p["gid"] for p in search.list_parcels(page=2, limit=2)["data"]] == [3]

    def test_page_past_end(self, search):
        """Test pages past the end are empty."""
        assert search.list_parcels(page=5, limit=2)["data"] == []

    @pytest.mark.parametrize("page,limit", [(0, 10), (1, 0), (1, 501), ("1", 10)])
    def test_invalid_pagination(self, search, page, limit):
        """Test invalid page or limit values."""
        with pytest.raises(InvalidInputError):
            search.list_parcels(page=page, limit=limit)


class TestSuggest:
    """Test registration code suggestions."""

    def test_prefix_first(self, search):
        """Test prefix matches are listed before substring matches."""
        assert [s.lr_no for s in search.suggest("2")] == ["209/1234", "209/9999", "LR/123/45"]

    def test_case_insensitive(self, search):
        """Test queries ignore case."""
        assert [s.gid for s in search.suggest("lr")] == [1]

    def test_limit(self, search):
        """Test the limit caps suggestions."""
        assert len(search.suggest("2", limit=1)) == 1
        with pytest.raises(InvalidInputError):
            search.suggest("2", limit=21)

    def test_empty_query(self, search):
        """Test an empty query suggests nothing."""
        assert search.suggest("") == []
        assert search.suggest(None) == []
