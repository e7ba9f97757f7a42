"""
Parcel search, paginated listing and registration code suggestions.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from parcel_atlas.context.resolver import ContextResolver, ParcelContext
from parcel_atlas.errors import InvalidInputError
from parcel_atlas.models import Coordinate
from parcel_atlas.store.snapshot import Snapshot, SnapshotHandle

logger = logging.getLogger(__name__)

MAX_SEARCH_RESULTS = 50
DEFAULT_RADIUS_M = 1000.0
MIN_RADIUS_M = 1.0
MAX_RADIUS_M = 10000.0
MAX_PAGE_SIZE = 500
MAX_SUGGESTIONS = 20


def _check_int(name: str, value: Any, low: int, high: Optional[int] = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{name} must be an integer, got {value!r}")
    if value < low or (high is not None and value > high):
        bounds = f"between {low} and {high}" if high is not None else f"at least {low}"
        raise InvalidInputError(f"{name} must be {bounds}, got {value}")
    return value


@dataclass
class ParcelSummary:
    """Parcel attributes plus centroid, as returned by search endpoints."""
    gid: int
    lr_no: str
    fr_no: Optional[str]
    area: Optional[float]
    centroid: Coordinate
    distance_m: Optional[float] = None

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot, gid: int, distance_m: Optional[float] = None) -> "ParcelSummary":
        parcel = snapshot.parcels[gid]
        centroid = snapshot.parcel_index.geometry(gid).centroid
        return cls(
            gid=gid,
            lr_no=parcel.lr_no,
            fr_no=parcel.fr_no,
            area=parcel.area,
            centroid=Coordinate(lat=centroid.y, lng=centroid.x),
            distance_m=distance_m,
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "gid": self.gid,
            "lr_no": self.lr_no,
            "fr_no": self.fr_no,
            "area": self.area,
            "centroid": self.centroid.to_dict(),
        }
        if self.distance_m is not None:
            result["distance"] = round(self.distance_m, 2)
        return result


class ParcelSearch:
    """Attribute and proximity search over the active snapshot's parcels."""

    def __init__(self, handle: SnapshotHandle, resolver: Optional[ContextResolver] = None):
        self.handle = handle
        self.resolver = resolver or ContextResolver(handle)

    def search(
        self,
        lr_no: Optional[str] = None,
        fr_no: Optional[str] = None,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        radius_m: Optional[float] = None,
        limit: int = MAX_SEARCH_RESULTS,
        with_context: bool = False,
    ) -> Union[List[ParcelSummary], List[ParcelContext]]:
        """Find parcels by code substring and/or distance from a point.

        Args:
            lr_no: Case-insensitive substring of the registration code
            fr_no: Case-insensitive substring of the secondary code
            lat, lng: Search center (both or neither)
            radius_m: Search radius, 1..10000 m (default 1000)
            limit: Maximum results, 1..50
            with_context: Return each hit's full context (entry points,
                nearby roads, administrative block, centroid) instead of
                a summary

        Returns:
            Summaries (or contexts) ordered by distance then id when
            searching around a point, otherwise by registration code then id
        """
        _check_int("limit", limit, 1, MAX_SEARCH_RESULTS)
        if (lat is None) != (lng is None):
            raise InvalidInputError("lat and lng must be given together")

        radius = DEFAULT_RADIUS_M if radius_m is None else radius_m
        if isinstance(radius, bool) or not isinstance(radius, (int, float)):
            raise InvalidInputError(f"radius must be a number, got {radius!r}")
        if not MIN_RADIUS_M <= radius <= MAX_RADIUS_M:
            raise InvalidInputError(f"radius must be between {MIN_RADIUS_M:.0f} and {MAX_RADIUS_M:.0f} m, got {radius}")

        snapshot = self.handle.current()
        lr_query = lr_no.strip().lower() if lr_no and lr_no.strip() else None
        fr_query = fr_no.strip().lower() if fr_no and fr_no.strip() else None

        def matches(gid: int) -> bool:
            parcel = snapshot.parcels[gid]
            if lr_query and lr_query not in parcel.lr_no.lower():
                return False
            if fr_query and (not parcel.fr_no or fr_query not in parcel.fr_no.lower()):
                return False
            return True

        if lat is not None:
            point = Coordinate.parse(lat, lng).to_point()
            hits = snapshot.parcel_index.nearest(point, k=limit, max_distance=float(radius), where=matches)
        else:
            found = sorted(
                (gid for gid in snapshot.parcels if matches(gid)),
                key=lambda gid: (snapshot.parcels[gid].lr_no, gid),
            )
            hits = [(gid, None) for gid in found[:limit]]

        if with_context:
            return [self.resolver.build_context(snapshot, gid) for gid, _ in hits]
        return [ParcelSummary.from_snapshot(snapshot, gid, dist) for gid, dist in hits]

    def list_parcels(self, page: int = 1, limit: int = 50) -> Dict[str, Any]:
        """One page of parcels ordered by id, with pagination metadata."""
        _check_int("page", page, 1)
        _check_int("limit", limit, 1, MAX_PAGE_SIZE)

        snapshot = self.handle.current()
        gids = sorted(snapshot.parcels)
        total = len(gids)
        start = (page - 1) * limit
        data = [ParcelSummary.from_snapshot(snapshot, gid) for gid in gids[start:start + limit]]

        return {
            "data": [summary.to_dict() for summary in data],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit),
            },
        }

    def suggest(self, q: Optional[str], limit: int = 5) -> List[ParcelSummary]:
        """Registration code suggestions; prefix matches come first."""
        _check_int("limit", limit, 1, MAX_SUGGESTIONS)
        query = (q or "").strip().lower()
        if not query:
            return []

        snapshot = self.handle.current()
        found = [gid for gid, parcel in snapshot.parcels.items() if query in parcel.lr_no.lower()]
        found.sort(key=lambda gid: (
            not snapshot.parcels[gid].lr_no.lower().startswith(query),
            snapshot.parcels[gid].lr_no,
            gid,
        ))
        return [ParcelSummary.from_snapshot(snapshot, gid) for gid in found[:limit]]
