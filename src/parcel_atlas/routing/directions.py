"""
Directions provider interface and the Mapbox Directions API client.
"""

import logging
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import requests
from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry

from parcel_atlas.errors import UpstreamUnavailableError
from parcel_atlas.models import Coordinate, TrafficLevel, TransportMode

logger = logging.getLogger(__name__)

MAPBOX_DIRECTIONS_URL = "https://api.mapbox.com/directions/v5/mapbox"
MAPBOX_GEOCODING_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places"


@dataclass
class DirectionsStep:
    """One maneuver of a provider route."""
    name: str
    geometry: Optional[BaseGeometry]
    distance_m: float
    duration_s: float
    maneuver: Optional[str] = None
    instruction: Optional[str] = None


@dataclass
class DirectionsResult:
    """Turn-by-turn route returned by a provider."""
    steps: List[DirectionsStep]
    total_distance: float
    total_duration: float
    congestion_samples: List[str] = field(default_factory=list)


class DirectionsProvider(ABC):
    """External turn-by-turn directions service."""

    name = "directions"

    @abstractmethod
    def get_directions(
        self,
        origin: Coordinate,
        destination: Coordinate,
        mode: TransportMode,
    ) -> DirectionsResult:
        """Route between two coordinates.

        Implementations must bound every call with their own timeout; the
        routing engine waits on this call and only falls back to stitching
        once it returns or raises.

        Raises:
            UpstreamUnavailableError: On timeout, HTTP error or unusable response
        """
        pass

    def road_name(self, coordinate: Coordinate) -> Optional[str]:
        """Name of the road at a coordinate, or None if the provider has none.

        The same timeout requirement as get_directions applies.

        Raises:
            UpstreamUnavailableError: On timeout, HTTP error or unusable response
        """
        return None


def traffic_level(samples: Optional[Sequence[str]]) -> TrafficLevel:
    """Bucket per-segment congestion samples into a traffic level."""
    if not samples:
        return TrafficLevel.UNKNOWN
    counts = Counter(str(s).lower() for s in samples)
    total = len(samples)
    if counts["severe"] > 0 or counts["heavy"] > total / 2:
        return TrafficLevel.HEAVY
    if counts["moderate"] > total / 3:
        return TrafficLevel.MODERATE
    return TrafficLevel.LOW


class MapboxDirectionsProvider(DirectionsProvider):
    """Mapbox Directions API v5 client."""

    name = "mapbox"

    PROFILES = {
        TransportMode.DRIVING: "driving-traffic",
        TransportMode.MOTORCYCLE: "driving-traffic",
        TransportMode.WALKING: "walking",
        TransportMode.CYCLING: "cycling",
    }

    def __init__(
        self,
        access_token: str,
        base_url: str = MAPBOX_DIRECTIONS_URL,
        timeout_s: float = 10.0,
        geocoding_url: str = MAPBOX_GEOCODING_URL,
    ):
        """Initialize the client.

        Args:
            access_token: Mapbox access token
            base_url: Directions endpoint up to (excluding) the profile
            timeout_s: Request timeout in seconds
            geocoding_url: Reverse geocoding endpoint up to (excluding) the query
        """
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.geocoding_url = geocoding_url.rstrip("/")

    def _get_json(self, url: str, params: Dict[str, Any], what: str) -> Dict[str, Any]:
        try:
            r = requests.get(url, params=params, timeout=self.timeout_s)
            r.raise_for_status()
            return r.json()
        except requests.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            raise UpstreamUnavailableError(f"Mapbox {what} failed: {status_code} {e}") from e
        except requests.RequestException as e:
            raise UpstreamUnavailableError(f"Mapbox {what} request failed: {e}") from e
        except ValueError as e:
            raise UpstreamUnavailableError(f"Mapbox {what} returned invalid JSON: {e}") from e

    def road_name(self, coordinate: Coordinate) -> Optional[str]:
        url = f"{self.geocoding_url}/{coordinate.lng},{coordinate.lat}.json"
        params = {"access_token": self.access_token, "types": "address", "limit": 1}
        data = self._get_json(url, params, "geocoding")

        features = data.get("features") if isinstance(data, dict) else None
        if not features:
            return None
        feature = features[0] or {}
        return feature.get("text") or feature.get("place_name") or None

    def get_directions(self, origin: Coordinate, destination: Coordinate, mode: TransportMode) -> DirectionsResult:
        profile = self.PROFILES[TransportMode.parse(mode)]
        url = f"{self.base_url}/{profile}/{origin.lng},{origin.lat};{destination.lng},{destination.lat}"
        params = {
            "access_token": self.access_token,
            "geometries": "geojson",
            "steps": "true",
            "overview": "full",
            "annotations": "congestion,distance,duration",
        }

        return self._parse(self._get_json(url, params, "directions"))

    def _parse(self, data: Dict[str, Any]) -> DirectionsResult:
        code = data.get("code", "Ok")
        routes = data.get("routes") or []
        if code != "Ok" or not routes:
            raise UpstreamUnavailableError(f"Mapbox directions returned no route (code={code})")

        route = routes[0]
        steps = []
        congestion: List[str] = []
        try:
            for leg in route.get("legs", []):
                for step in leg.get("steps", []):
                    maneuver = step.get("maneuver") or {}
                    geometry = shape(step["geometry"]) if step.get("geometry") else None
                    steps.append(DirectionsStep(
                        name=step.get("name") or "",
                        geometry=geometry,
                        distance_m=float(step.get("distance", 0.0)),
                        duration_s=float(step.get("duration", 0.0)),
                        maneuver=maneuver.get("type"),
                        instruction=maneuver.get("instruction"),
                    ))
                annotation = leg.get("annotation") or {}
                congestion.extend(annotation.get("congestion") or [])

            return DirectionsResult(
                steps=steps,
                total_distance=float(route.get("distance", 0.0)),
                total_duration=float(route.get("duration", 0.0)),
                congestion_samples=congestion,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise UpstreamUnavailableError(f"Unexpected Mapbox directions payload: {e}") from e
