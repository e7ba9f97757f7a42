"""
Pydantic models for the four geometry collections and shared value types.
"""

from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field, ValidationError
from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry

from parcel_atlas.errors import InvalidInputError


class TransportMode(str, Enum):
    """Travel mode enumeration."""
    WALKING = "walking"
    DRIVING = "driving"
    CYCLING = "cycling"
    MOTORCYCLE = "motorcycle"

    @classmethod
    def parse(cls, value: Union[str, "TransportMode"]) -> "TransportMode":
        """Parse a mode name, raising InvalidInputError for unknown modes."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidInputError(f"Unsupported transport mode: {value}")


class TrafficLevel(str, Enum):
    """Traffic level bucket derived from congestion samples."""
    LOW = "low"
    MODERATE = "moderate"
    HEAVY = "heavy"
    UNKNOWN = "unknown"


class Coordinate(BaseModel):
    """Geographic coordinate in EPSG:4326."""

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    @classmethod
    def parse(cls, lat: Any, lng: Any) -> "Coordinate":
        """Validate a lat/lng pair.

        Raises:
            InvalidInputError: If either value is missing, non-numeric or out of range
        """
        try:
            return cls(lat=lat, lng=lng)
        except ValidationError as e:
            raise InvalidInputError(f"Invalid coordinates ({lat}, {lng}): {e.errors()[0]['msg']}") from e

    @classmethod
    def coerce(cls, value: Any) -> "Coordinate":
        """Accept a Coordinate, a {lat, lng} mapping or a (lat, lng) pair."""
        if isinstance(value, cls):
            return value
        if isinstance(value, dict):
            return cls.parse(value.get("lat"), value.get("lng"))
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return cls.parse(value[0], value[1])
        raise InvalidInputError(f"Cannot interpret {value!r} as a coordinate")

    def to_point(self) -> Point:
        """Shapely point in (x=lng, y=lat) order."""
        return Point(self.lng, self.lat)

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


class Parcel(BaseModel):
    """A registered unit of land."""

    gid: int
    lr_no: str = Field(..., min_length=1)
    fr_no: Optional[str] = None
    area: Optional[float] = None
    entity: Optional[str] = None
    geometry: BaseGeometry

    class Config:
        """Pydantic config."""
        arbitrary_types_allowed = True

    def summary(self) -> Dict[str, Any]:
        """Attributes without geometry."""
        return {
            "gid": self.gid,
            "lr_no": self.lr_no,
            "fr_no": self.fr_no,
            "area": self.area,
            "entity": self.entity,
        }


class EntryPoint(BaseModel):
    """Vehicular or pedestrian access point near a parcel."""

    gid: int
    label: int
    geometry: BaseGeometry

    class Config:
        """Pydantic config."""
        arbitrary_types_allowed = True


class Road(BaseModel):
    """Road network segment."""

    gid: int
    name: Optional[str] = None
    fclass: str = "unclassified"
    ref: Optional[str] = None
    geometry: BaseGeometry

    class Config:
        """Pydantic config."""
        arbitrary_types_allowed = True

    @property
    def is_named(self) -> bool:
        return bool(self.name and self.name.strip())


class AdministrativeBlock(BaseModel):
    """Named administrative region."""

    gid: int
    name: Optional[str] = None
    constituency: Optional[str] = None
    county: Optional[str] = None
    short_name: Optional[str] = None
    geometry: BaseGeometry

    class Config:
        """Pydantic config."""
        arbitrary_types_allowed = True

    def summary(self) -> Dict[str, Any]:
        """Attributes without geometry."""
        return {
            "gid": self.gid,
            "name": self.name,
            "constituency": self.constituency,
            "county": self.county,
            "short_name": self.short_name,
        }
