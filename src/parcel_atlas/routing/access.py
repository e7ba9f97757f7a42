"""
Road class tables used when choosing an entry point.
"""

from typing import Iterable, Tuple

from parcel_atlas.models import TransportMode

_MOTOR = frozenset({TransportMode.DRIVING, TransportMode.MOTORCYCLE})
_ALL = frozenset(TransportMode)


class RoadAccess:
    """Classify road classes by quality and travel-mode accessibility."""

    ROAD_QUALITY = {
        "motorway": 10,
        "motorway_link": 10,
        "trunk": 9,
        "trunk_link": 9,
        "primary": 8,
        "primary_link": 8,
        "secondary": 7,
        "secondary_link": 7,
        "tertiary": 6,
        "tertiary_link": 6,
        "residential": 5,
        "living_street": 5,
        "unclassified": 4,
        "service": 4,
        "track": 3,
        "cycleway": 2,
        "bridleway": 2,
        "pedestrian": 2,
        "footway": 2,
        "path": 2,
        "steps": 2,
    }
    DEFAULT_QUALITY = 4

    # Classes not listed are open to every mode
    MODE_ACCESS = {
        "motorway": _MOTOR,
        "motorway_link": _MOTOR,
        "trunk": _MOTOR,
        "trunk_link": _MOTOR,
        "footway": frozenset({TransportMode.WALKING}),
        "pedestrian": frozenset({TransportMode.WALKING}),
        "steps": frozenset({TransportMode.WALKING}),
        "bridleway": frozenset({TransportMode.WALKING}),
        "path": frozenset({TransportMode.WALKING, TransportMode.CYCLING}),
        "cycleway": frozenset({TransportMode.WALKING, TransportMode.CYCLING}),
    }

    # Meters of road distance per quality point lost
    PENALTY_DISTANCE_M = 20.0

    @staticmethod
    def _key(fclass: str) -> str:
        return (fclass or "").strip().lower()

    @classmethod
    def get_quality(cls, fclass: str) -> int:
        """Base quality of a road class (higher = more major road)."""
        return cls.ROAD_QUALITY.get(cls._key(fclass), cls.DEFAULT_QUALITY)

    @classmethod
    def allows(cls, fclass: str, mode: TransportMode) -> bool:
        """Check if a road class can be travelled in the given mode."""
        return mode in cls.MODE_ACCESS.get(cls._key(fclass), _ALL)

    @classmethod
    def road_quality(cls, fclass: str, distance_m: float, mode: TransportMode, max_penalty: float = 5.0) -> float:
        """Quality of one road as access to an entry point.

        Incompatible classes score 0. Otherwise the class quality minus a
        distance penalty capped at ``max_penalty``.
        """
        if not cls.allows(fclass, mode):
            return 0.0
        penalty = min(max_penalty, distance_m / cls.PENALTY_DISTANCE_M)
        return max(0.0, cls.get_quality(fclass) - penalty)

    @classmethod
    def access_quality(
        cls,
        roads: Iterable[Tuple[str, float]],
        mode: TransportMode,
        max_penalty: float = 5.0,
    ) -> float:
        """Best quality among (fclass, distance) roads; 0 when there are none."""
        return max(
            (cls.road_quality(fclass, dist, mode, max_penalty) for fclass, dist in roads),
            default=0.0,
        )

    @classmethod
    def is_accessible(cls, fclasses: Iterable[str], mode: TransportMode) -> bool:
        """False only when every nearby road class excludes the mode."""
        fclasses = list(fclasses)
        if not fclasses:
            return True
        return any(cls.allows(fclass, mode) for fclass in fclasses)
