"""
Parcel Atlas - spatial context, vector tiles and routes for land parcels.
"""

from parcel_atlas.address import display_label, physical_address, short_code
from parcel_atlas.config_manager import AtlasConfig, ConfigManager, EngineSettings
from parcel_atlas.errors import (
    EntryPointNotFoundError,
    IndexBuildError,
    InvalidInputError,
    NoEntryPointsError,
    NoRouteError,
    NotFoundError,
    ParcelAtlasError,
    UpstreamUnavailableError,
)
from parcel_atlas.models import (
    AdministrativeBlock,
    Coordinate,
    EntryPoint,
    Parcel,
    Road,
    TrafficLevel,
    TransportMode,
)
from parcel_atlas.service import ParcelAtlas

__version__ = "0.1.0"

__all__ = [
    "ParcelAtlas",
    "ConfigManager",
    "AtlasConfig",
    "EngineSettings",
    "Parcel",
    "EntryPoint",
    "Road",
    "AdministrativeBlock",
    "Coordinate",
    "TransportMode",
    "TrafficLevel",
    "physical_address",
    "short_code",
    "display_label",
    "ParcelAtlasError",
    "NotFoundError",
    "InvalidInputError",
    "NoEntryPointsError",
    "EntryPointNotFoundError",
    "NoRouteError",
    "UpstreamUnavailableError",
    "IndexBuildError",
]
