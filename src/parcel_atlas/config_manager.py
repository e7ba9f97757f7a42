"""
Configuration manager for the parcel atlas.

Loads configuration from YAML files, validates settings,
and provides environment variable substitution.
"""

import logging
import os
import re
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from parcel_atlas.index.geometry import WGS84

logger = logging.getLogger(__name__)

REQUIRED_COLLECTIONS = ("parcels", "entry_points", "roads", "admin_blocks")


@dataclass
class DataSource:
    """Where one geometry collection is read from."""
    path: Path
    layer: Optional[str] = None
    crs: str = WGS84

    def to_dict(self) -> Dict[str, Any]:
        return {"path": str(self.path), "layer": self.layer, "crs": self.crs}


@dataclass
class EngineSettings:
    """Tunable thresholds and weights of the spatial engine."""
    parcel_point_tolerance_m: float = 1.0
    entry_point_radius_m: float = 5.0
    road_search_radius_m: float = 50.0
    max_roads_per_entry_point: int = 3
    access_quality_radius_m: float = 100.0
    distance_weight: float = 0.6
    quality_weight: float = 0.4
    max_quality_penalty: float = 5.0
    intermediate_corridor_m: float = 1000.0
    max_intermediate_roads: int = 5
    tile_extent: int = 4096
    tile_buffer: int = 256
    tile_layer: str = "parcels"
    max_workers: int = 4
    alternatives_inaccessible_last: bool = False

    @classmethod
    def from_dict(cls, values: Optional[Dict[str, Any]]) -> "EngineSettings":
        """Build settings, rejecting unknown keys."""
        values = values or {}
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown engine settings: {', '.join(unknown)}")
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DirectionsSettings:
    """External directions provider settings."""
    enabled: bool = False
    provider: str = "mapbox"
    access_token: Optional[str] = None
    base_url: str = "https://api.mapbox.com/directions/v5/mapbox"
    timeout_s: float = 10.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AtlasConfig:
    """Validated parcel atlas configuration."""
    name: str
    data: Dict[str, DataSource]
    engine: EngineSettings = field(default_factory=EngineSettings)
    directions: DirectionsSettings = field(default_factory=DirectionsSettings)
    log_level: str = "INFO"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "log_level": self.log_level,
            "data": {name: source.to_dict() for name, source in self.data.items()},
            "engine": self.engine.to_dict(),
            "directions": self.directions.to_dict(),
        }


class ConfigManager:
    """Manages parcel atlas configuration."""

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to configuration YAML file (optional)
        """
        self.config_path = config_path
        self._config: Optional[Dict[str, Any]] = None

    def load(self, config_path: Optional[Path] = None) -> AtlasConfig:
        """Load and validate configuration from YAML file.

        Args:
            config_path: Path to configuration file (overrides init path)

        Returns:
            AtlasConfig with validated settings

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If configuration is invalid
        """
        path = config_path or self.config_path
        if path is None:
            raise ValueError("No configuration path provided")

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "r") as f:
            config = yaml.safe_load(f) or {}

        logger.info(f"Loaded configuration from {path}")
        return self.load_dict(config, base_dir=path.parent)

    def load_dict(self, config: Dict[str, Any], base_dir: Optional[Path] = None) -> AtlasConfig:
        """Validate an already parsed configuration mapping.

        Relative data paths are resolved against ``base_dir`` when given.
        """
        config = self._substitute_env_vars(config)
        self._validate_config(config)
        self._config = config
        return self._create_atlas_config(config, base_dir)

    def _substitute_env_vars(self, config: Any) -> Any:
        """Recursively substitute environment variables in configuration.

        Supports syntax: ${VAR_NAME} or ${VAR_NAME:default_value}
        """
        if isinstance(config, dict):
            return {key: self._substitute_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_env_var_string(config)
        else:
            return config

    def _substitute_env_var_string(self, value: str) -> str:
        # Pattern: ${VAR_NAME} or ${VAR_NAME:default}
        pattern = r"\$\{([^}:]+)(?::([^}]*))?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else ""
            return os.environ.get(var_name, default_value)

        return re.sub(pattern, replacer, value)

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """Validate configuration structure and required fields.

        Raises:
            ValueError: If configuration is invalid
        """
        if not isinstance(config, dict):
            raise ValueError("Configuration must be a mapping")

        if "name" not in config:
            raise ValueError("Configuration missing required field: name")

        if "data" not in config:
            raise ValueError("Configuration missing required field: data")

        data = config["data"]
        if not isinstance(data, dict):
            raise ValueError("Data must be a dictionary")

        for collection in REQUIRED_COLLECTIONS:
            if collection not in data:
                raise ValueError(f"Data configuration missing collection: {collection}")
            source = data[collection]
            if not isinstance(source, dict) or "path" not in source:
                raise ValueError(f"Collection {collection} configuration missing required field: path")

        engine = config.get("engine") or {}
        if not isinstance(engine, dict):
            raise ValueError("Engine settings must be a dictionary")

        directions = config.get("directions") or {}
        if not isinstance(directions, dict):
            raise ValueError("Directions settings must be a dictionary")
        unknown = sorted(set(directions) - {f.name for f in fields(DirectionsSettings)})
        if unknown:
            raise ValueError(f"Unknown directions settings: {', '.join(unknown)}")
        if directions.get("enabled") and directions.get("provider", "mapbox") != "mapbox":
            raise ValueError(f"Unsupported directions provider: {directions.get('provider')}")

    def _create_atlas_config(self, config: Dict[str, Any], base_dir: Optional[Path]) -> AtlasConfig:
        data = {}
        for collection in REQUIRED_COLLECTIONS:
            source = config["data"][collection]
            path = Path(source["path"]).expanduser()
            if base_dir is not None and not path.is_absolute():
                path = base_dir / path
            data[collection] = DataSource(
                path=path,
                layer=source.get("layer"),
                crs=source.get("crs") or WGS84,
            )

        directions = dict(config.get("directions") or {})
        # Empty token after substitution means "not configured"
        if not directions.get("access_token"):
            directions["access_token"] = None
        if "timeout_s" in directions:
            directions["timeout_s"] = float(directions["timeout_s"])

        return AtlasConfig(
            name=config["name"],
            data=data,
            engine=EngineSettings.from_dict(config.get("engine")),
            directions=DirectionsSettings(**directions),
            log_level=str(config.get("log_level", "INFO")).upper(),
        )

    def save_example_config(self, output_path: Path) -> None:
        """Save an example configuration file.

        Args:
            output_path: Path where to save example config
        """
        example_config = {
            "name": "parcel_atlas",
            "log_level": "INFO",
            "data": {
                "parcels": {"path": "data/land_parcel.gpkg", "layer": "land_parcel", "crs": "EPSG:3857"},
                "entry_points": {"path": "data/entry_points.gpkg", "layer": "entry_points", "crs": "EPSG:4326"},
                "roads": {"path": "data/roads.gpkg", "layer": "roads", "crs": "EPSG:4326"},
                "admin_blocks": {
                    "path": "data/administrative_block.gpkg",
                    "layer": "administrative_block",
                    "crs": "EPSG:4326",
                },
            },
            "engine": EngineSettings().to_dict(),
            "directions": {
                "enabled": False,
                "provider": "mapbox",
                "access_token": "${MAPBOX_ACCESS_TOKEN:}",
                "base_url": "https://api.mapbox.com/directions/v5/mapbox",
                "timeout_s": 10,
            },
        }

        with open(output_path, "w") as f:
            yaml.dump(example_config, f, default_flow_style=False, sort_keys=False)

        logger.info(f"Saved example configuration to {output_path}")
