"""
Ops Manifest Configuration Settings

Site entities are read from the sites YAML file; service settings come from
the add-on options.json, config.yaml or environment variables.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, fields
from typing import Optional

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .time_utils import normalize_clock

logger = logging.getLogger(__name__)

OPTIONS_PATH = "/data/options.json"


def _camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    s1 = re.sub("(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub("([a-z0-9])([A-Z])", r"\1_\2", s1).lower()


def _convert_keys(data: dict) -> dict:
    return {_camel_to_snake(k): v for k, v in data.items()}


def _known_fields(cls, data: dict) -> dict:
    """Drop keys the dataclass does not declare."""
    names = {f.name for f in fields(cls)}
    unknown = set(data) - names
    if unknown:
        logger.debug(f"Ignoring unknown {cls.__name__} keys: {sorted(unknown)}")
    return {k: v for k, v in data.items() if k in names}


@dataclass
class SiteSettings:
    """A site and its scheduling defaults."""

    id: str
    name: str
    timezone: str = "America/Chicago"
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    city: Optional[str] = None  # Used for geocoding when coordinates are missing
    default_lux_sensitivity: int = 3  # 1 (very late) .. 5 (very early)
    employee_pre_open_minutes: int = 30
    customer_pre_open_minutes: int = 15
    post_close_minutes: int = 0

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @classmethod
    def from_dict(cls, data: dict) -> "SiteSettings":
        """Create from dictionary."""
        converted = _convert_keys(data)
        if "lat" in converted:
            converted["latitude"] = converted.pop("lat")
        if "lng" in converted:
            converted["longitude"] = converted.pop("lng")
        return cls(**_known_fields(cls, converted))


@dataclass
class WeeklyHours:
    """Baseline hours for one weekday."""

    day_of_week: str
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    is_closed: bool = False

    @classmethod
    def from_dict(cls, day_of_week: str, data: dict) -> "WeeklyHours":
        """Create from a weekday name and its hours mapping.

        Accepts the short "open"/"close"/"closed" spellings used in config files.
        """
        converted = _convert_keys(data or {})
        return cls(
            day_of_week=day_of_week.lower(),
            open_time=normalize_clock(converted.get("open_time", converted.get("open"))),
            close_time=normalize_clock(converted.get("close_time", converted.get("close"))),
            is_closed=bool(converted.get("is_closed", converted.get("closed", False))),
        )


@dataclass
class EquipmentEntry:
    """A piece of controlled equipment or a lighting circuit."""

    id: str
    name: str
    schedule_category: str
    on_offset_minutes: Optional[int] = None  # None means "use the category default"
    off_offset_minutes: Optional[int] = None
    lux_sensitivity: Optional[int] = None
    entity_id: Optional[str] = None
    group: Optional[str] = None
    zone_type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "EquipmentEntry":
        """Create from dictionary."""
        return cls(**_known_fields(cls, _convert_keys(data)))


@dataclass
class ThermostatDevice:
    """A thermostat device installed at a site."""

    id: str
    name: str
    entity_id: Optional[str] = None  # Home Assistant climate entity
    equipment_id: Optional[str] = None  # equipment entry the thermostat controls

    @classmethod
    def from_dict(cls, data: dict) -> "ThermostatDevice":
        """Create from dictionary."""
        return cls(**_known_fields(cls, _convert_keys(data)))


@dataclass
class SetpointFields:
    """Setpoint columns shared by zones and thermostat profiles (°F)."""

    occupied_heat: Optional[float] = None
    occupied_cool: Optional[float] = None
    unoccupied_heat: Optional[float] = None
    unoccupied_cool: Optional[float] = None
    occupied_fan_mode: Optional[str] = None
    occupied_hvac_mode: Optional[str] = None
    unoccupied_fan_mode: Optional[str] = None
    unoccupied_hvac_mode: Optional[str] = None
    guardrail_min: Optional[float] = None
    guardrail_max: Optional[float] = None
    manager_offset_up: Optional[float] = None
    manager_offset_down: Optional[float] = None
    manager_override_reset_minutes: Optional[int] = None


@dataclass
class ThermostatProfile(SetpointFields):
    """Named set of setpoints shareable across zones and sites."""

    id: str = ""
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ThermostatProfile":
        """Create from dictionary."""
        return cls(**_known_fields(cls, _convert_keys(data)))


@dataclass
class HvacZone(SetpointFields):
    """An HVAC zone. Zone setpoints apply when is_override is set or no profile is linked."""

    id: str = ""
    name: str = ""
    zone_type: Optional[str] = None
    thermostat_device_id: Optional[str] = None
    equipment_id: Optional[str] = None
    profile_id: Optional[str] = None
    is_override: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "HvacZone":
        """Create from dictionary."""
        return cls(**_known_fields(cls, _convert_keys(data)))


@dataclass
class AppSettings:
    """Service-level settings."""

    sites_file: str = "sites.yaml"
    database_url: str = "sqlite:///opsmanifest.db"
    ha_url: str = "http://supervisor/core"
    ha_token: str = ""
    compile_interval_minutes: int = 15
    compile_timeout_seconds: float = 30.0
    scheduled_compile_enabled: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "AppSettings":
        """Create from dictionary."""
        return cls(**_known_fields(cls, _convert_keys(data)))

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "AppSettings":
        """Load settings from options.json, config.yaml, then the environment.

        Environment variables override values from the files.
        """
        options: dict = {}

        # 1. Home Assistant add-on options (production)
        if os.path.exists(OPTIONS_PATH):
            try:
                with open(OPTIONS_PATH) as f:
                    options = json.load(f)
                logger.debug("Loaded settings from options.json")
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Failed to load options.json: {e}")

        # 2. config.yaml (development)
        if not options:
            config_path = config_path or os.path.join(os.getcwd(), "config.yaml")
            if os.path.exists(config_path):
                try:
                    with open(config_path) as f:
                        config = yaml.safe_load(f) or {}
                    options = config.get("options", {}) or {}
                    logger.debug(f"Loaded settings from {config_path}")
                except (OSError, yaml.YAMLError) as e:
                    raise ConfigurationError(f"Cannot read {config_path}: {e}") from e

        # 3. Environment (.env is loaded automatically)
        load_dotenv()
        env = {
            "sites_file": os.getenv("OPSMANIFEST_SITES_FILE"),
            "database_url": os.getenv("OPSMANIFEST_DATABASE_URL"),
            "ha_url": os.getenv("HA_URL"),
            "ha_token": os.getenv("HA_TOKEN"),
            "compile_interval_minutes": os.getenv("OPSMANIFEST_COMPILE_INTERVAL_MINUTES"),
            "compile_timeout_seconds": os.getenv("OPSMANIFEST_COMPILE_TIMEOUT_SECONDS"),
            "scheduled_compile_enabled": os.getenv("OPSMANIFEST_SCHEDULED_COMPILE_ENABLED"),
        }

        settings = cls.from_dict(options)
        for key, value in env.items():
            if value is None:
                continue
            current = getattr(settings, key)
            try:
                if isinstance(current, bool):
                    setattr(settings, key, value.strip().lower() in ("1", "true", "yes", "on"))
                else:
                    setattr(settings, key, type(current)(value))
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {key}: {value!r}") from e

        return settings
