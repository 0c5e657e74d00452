"""
Ops Manifest Data Models

Value types passed between the resolver, scheduler, directive engine and
assembler. Clock values are minutes since local midnight unless noted.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Optional

from .time_utils import is_within, minutes_to_clock, parse_clock


@dataclass(frozen=True)
class ResolvedHours:
    """Effective store hours for one site and date."""

    open_time: Optional[str]
    close_time: Optional[str]
    is_closed: bool
    source: str = "weekly"  # "weekly", "exception" or "missing"
    rule_name: Optional[str] = None

    @property
    def open_minutes(self) -> Optional[int]:
        return parse_clock(self.open_time)

    @property
    def close_minutes(self) -> Optional[int]:
        return parse_clock(self.close_time)

    @property
    def is_open_day(self) -> bool:
        """Open with both open and close known."""
        return (
            not self.is_closed
            and self.open_minutes is not None
            and self.close_minutes is not None
        )

    def occupied_at(self, minute: Optional[int]) -> bool:
        if minute is None or not self.is_open_day:
            return False
        return is_within(minute, self.open_minutes, self.close_minutes)

    def to_dict(self) -> dict:
        return {
            "open": self.open_time,
            "close": self.close_time,
            "is_closed": self.is_closed,
            "source": self.source,
            "rule_name": self.rule_name,
        }


@dataclass(frozen=True)
class SunTimes:
    """Sun events for a site and date, in local minutes."""

    sunrise: Optional[int] = None
    sunset: Optional[int] = None
    civil_dawn: Optional[int] = None
    civil_dusk: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            name: (minutes_to_clock(value) if value is not None else None)
            for name, value in asdict(self).items()
        }


@dataclass(frozen=True)
class WeatherSnapshot:
    """Current conditions from the weather collaborator."""

    temperature: Optional[float] = None
    feels_like: Optional[float] = None
    humidity: Optional[float] = None
    cloud_cover: Optional[float] = None
    condition: Optional[str] = None
    lux_estimate: Optional[float] = None
    sun_elevation: Optional[float] = None
    wind_speed: Optional[float] = None
    recorded_at: Optional[str] = None  # ISO format

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ThermostatReading:
    """Live thermostat state. The actual setpoint may differ from the profile."""

    current_temperature: Optional[float] = None
    current_setpoint: Optional[float] = None
    hvac_mode: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class EquipmentSchedule:
    """On/off times computed for one equipment entry."""

    equipment_id: str
    name: str
    schedule_category: str
    schedule_source: str
    on_time: Optional[str] = None
    off_time: Optional[str] = None
    on_offset_minutes: Optional[int] = None
    off_offset_minutes: Optional[int] = None
    offset_sources: dict = field(default_factory=dict)
    entity_id: Optional[str] = None
    group: Optional[str] = None
    zone_type: Optional[str] = None
    # Exterior lighting only
    morning_on_time: Optional[str] = None
    morning_on_condition: Optional[str] = None
    morning_off_time: Optional[str] = None
    morning_off_trigger: Optional[str] = None
    evening_on_time: Optional[str] = None
    evening_on_trigger: Optional[str] = None
    evening_off_time: Optional[str] = None
    lux_sensitivity: Optional[int] = None
    lux_tier: Optional[dict] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        if self.schedule_category != "exterior_lux":
            for key in (
                "morning_on_time",
                "morning_on_condition",
                "morning_off_time",
                "morning_off_trigger",
                "evening_on_time",
                "evening_on_trigger",
                "evening_off_time",
                "lux_sensitivity",
                "lux_tier",
            ):
                data.pop(key)
        return data


@dataclass(frozen=True)
class DailyManifest:
    """Compiled schedule and directive snapshot for one site on one date."""

    site_id: str
    manifest_date: date
    hours: ResolvedHours
    phase: str
    evaluated_at: Optional[str]  # "HH:MM" site-local, stored beside the document
    equipment: tuple = ()
    thermostats: tuple = ()
    sun_times: Optional[SunTimes] = None
    weather: Optional[WeatherSnapshot] = None
    site_config: Optional[dict] = None
    errors: tuple = ()

    def to_document(self) -> dict[str, Any]:
        """JSON-serialisable manifest document."""
        document = {
            "site_id": self.site_id,
            "date": self.manifest_date.isoformat(),
            "store_hours": self.hours.to_dict(),
            "phase": self.phase,
            "equipment": [entry.to_dict() for entry in self.equipment],
            "thermostats": [dict(entry) for entry in self.thermostats],
            "errors": list(self.errors),
        }
        if self.sun_times is not None:
            document["sun_times"] = self.sun_times.to_dict()
        if self.weather is not None:
            document["weather"] = self.weather.to_dict()
        if self.site_config is not None:
            document["site_config"] = dict(self.site_config)
        return document

    def to_json(self) -> str:
        """Serialised document; identical inputs give byte-identical output."""
        return json.dumps(self.to_document(), sort_keys=True)
