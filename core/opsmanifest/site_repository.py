"""
Site Repository

Read-only access to site entities: the site itself, weekly hours, exception
rules, equipment, thermostats, HVAC zones and thermostat profiles.

The YAML layout mirrors the add-on config.yaml convention:

    thermostat_profiles:
      - id: standard
        occupied_heat: 68
        ...
    sites:
      - id: store-001
        name: Main Street
        timezone: America/Chicago
        weekly_hours:
          monday: {open: "08:00", close: "22:00"}
          sunday: {closed: true}
        exceptions: [...]
        equipment: [...]
        thermostats: [...]
        hvac_zones: [...]
        readings: {tstat-1: {current_temperature: 71}}
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

import yaml

from .exception_rules import ExceptionRule, rule_from_dict
from .exceptions import ConfigurationError, RuleError, SiteNotFoundError
from .models import ThermostatReading
from .settings import (
    EquipmentEntry,
    HvacZone,
    SiteSettings,
    ThermostatDevice,
    ThermostatProfile,
    WeeklyHours,
    _convert_keys,
)
from .time_utils import WEEKDAY_NAMES

logger = logging.getLogger(__name__)


@dataclass
class SiteInputs:
    """Everything the compiler reads for one site."""

    site: SiteSettings
    weekly_hours: list[WeeklyHours] = field(default_factory=list)
    rules: list[ExceptionRule] = field(default_factory=list)
    equipment: list[EquipmentEntry] = field(default_factory=list)
    thermostats: list[ThermostatDevice] = field(default_factory=list)
    zones: list[HvacZone] = field(default_factory=list)
    profiles: list[ThermostatProfile] = field(default_factory=list)
    schedule_snapshot: dict = field(default_factory=dict)  # equipment id -> {"on_time", "off_time"}

    def zone_for(self, device: ThermostatDevice) -> Optional[HvacZone]:
        """The zone the thermostat is assigned to, if any.

        A zone naming the device directly wins over one linked through the
        device's equipment entry.
        """
        zone = next((z for z in self.zones if z.thermostat_device_id == device.id), None)
        if zone is None and device.equipment_id:
            zone = next((z for z in self.zones if z.equipment_id == device.equipment_id), None)
        return zone


class YamlSiteRepository:
    """Site entities read from a YAML file.

    The file is re-read on every call so configuration edits apply to the
    next compilation without a restart.
    """

    def __init__(self, path: str):
        self.path = path

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            raise ConfigurationError(f"Sites file not found: {self.path}")
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read sites file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Sites file {self.path} must contain a mapping")
        return data

    def _raw_site(self, data: dict, site_id: str) -> dict:
        for raw in data.get("sites") or []:
            if str(raw.get("id")) == site_id:
                return raw
        raise SiteNotFoundError(f"Site not found: {site_id}")

    def site_ids(self) -> list[str]:
        """IDs of all configured sites, in file order."""
        return [str(raw.get("id")) for raw in self._read().get("sites") or []]

    def list_sites(self) -> list[SiteSettings]:
        return [SiteSettings.from_dict(raw) for raw in self._read().get("sites") or []]

    def load(self, site_id: str) -> SiteInputs:
        """Load all inputs for a site.

        Args:
            site_id: Site identifier

        Returns:
            SiteInputs for the site

        Raises:
            SiteNotFoundError: If the site is not configured
            ConfigurationError: If the site's entities cannot be parsed
        """
        data = self._read()
        raw = _convert_keys(self._raw_site(data, site_id))

        try:
            scalars = {k: v for k, v in raw.items() if not isinstance(v, (list, dict))}
            site = SiteSettings.from_dict({**scalars, "id": site_id})
            weekly_hours = [
                WeeklyHours.from_dict(day, hours)
                for day, hours in (raw.get("weekly_hours") or {}).items()
            ]
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Site {site_id}: {e}") from e
        unknown_days = [h.day_of_week for h in weekly_hours if h.day_of_week not in WEEKDAY_NAMES]
        if unknown_days:
            raise ConfigurationError(f"Site {site_id}: unknown weekdays {unknown_days}")

        rules = []
        for rule_data in raw.get("exceptions") or []:
            try:
                rules.append(rule_from_dict(rule_data))
            except (RuleError, TypeError, ValueError) as e:
                raise ConfigurationError(f"Site {site_id}: {e}") from e

        try:
            inputs = SiteInputs(
                site=site,
                weekly_hours=weekly_hours,
                rules=rules,
                equipment=[EquipmentEntry.from_dict(e) for e in raw.get("equipment") or []],
                thermostats=[ThermostatDevice.from_dict(t) for t in raw.get("thermostats") or []],
                zones=[HvacZone.from_dict(z) for z in raw.get("hvac_zones") or []],
                profiles=[ThermostatProfile.from_dict(p) for p in data.get("thermostat_profiles") or []],
                schedule_snapshot=dict(raw.get("schedule_snapshot") or {}),
            )
        except TypeError as e:
            raise ConfigurationError(f"Site {site_id}: {e}") from e

        logger.debug(
            f"Loaded site {site_id}: {len(inputs.equipment)} equipment, "
            f"{len(inputs.thermostats)} thermostats, {len(inputs.rules)} exception rules"
        )
        return inputs

    def reading_for(self, site_id: str, device: ThermostatDevice) -> Optional[ThermostatReading]:
        """Static reading configured for a device, if any."""
        raw = _convert_keys(self._raw_site(self._read(), site_id))
        reading = (raw.get("readings") or {}).get(device.id)
        if not reading:
            return None
        reading = _convert_keys(reading)
        return ThermostatReading(
            current_temperature=reading.get("current_temperature"),
            current_setpoint=reading.get("current_setpoint"),
            hvac_mode=reading.get("hvac_mode"),
        )
