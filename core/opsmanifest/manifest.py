"""
Manifest Assembler

Compiles one site's daily manifest: resolved hours, equipment schedules and
thermostat directives, plus sun times, weather and a site config snapshot
when the site's location is known.

External sources plug in as optional collaborators:
- sun_times_provider(latitude, longitude, day, timezone) -> SunTimes | None
- weather_provider(latitude, longitude) -> WeatherSnapshot | None
- smart_start_provider(zone, device, open_time, setpoints) -> minutes | None
- geocoder(city) -> (latitude, longitude) | None
- pusher(manifest), raising on failure
"""

import logging
import time
from datetime import date, datetime
from typing import Callable, Optional

from .directives import evaluate_directive
from .equipment_scheduler import schedule_equipment
from .exceptions import ConfigurationError
from .hours import resolve_hours
from .models import DailyManifest, ResolvedHours, ThermostatReading, WeatherSnapshot
from .setpoint_resolver import resolve_setpoints
from .site_repository import SiteInputs
from .settings import SiteSettings, ThermostatDevice
from .store import DeviceStateStore, ManifestStore
from .time_utils import local_now, minute_of_day, minutes_to_clock

logger = logging.getLogger(__name__)

WEATHER_MAX_AGE_MINUTES = 30


class WeatherCache:
    """Reuses a weather snapshot per location until it is older than max_age_minutes."""

    def __init__(
        self,
        provider: Callable[[float, float], Optional[WeatherSnapshot]],
        max_age_minutes: float = WEATHER_MAX_AGE_MINUTES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.max_age_seconds = max_age_minutes * 60
        self.clock = clock
        self._cache: dict[tuple, tuple[float, WeatherSnapshot]] = {}

    def __call__(self, latitude: float, longitude: float) -> Optional[WeatherSnapshot]:
        key = (round(latitude, 3), round(longitude, 3))
        now = self.clock()
        cached = self._cache.get(key)
        if cached and now - cached[0] < self.max_age_seconds:
            return cached[1]

        snapshot = self.provider(latitude, longitude)
        if snapshot is not None:
            self._cache[key] = (now, snapshot)
        return snapshot


class ManifestCompiler:
    """Compiles and stores daily manifests for sites read from a repository."""

    def __init__(
        self,
        repository,
        reading_source=None,
        manifest_store: Optional[ManifestStore] = None,
        device_store: Optional[DeviceStateStore] = None,
        sun_times_provider: Optional[Callable] = None,
        weather_provider: Optional[Callable] = None,
        smart_start_provider: Optional[Callable] = None,
        geocoder: Optional[Callable] = None,
        pusher: Optional[Callable[[DailyManifest], None]] = None,
    ):
        self.repository = repository
        # Fall back to readings the repository itself knows about
        self.reading_source = reading_source or (repository if hasattr(repository, "reading_for") else None)
        self.manifest_store = manifest_store
        self.device_store = device_store
        self.sun_times_provider = sun_times_provider
        self.weather_provider = weather_provider
        self.smart_start_provider = smart_start_provider
        self.geocoder = geocoder
        self.pusher = pusher

    def _coordinates(self, site: SiteSettings) -> Optional[tuple[float, float]]:
        if site.has_coordinates:
            return site.latitude, site.longitude
        if site.city and self.geocoder:
            try:
                coords = self.geocoder(site.city)
            except Exception as e:
                logger.warning(f"Site {site.id}: geocoding {site.city!r} failed: {e}")
                return None
            if coords:
                logger.debug(f"Site {site.id}: geocoded {site.city!r} to {coords}")
                return float(coords[0]), float(coords[1])
        return None

    def _reading(self, site_id: str, device: ThermostatDevice) -> Optional[ThermostatReading]:
        if self.reading_source is None:
            return None
        return self.reading_source.reading_for(site_id, device)

    def _thermostat_entry(
        self,
        inputs: SiteInputs,
        device: ThermostatDevice,
        hours: ResolvedHours,
        occupied: bool,
    ) -> dict:
        site_id = inputs.site.id
        zone = inputs.zone_for(device)
        setpoints = resolve_setpoints(zone, inputs.profiles) if zone else None
        reading = self._reading(site_id, device)
        directive = evaluate_directive(setpoints, reading, occupied, has_zone=zone is not None)

        entry = {
            "device_id": device.id,
            "name": device.name,
            "entity_id": device.entity_id,
            "zone_id": zone.id if zone else None,
            "zone_name": zone.name if zone else None,
            "has_zone": zone is not None,
            "phase": "occupied" if occupied else "unoccupied",
            "current_temperature": reading.current_temperature if reading else None,
            "current_setpoint": reading.current_setpoint if reading else None,
            "directive": directive.message,
            "directive_action": directive.action.value,
            "target_setpoint": directive.target_setpoint,
        }

        if setpoints is not None:
            heat, cool = setpoints.band(occupied)
            fan_mode, hvac_mode = setpoints.modes(occupied)
            entry.update({
                "heat_setpoint": heat,
                "cool_setpoint": cool,
                "fan_mode": fan_mode,
                "hvac_mode": hvac_mode,
                "guardrail_min": setpoints.guardrail_min,
                "guardrail_max": setpoints.guardrail_max,
                "manager_offset_up": setpoints.manager_offset_up,
                "manager_offset_down": setpoints.manager_offset_down,
                "manager_override_reset_minutes": setpoints.manager_override_reset_minutes,
                "setpoint_source": setpoints.source,
                "profile_name": setpoints.profile_name,
            })

            if self.smart_start_provider and hours.is_open_day:
                try:
                    offset = self.smart_start_provider(zone, device, hours.open_time, setpoints)
                except Exception as e:
                    logger.warning(f"Site {site_id}: smart start for {device.id} failed: {e}")
                    offset = None
                if offset is not None:
                    entry["smart_start_minutes"] = int(offset)

        return entry

    def compile(
        self,
        site_id: str,
        target_date: Optional[date] = None,
        at: Optional[datetime] = None,
    ) -> DailyManifest:
        """Compile the manifest for a site and date.

        Args:
            site_id: Site identifier
            target_date: Date to compile (defaults to today in the site's timezone)
            at: Evaluation instant for the occupancy phase (defaults to now)

        Returns:
            The compiled DailyManifest

        Raises:
            SiteNotFoundError: If the site does not exist
            ConfigurationError: If the site's configuration is invalid
        """
        inputs = self.repository.load(site_id)
        site = inputs.site
        moment = local_now(site.timezone, at)
        target_date = target_date or moment.date()

        hours = resolve_hours(inputs.weekly_hours, inputs.rules, target_date)

        # The phase is only meaningful when compiling for the current local date
        if moment.date() == target_date:
            minute = minute_of_day(moment)
            evaluated_at = minutes_to_clock(minute)
            occupied = hours.occupied_at(minute)
        else:
            evaluated_at = None
            occupied = False

        errors: list[dict] = []
        sun_times = weather = site_config = None
        coords = self._coordinates(site)
        if coords:
            latitude, longitude = coords
            site_config = {
                "timezone": site.timezone,
                "latitude": latitude,
                "longitude": longitude,
                "geocoded": not site.has_coordinates,
                "default_lux_sensitivity": site.default_lux_sensitivity,
                "employee_pre_open_minutes": site.employee_pre_open_minutes,
                "customer_pre_open_minutes": site.customer_pre_open_minutes,
                "post_close_minutes": site.post_close_minutes,
            }
            if self.sun_times_provider:
                try:
                    sun_times = self.sun_times_provider(latitude, longitude, target_date, site.timezone)
                except Exception as e:
                    logger.warning(f"Site {site_id}: sun times unavailable: {e}")
                    errors.append({"item": "sun_times", "error": str(e)})
            if self.weather_provider:
                try:
                    weather = self.weather_provider(latitude, longitude)
                except Exception as e:
                    logger.warning(f"Site {site_id}: weather unavailable: {e}")
                    errors.append({"item": "weather", "error": str(e)})
        else:
            logger.debug(f"Site {site_id}: no location, omitting sun times and weather")

        equipment = []
        for entry in inputs.equipment:
            try:
                schedule = schedule_equipment(
                    entry,
                    hours,
                    site,
                    sun_times=sun_times,
                    snapshot=inputs.schedule_snapshot.get(entry.id),
                )
            except Exception as e:
                logger.error(f"Site {site_id}: equipment {entry.id} failed: {e}")
                errors.append({"item": f"equipment:{entry.id}", "error": str(e)})
                continue
            if schedule is not None:
                equipment.append(schedule)

        thermostats = []
        for device in inputs.thermostats:
            try:
                thermostats.append(self._thermostat_entry(inputs, device, hours, occupied))
            except Exception as e:
                logger.error(f"Site {site_id}: thermostat {device.id} failed: {e}")
                errors.append({"item": f"thermostat:{device.id}", "error": str(e)})

        manifest = DailyManifest(
            site_id=site.id,
            manifest_date=target_date,
            hours=hours,
            phase="occupied" if occupied else "unoccupied",
            evaluated_at=evaluated_at,
            equipment=tuple(equipment),
            thermostats=tuple(thermostats),
            sun_times=sun_times,
            weather=weather,
            site_config=site_config,
            errors=tuple(errors),
        )
        logger.info(
            f"Compiled {site_id} {target_date}: "
            f"{'closed' if hours.is_closed else f'{hours.open_time}-{hours.close_time}'}, "
            f"{len(equipment)} equipment, {len(thermostats)} thermostats, {len(errors)} errors"
        )
        return manifest

    def compile_and_store(
        self,
        site_id: str,
        target_date: Optional[date] = None,
        at: Optional[datetime] = None,
    ) -> DailyManifest:
        """Compile, persist, write directives back, then push.

        The manifest is stored before any push is attempted; a push failure is
        recorded on the stored row and never fails the call.

        Raises:
            ManifestPersistenceError: If the manifest or a directive cannot be stored
        """
        if self.manifest_store is None:
            raise ConfigurationError("No manifest store configured")

        manifest = self.compile(site_id, target_date, at)
        self.manifest_store.upsert(manifest)

        if self.device_store is not None:
            for entry in manifest.thermostats:
                # A no-zone report must never replace a live directive
                if entry["has_zone"]:
                    self.device_store.write_directive(manifest.site_id, entry["device_id"], entry["directive"])

        if self.pusher is not None:
            try:
                self.pusher(manifest)
            except Exception as e:
                logger.error(f"Push for {manifest.site_id}/{manifest.manifest_date} failed: {e}")
                self.manifest_store.record_push_result(manifest.site_id, manifest.manifest_date, "failed", str(e))
            else:
                self.manifest_store.record_push_result(manifest.site_id, manifest.manifest_date, "success")

        return manifest
