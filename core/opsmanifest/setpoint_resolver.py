"""
Setpoint Resolution

Picks the setpoints a zone runs with: its linked thermostat profile, its own
override values, or the built-in defaults. All temperatures are °F.
"""

import logging
from dataclasses import asdict, dataclass, fields
from typing import Iterable, Optional

from .settings import HvacZone, SetpointFields, ThermostatProfile

logger = logging.getLogger(__name__)

DEFAULT_SETPOINTS = {
    "occupied_heat": 68.0,
    "occupied_cool": 76.0,
    "unoccupied_heat": 55.0,
    "unoccupied_cool": 85.0,
    "occupied_fan_mode": "auto",
    "occupied_hvac_mode": "auto",
    "unoccupied_fan_mode": "auto",
    "unoccupied_hvac_mode": "auto",
    "guardrail_min": 45.0,
    "guardrail_max": 95.0,
    "manager_offset_up": 4.0,
    "manager_offset_down": 4.0,
    "manager_override_reset_minutes": 120,
}

_SETPOINT_KEYS = ("occupied_heat", "occupied_cool", "unoccupied_heat", "unoccupied_cool")


@dataclass(frozen=True)
class ResolvedSetpoints:
    """Setpoints, guardrails and override band for one zone."""

    occupied_heat: float
    occupied_cool: float
    unoccupied_heat: float
    unoccupied_cool: float
    occupied_fan_mode: str
    occupied_hvac_mode: str
    unoccupied_fan_mode: str
    unoccupied_hvac_mode: str
    guardrail_min: float
    guardrail_max: float
    manager_offset_up: float
    manager_offset_down: float
    manager_override_reset_minutes: int
    source: str = "default"  # "profile", "zone_override" or "default"
    profile_id: Optional[str] = None
    profile_name: Optional[str] = None

    def band(self, occupied: bool) -> tuple[float, float]:
        """(heat, cool) pair for the occupancy phase."""
        if occupied:
            return self.occupied_heat, self.occupied_cool
        return self.unoccupied_heat, self.unoccupied_cool

    def modes(self, occupied: bool) -> tuple[str, str]:
        """(fan_mode, hvac_mode) pair for the occupancy phase."""
        if occupied:
            return self.occupied_fan_mode, self.occupied_hvac_mode
        return self.unoccupied_fan_mode, self.unoccupied_hvac_mode

    def to_dict(self) -> dict:
        return asdict(self)


def _has_setpoints(values: SetpointFields) -> bool:
    return any(getattr(values, key) is not None for key in _SETPOINT_KEYS)


def _merge(values: Optional[SetpointFields]) -> dict:
    """Take each field from values when set, else from the defaults."""
    merged = dict(DEFAULT_SETPOINTS)
    if values is None:
        return merged
    for f in fields(SetpointFields):
        value = getattr(values, f.name)
        if value is not None:
            merged[f.name] = value
    return merged


def resolve_setpoints(zone: HvacZone, profiles: Iterable[ThermostatProfile]) -> ResolvedSetpoints:
    """Resolve the effective setpoints for a zone.

    Args:
        zone: The HVAC zone
        profiles: Thermostat profiles available to the site

    Returns:
        ResolvedSetpoints with per-field fallback to the defaults
    """
    if not zone.is_override and zone.profile_id:
        profile = next((p for p in profiles if p.id == zone.profile_id), None)
        if profile is not None:
            return ResolvedSetpoints(
                **_merge(profile),
                source="profile",
                profile_id=profile.id,
                profile_name=profile.name,
            )
        logger.warning(f"Zone {zone.id}: profile {zone.profile_id!r} not found, using zone values")

    if _has_setpoints(zone):
        return ResolvedSetpoints(**_merge(zone), source="zone_override")

    # Guardrails and offsets can still be set on a zone without its own setpoints
    return ResolvedSetpoints(**_merge(zone), source="default")
