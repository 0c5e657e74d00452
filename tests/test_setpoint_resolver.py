"""Tests for zone setpoint resolution."""

import pytest

from core.opsmanifest.setpoint_resolver import DEFAULT_SETPOINTS, resolve_setpoints
from core.opsmanifest.settings import HvacZone, ThermostatProfile


@pytest.fixture
def profiles():
    return [
        ThermostatProfile(
            id="std",
            name="Standard",
            occupied_heat=69,
            occupied_cool=75,
            unoccupied_heat=58,
            unoccupied_cool=82,
            occupied_fan_mode="on",
        )
    ]


class TestResolveSetpoints:
    def test_profile_linked_zone(self, profiles):
        zone = HvacZone(id="z", name="Sales", profile_id="std")
        resolved = resolve_setpoints(zone, profiles)
        assert resolved.source == "profile"
        assert resolved.profile_name == "Standard"
        assert resolved.band(True) == (69, 75)
        assert resolved.band(False) == (58, 82)
        assert resolved.modes(True) == ("on", "auto")

    def test_profile_fields_fall_back_to_defaults(self, profiles):
        resolved = resolve_setpoints(HvacZone(id="z", name="Sales", profile_id="std"), profiles)
        assert resolved.guardrail_min == DEFAULT_SETPOINTS["guardrail_min"]
        assert resolved.manager_offset_up == 4.0
        assert resolved.manager_override_reset_minutes == 120

    def test_override_zone_uses_own_values(self, profiles):
        zone = HvacZone(
            id="z",
            name="Office",
            profile_id="std",
            is_override=True,
            occupied_heat=70,
            occupied_cool=74,
            guardrail_min=50,
        )
        resolved = resolve_setpoints(zone, profiles)
        assert resolved.source == "zone_override"
        assert resolved.band(True) == (70, 74)
        assert resolved.band(False) == (55.0, 85.0)
        assert resolved.guardrail_min == 50

    def test_missing_profile_uses_zone_values(self):
        zone = HvacZone(id="z", name="Office", profile_id="gone", occupied_cool=73)
        resolved = resolve_setpoints(zone, [])
        assert resolved.source == "zone_override"
        assert resolved.occupied_cool == 73

    def test_defaults(self):
        resolved = resolve_setpoints(HvacZone(id="z", name="Bare"), [])
        assert resolved.source == "default"
        assert resolved.band(True) == (68.0, 76.0)
        assert resolved.band(False) == (55.0, 85.0)
        assert (resolved.guardrail_min, resolved.guardrail_max) == (45.0, 95.0)
        assert resolved.modes(False) == ("auto", "auto")
