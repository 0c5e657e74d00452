"""Shared fixtures for the opsmanifest test suite."""

import os
import sys
from pathlib import Path

import pytest
import yaml

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(ROOT / "backend"))

# The backend builds its services on import; keep them in memory
os.environ["OPSMANIFEST_DATABASE_URL"] = "sqlite://"
os.environ["OPSMANIFEST_SITES_FILE"] = str(ROOT / "sites.yaml")
os.environ["OPSMANIFEST_SCHEDULED_COMPILE_ENABLED"] = "false"
os.environ["HA_TOKEN"] = ""

from core.opsmanifest.exception_rules import rule_from_dict  # noqa: E402
from core.opsmanifest.settings import (  # noqa: E402
    EquipmentEntry,
    HvacZone,
    SiteSettings,
    ThermostatDevice,
    ThermostatProfile,
    WeeklyHours,
)
from core.opsmanifest.site_repository import SiteInputs  # noqa: E402
from core.opsmanifest.store import create_session_factory  # noqa: E402
from core.opsmanifest.time_utils import WEEKDAY_NAMES  # noqa: E402


def week(open_time="08:00", close_time="22:00", closed_days=()):
    """Same hours every weekday, except the closed ones."""
    return [
        WeeklyHours(
            day_of_week=day,
            open_time=None if day in closed_days else open_time,
            close_time=None if day in closed_days else close_time,
            is_closed=day in closed_days,
        )
        for day in WEEKDAY_NAMES
    ]


class FakeRepository:
    """In-memory site repository with static readings."""

    def __init__(self, *inputs: SiteInputs, readings=None):
        self.sites = {i.site.id: i for i in inputs}
        self.readings = readings or {}

    def site_ids(self):
        return list(self.sites)

    def load(self, site_id):
        from core.opsmanifest.exceptions import SiteNotFoundError

        if site_id not in self.sites:
            raise SiteNotFoundError(f"Site not found: {site_id}")
        return self.sites[site_id]

    def reading_for(self, site_id, device):
        return self.readings.get(device.id)


@pytest.fixture
def site():
    return SiteSettings(id="store-001", name="Main Street", timezone="America/Chicago")


@pytest.fixture
def make_inputs(site):
    """Build SiteInputs with sensible defaults: open 08:00-22:00 daily, one zoned thermostat."""

    def _make(
        weekly_hours=None,
        rules=(),
        equipment=(),
        thermostats=None,
        zones=None,
        profiles=(),
        site_settings=None,
    ):
        return SiteInputs(
            site=site_settings or site,
            weekly_hours=list(weekly_hours if weekly_hours is not None else week()),
            rules=[rule_from_dict(r) if isinstance(r, dict) else r for r in rules],
            equipment=[EquipmentEntry.from_dict(e) if isinstance(e, dict) else e for e in equipment],
            thermostats=list(
                thermostats
                if thermostats is not None
                else [ThermostatDevice(id="tstat-1", name="Sales Floor", entity_id="climate.sales_floor")]
            ),
            zones=list(
                zones
                if zones is not None
                else [HvacZone(id="zone-1", name="Sales Floor", thermostat_device_id="tstat-1", profile_id="std")]
            ),
            profiles=list(profiles) or [
                ThermostatProfile(
                    id="std",
                    name="Standard",
                    occupied_heat=68,
                    occupied_cool=76,
                    unoccupied_heat=55,
                    unoccupied_cool=85,
                )
            ],
        )

    return _make


@pytest.fixture
def session_factory():
    """Fresh in-memory database per test."""
    return create_session_factory("sqlite://")


@pytest.fixture
def write_sites(tmp_path):
    """Write a sites YAML file and return its path."""

    def _write(data) -> str:
        path = tmp_path / "sites.yaml"
        if isinstance(data, str):
            path.write_text(data)
        else:
            path.write_text(yaml.safe_dump(data, sort_keys=False))
        return str(path)

    return _write
