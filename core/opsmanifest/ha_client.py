"""
Home Assistant API Client for thermostat readings

Minimal REST client for reading climate entities. Readings feed the
directive engine; this module never writes to devices.
"""

import logging
from typing import Any, Optional

import requests

from .models import ThermostatReading
from .settings import ThermostatDevice

logger = logging.getLogger(__name__)


def _to_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class HAClient:
    """Simple Home Assistant REST API client."""

    def __init__(self, base_url: str, token: str, timeout: float = 5):
        """Initialize HA client.

        Args:
            base_url: Home Assistant URL (e.g., "http://supervisor/core")
            token: Long-lived access token
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        # One session for connection pooling
        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        })
        self.timeout = timeout

    def get_state(self, entity_id: str) -> dict[str, Any]:
        """Get current state of an entity.

        Args:
            entity_id: Entity ID (e.g., "climate.sales_floor")

        Returns:
            State dictionary with 'state', 'attributes', etc.

        Raises:
            ValueError: If entity not found
            RuntimeError: If API request fails
        """
        url = f"{self.base_url}/api/states/{entity_id}"
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            if e.response is not None and e.response.status_code == 404:
                raise ValueError(f"Entity not found: {entity_id}")
            raise RuntimeError(f"Failed to get state for {entity_id}: {e}")
        except requests.exceptions.RequestException as e:
            raise RuntimeError(f"HA API request failed: {e}")

    def get_thermostat_reading(self, entity_id: str) -> ThermostatReading:
        """Read a climate entity.

        The entity's `temperature` attribute is the device's active setpoint,
        which may differ from the profile after a manual adjustment.

        Args:
            entity_id: Climate entity ID (domain prefix optional)

        Returns:
            ThermostatReading; fields the entity does not report are None
        """
        if "." not in entity_id:
            entity_id = f"climate.{entity_id}"

        state = self.get_state(entity_id)
        attrs = state.get("attributes", {}) or {}

        return ThermostatReading(
            current_temperature=_to_float(attrs.get("current_temperature")),
            current_setpoint=_to_float(attrs.get("temperature")),
            hvac_mode=state.get("state"),
        )


class HAReadingSource:
    """Reading source backed by Home Assistant.

    Any client failure yields an unknown reading instead of an error, so the
    directive engine falls back to its unknown-temperature branch.
    """

    def __init__(self, client: HAClient):
        self.client = client

    def reading_for(self, site_id: str, device: ThermostatDevice) -> Optional[ThermostatReading]:
        if not device.entity_id:
            return None
        try:
            return self.client.get_thermostat_reading(device.entity_id)
        except (ValueError, RuntimeError) as e:
            logger.warning(f"Site {site_id}: no reading for {device.entity_id}: {e}")
            return None
