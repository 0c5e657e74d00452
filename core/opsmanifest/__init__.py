"""Daily operations manifest compiler package."""

# Define public API
__all__ = [
    "AppSettings",
    "SiteSettings",
    "DailyManifest",
    "ResolvedHours",
    "ManifestCompiler",
    "ManifestStore",
    "DeviceStateStore",
    "YamlSiteRepository",
    "HAClient",
]

# Import settings
from .settings import AppSettings, SiteSettings

# Import models
from .models import DailyManifest, ResolvedHours

# Import compiler and persistence
from .manifest import ManifestCompiler
from .store import DeviceStateStore, ManifestStore
from .site_repository import YamlSiteRepository

# Import HA client
from .ha_client import HAClient
