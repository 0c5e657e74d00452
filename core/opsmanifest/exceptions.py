"""
Ops Manifest Custom Exceptions

Simple exception hierarchy for error handling.
"""


class OpsManifestError(Exception):
    """Base exception for the manifest compiler."""

    pass


class ConfigurationError(OpsManifestError):
    """Configuration is invalid."""

    pass


class SiteNotFoundError(OpsManifestError):
    """Requested site is not known to the entity store."""

    pass


class RuleError(OpsManifestError):
    """Exception rule definition is invalid."""

    pass


class ScheduleError(OpsManifestError):
    """Equipment entry cannot be scheduled."""

    pass


class ManifestPersistenceError(OpsManifestError):
    """Manifest upsert failed."""

    pass
