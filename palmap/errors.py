# palmap/errors.py


class PalmapError(Exception):
    """Base class for live map failures."""


class ConfigError(PalmapError):
    """A required endpoint or credential is not configured."""


class TelemetryError(PalmapError):
    """An upstream API answered with an error or an unusable body."""
