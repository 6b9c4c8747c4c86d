"""Exception types raised by gnss_raim."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """The solver was asked to run with an unusable configuration."""


class NoEphemerisError(LookupError):
    """An ephemeris service has no healthy, valid data for a satellite at a time."""
