"""Satellite ephemeris models."""

from gnss_raim.sat.simple_gnss import GALILEO_CONFIG, SimpleConstellationConfig, SimpleGnssEphemeris
from gnss_raim.sat.visibility import visible_sats

__all__ = [
    "GALILEO_CONFIG",
    "SimpleConstellationConfig",
    "SimpleGnssEphemeris",
    "visible_sats",
]
