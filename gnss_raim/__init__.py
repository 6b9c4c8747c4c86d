"""Single-epoch GNSS pseudorange positioning with RAIM fault detection and exclusion."""

from gnss_raim.config import RaimConfig
from gnss_raim.errors import ConfigurationError, NoEphemerisError
from gnss_raim.models import EpochResult, ResultCode, SatelliteSystem, SatId, SatStatus
from gnss_raim.receiver.prsolution import PRSolution

__all__ = [
    "ConfigurationError",
    "EpochResult",
    "NoEphemerisError",
    "PRSolution",
    "RaimConfig",
    "ResultCode",
    "SatId",
    "SatStatus",
    "SatelliteSystem",
    "integrity",
    "meas",
    "receiver",
    "sat",
    "utils",
]
