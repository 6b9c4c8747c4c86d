"""Geometry and logging utilities.

NOTE: Keep this package lightweight.
Avoid importing matplotlib at import time.
"""

from gnss_raim.utils.angles import elev_az_from_rx_sv
from gnss_raim.utils.logging import get_logger, set_level
from gnss_raim.utils.wgs84 import (
    ELLIPSOID,
    LIGHT_SPEED_MPS,
    OMEGA_EARTH,
    ecef_to_enu_matrix,
    ecef_to_lla,
    enu_from_ecef_delta,
    lla_to_ecef,
    rotate_for_transit,
)

__all__ = [
    "ELLIPSOID",
    "LIGHT_SPEED_MPS",
    "OMEGA_EARTH",
    "ecef_to_enu_matrix",
    "ecef_to_lla",
    "elev_az_from_rx_sv",
    "enu_from_ecef_delta",
    "get_logger",
    "lla_to_ecef",
    "rotate_for_transit",
    "set_level",
]
