"""Satellite visibility filtering utilities."""

from __future__ import annotations

from typing import Iterable

import numpy as np

from gnss_raim.errors import NoEphemerisError
from gnss_raim.models import EphemerisService, SatId
from gnss_raim.utils.angles import elev_az_from_rx_sv


def visible_sats(
    ephemeris: EphemerisService,
    receiver_ecef_m: np.ndarray,
    t: float,
    sat_ids: Iterable[SatId],
    elevation_mask_deg: float = 10.0,
) -> list[SatId]:
    """Return the satellites above the elevation mask that have ephemeris at ``t``."""

    visible: list[SatId] = []
    for sat in sat_ids:
        try:
            xvt = ephemeris.get_xvt(sat, t)
        except NoEphemerisError:
            continue
        elev_deg, _ = elev_az_from_rx_sv(receiver_ecef_m, xvt.pos_ecef_m)
        if elev_deg >= elevation_mask_deg:
            visible.append(sat)
    return visible
