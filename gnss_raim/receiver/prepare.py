"""Measurement preparation: satellite geometry and corrected ranges for one epoch."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from gnss_raim.errors import ConfigurationError, NoEphemerisError
from gnss_raim.models import (
    EphemerisService,
    NavValidity,
    PreparedGeometry,
    SatelliteSystem,
    SatId,
    SatStatus,
    SearchOrder,
    SvHealth,
)
from gnss_raim.utils.logging import get_logger
from gnss_raim.utils.wgs84 import LIGHT_SPEED_MPS

_LOG = get_logger(__name__)


def prepare_pr_solution(
    t: float,
    sat_ids: Sequence[SatId],
    pseudoranges: Sequence[float],
    ephemeris: EphemerisService,
    *,
    allowed_gnss: Sequence[SatelliteSystem],
    status: Sequence[SatStatus] | None = None,
    order: SearchOrder = SearchOrder.USER,
) -> PreparedGeometry:
    """Build the geometry/range matrix for the receive time ``t``.

    Satellites whose system is not in ``allowed_gnss`` are marked
    EXCLUDED_CONSTELLATION without an ephemeris lookup. Every other satellite
    not already marked in ``status`` is evaluated twice: once at
    ``t - PR/c`` and again after removing the satellite clock and
    relativity terms from that transmit time. A failed lookup marks the
    satellite EXCLUDED_NO_EPHEMERIS. Inputs are never mutated.
    """

    if not allowed_gnss:
        raise ConfigurationError("Must define allowed_gnss before processing")
    if len(pseudoranges) != len(sat_ids):
        raise ValueError(
            f"Got {len(pseudoranges)} pseudoranges for {len(sat_ids)} satellites"
        )
    if status is not None and len(status) != len(sat_ids):
        raise ValueError(f"Got {len(status)} status marks for {len(sat_ids)} satellites")

    _LOG.debug("prepare_pr_solution at time %.3f", t)
    marks = list(status) if status is not None else [SatStatus.INCLUDED] * len(sat_ids)
    for i, sat in enumerate(sat_ids):
        if not marks[i].included:
            continue
        if sat.system not in allowed_gnss:
            _LOG.debug("ignoring satellite %s (system not allowed)", sat)
            marks[i] = SatStatus.EXCLUDED_CONSTELLATION

    svp = np.zeros((len(sat_ids), 4), dtype=float)
    n_good = 0
    n_no_eph = 0
    for i, sat in enumerate(sat_ids):
        if not marks[i].included:
            continue
        pr = float(pseudoranges[i])
        tx = t - pr / LIGHT_SPEED_MPS
        try:
            xvt = ephemeris.get_xvt(
                sat, tx, health=SvHealth.HEALTHY, validity=NavValidity.VALID_ONLY, order=order
            )
            tx -= xvt.clk_bias_s + xvt.rel_corr_s
            xvt = ephemeris.get_xvt(
                sat, tx, health=SvHealth.HEALTHY, validity=NavValidity.VALID_ONLY, order=order
            )
        except NoEphemerisError as exc:
            _LOG.debug("ignoring satellite %s (no ephemeris): %s", sat, exc)
            marks[i] = SatStatus.EXCLUDED_NO_EPHEMERIS
            n_no_eph += 1
            continue

        svp[i, :3] = xvt.pos_ecef_m
        svp[i, 3] = pr + LIGHT_SPEED_MPS * (xvt.clk_bias_s + xvt.rel_corr_s)
        _LOG.debug(
            "SVP: sat %s PR %.3f clkbias %.3f relcorr %.3f",
            sat,
            pr,
            LIGHT_SPEED_MPS * xvt.clk_bias_s,
            LIGHT_SPEED_MPS * xvt.rel_corr_s,
        )
        n_good += 1

    return PreparedGeometry(
        t=float(t),
        sat_ids=tuple(sat_ids),
        status=tuple(marks),
        svp=svp,
        n_good=n_good,
        n_no_ephemeris=n_no_eph,
    )
