"""Dilution of precision from a solution's partials matrix."""

from __future__ import annotations

import numpy as np
import scipy.linalg

from gnss_raim.models import DopMetrics
from gnss_raim.utils.wgs84 import ecef_to_enu_matrix, ecef_to_lla


def compute_dop(partials: np.ndarray, solution: np.ndarray | None = None) -> DopMetrics:
    """Compute GDOP/PDOP/TDOP from ``(P^T P)^-1``.

    PDOP uses the three position diagonals, TDOP every clock diagonal and
    GDOP = sqrt(PDOP^2 + TDOP^2). HDOP and VDOP need the receiver position in
    ``solution`` to rotate the position block into east/north/up; without it
    they are NaN. A singular geometry yields infinite DOPs.
    """

    partials = np.asarray(partials, dtype=float)
    if (
        partials.ndim != 2
        or partials.shape[0] < partials.shape[1]
        or partials.shape[1] < 4
        or np.linalg.matrix_rank(partials) < partials.shape[1]
    ):
        inf = float("inf")
        return DopMetrics(gdop=inf, pdop=inf, tdop=inf, hdop=inf, vdop=inf)
    try:
        q = scipy.linalg.inv(partials.T @ partials)
    except np.linalg.LinAlgError:
        inf = float("inf")
        return DopMetrics(gdop=inf, pdop=inf, tdop=inf, hdop=inf, vdop=inf)

    diag = np.diag(q)
    pdop = float(np.sqrt(np.sum(diag[:3])))
    tdop = float(np.sqrt(np.sum(diag[3:])))
    gdop = float(np.hypot(pdop, tdop))

    hdop = vdop = float("nan")
    if solution is not None and np.all(np.isfinite(solution[:3])) and np.linalg.norm(solution[:3]) > 0.0:
        lat_deg, lon_deg, _ = ecef_to_lla(*solution[:3])
        rot = ecef_to_enu_matrix(lat_deg, lon_deg)
        q_enu = rot @ q[:3, :3] @ rot.T
        hdop = float(np.sqrt(q_enu[0, 0] + q_enu[1, 1]))
        vdop = float(np.sqrt(q_enu[2, 2]))
    return DopMetrics(gdop=gdop, pdop=pdop, tdop=tdop, hdop=hdop, vdop=vdop)
