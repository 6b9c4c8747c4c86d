"""Iterative weighted least-squares pseudorange solver.

One call solves for ECEF position plus one receiver clock per constellation
using the satellites selected by a boolean mask over a prepared
geometry/range matrix. The call is pure: the mask, matrix and a-priori
vector are read, never modified.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import scipy.linalg

from gnss_raim.errors import ConfigurationError
from gnss_raim.models import ResultCode, SatelliteSystem, SatId, SolveResult, TropModel
from gnss_raim.utils.angles import elev_az_from_rx_sv
from gnss_raim.utils.logging import get_logger
from gnss_raim.utils.wgs84 import LIGHT_SPEED_MPS, ecef_to_lla, rotate_for_transit

_LOG = get_logger(__name__)

INITIAL_TRANSIT_S = 0.070
DIVERGENCE_LIMIT_M = 1.0e10
SINGULAR_TOL = 1.0e-12
UNIT_PROJECTION_TOL = 1.0e-8
MIN_TROP_HEIGHT_M = -1000.0


def systems_in_use(
    sat_ids: Sequence[SatId],
    included: np.ndarray,
    allowed_gnss: Sequence[SatelliteSystem],
) -> tuple[SatelliteSystem, ...]:
    """Systems present among included satellites, ordered as in ``allowed_gnss``."""

    present = {sat.system for sat, use in zip(sat_ids, included) if use}
    return tuple(system for system in allowed_gnss if system in present)


def slice_apriori(
    apriori: np.ndarray,
    systems: Sequence[SatelliteSystem],
    allowed_gnss: Sequence[SatelliteSystem],
) -> np.ndarray:
    """Cut an ``allowed_gnss``-ordered a-priori vector down to ``systems``."""

    local = np.zeros(3 + len(systems), dtype=float)
    local[:3] = apriori[:3]
    for i, system in enumerate(systems):
        k = 3 + list(allowed_gnss).index(system)
        local[3 + i] = apriori[k] if k < len(apriori) else 0.0
    return local


def inverse_svd(matrix: np.ndarray, tol: float = SINGULAR_TOL) -> np.ndarray:
    """Invert a symmetric information matrix by SVD.

    Raises ``numpy.linalg.LinAlgError`` when the smallest singular value is
    below ``tol`` times the largest.
    """

    u, s, vt = scipy.linalg.svd(matrix)
    if s.size == 0 or not np.all(np.isfinite(s)) or s[-1] <= tol * s[0]:
        raise np.linalg.LinAlgError("Singular matrix")
    return (vt.T / s) @ u.T


def trop_correction(
    trop_model: TropModel,
    rx_ecef_m: np.ndarray,
    sv_ecef_m: np.ndarray,
    t: float,
) -> tuple[float, bool]:
    """Return (delay_m, applied); the delay is skipped for unreasonable receiver states."""

    _, _, height = ecef_to_lla(*rx_ecef_m)
    if height > trop_model.height_limit_m or height < MIN_TROP_HEIGHT_M:
        return 0.0, False
    elev_deg, _ = elev_az_from_rx_sv(rx_ecef_m, sv_ecef_m)
    if elev_deg < 0.0:
        return 0.0, False
    return float(trop_model.correction(rx_ecef_m, sv_ecef_m, t)), True


def simple_pr_solution(
    t: float,
    sat_ids: Sequence[SatId],
    svp: np.ndarray,
    included: np.ndarray | Sequence[bool],
    trop_model: TropModel | None,
    *,
    allowed_gnss: Sequence[SatelliteSystem],
    inv_meas_cov: np.ndarray | None = None,
    max_iterations: int = 10,
    convergence_limit: float = 3.0e-7,
    apriori: np.ndarray | None = None,
) -> SolveResult:
    """Solve for position and per-system clocks from the satellites in ``included``.

    Args:
        t: Receive time (GPS seconds), passed to the troposphere model.
        sat_ids: Satellite ids, one per row of ``svp``.
        svp: N x 4 geometry/range matrix from ``prepare_pr_solution``.
        included: Boolean mask of satellites to use.
        trop_model: Troposphere model; required.
        allowed_gnss: Canonical system order for clock states.
        inv_meas_cov: Optional N x N inverse measurement covariance; None solves unweighted.
        max_iterations: Iteration limit (at least two iterations always run).
        convergence_limit: Step norm (m) below which the solve has converged.
        apriori: Optional seed, length ``3 + len(allowed_gnss)``. Without it the
            solve starts at the Earth's center with a 70 ms transit guess and no
            troposphere on the first pass.

    Returns:
        SolveResult with code OK, NOT_CONVERGED, SINGULAR or NOT_ENOUGH_SATS.
    """

    if trop_model is None:
        raise ConfigurationError("Undefined tropospheric model")
    if not allowed_gnss:
        raise ConfigurationError("Must define allowed_gnss before processing")
    svp = np.asarray(svp, dtype=float)
    mask = np.asarray(included, dtype=bool)
    n_sats = len(sat_ids)
    if svp.shape != (n_sats, 4) or mask.shape != (n_sats,) or (
        inv_meas_cov is not None and np.shape(inv_meas_cov) != (n_sats, n_sats)
    ):
        raise ValueError(
            f"Invalid dimensions: {n_sats} sats, svp {svp.shape}, mask {mask.shape}, "
            f"inv_meas_cov {None if inv_meas_cov is None else np.shape(inv_meas_cov)}"
        )

    mask = mask & np.array([sat.system in allowed_gnss for sat in sat_ids], dtype=bool)
    systems = systems_in_use(sat_ids, mask, allowed_gnss)
    dim = 3 + len(systems)
    used = np.flatnonzero(mask)
    n_used = used.size
    if n_used < dim:
        _LOG.debug("not enough satellites: %d for dimension %d", n_used, dim)
        return SolveResult(code=ResultCode.NOT_ENOUGH_SATS, included=mask, systems=systems)

    weights = None
    if inv_meas_cov is not None:
        weights = np.asarray(inv_meas_cov, dtype=float)[np.ix_(used, used)]

    # Only a cold start takes the fixed 70 ms transit and skips troposphere on the
    # first pass; a seeded solve trusts the seed's range so a converged seed
    # re-converges in two iterations.
    cold_start = apriori is None
    x0 = np.zeros(dim) if cold_start else slice_apriori(np.asarray(apriori, dtype=float), systems, allowed_gnss)
    solution = x0.copy()
    clock_col = np.array([3 + systems.index(sat_ids[i].system) for i in used], dtype=int)
    iter_limit = max(2, int(max_iterations))
    n_iterate = 0
    converge = 0.0
    code = ResultCode.NOT_CONVERGED

    while True:
        trop_flag = False
        first_pass = cold_start and n_iterate == 0
        rx = solution[:3].copy()
        partials = np.zeros((n_used, dim), dtype=float)
        resids = np.zeros(n_used, dtype=float)
        for row, i in enumerate(used):
            sv = svp[i, :3]
            transit = INITIAL_TRANSIT_S if first_pass else float(np.linalg.norm(sv - rx)) / LIGHT_SPEED_MPS
            sv_rot = rotate_for_transit(sv, transit)
            rho = float(np.linalg.norm(sv_rot - rx))
            crange = svp[i, 3] - rho
            if not first_pass:
                delay, applied = trop_correction(trop_model, rx, sv_rot, t)
                trop_flag = trop_flag or not applied
                crange -= delay
            resids[row] = crange - solution[clock_col[row]]
            partials[row, :3] = (rx - sv_rot) / rho
            partials[row, clock_col[row]] = 1.0

        pt = partials.T
        info = pt @ partials if weights is None else pt @ weights @ partials
        try:
            covariance = inverse_svd(info)
        except np.linalg.LinAlgError:
            _LOG.debug("singular information matrix at iteration %d", n_iterate + 1)
            return SolveResult(
                code=ResultCode.SINGULAR,
                included=mask,
                systems=systems,
                n_iterations=n_iterate,
                trop_flag=trop_flag,
            )
        gen_inv = covariance @ pt if weights is None else covariance @ pt @ weights

        n_iterate += 1
        dx = gen_inv @ resids
        solution = solution + dx
        converge = float(np.linalg.norm(dx))
        if n_iterate > 1 and converge < convergence_limit:
            code = ResultCode.OK
            break
        if n_iterate >= iter_limit or not converge <= DIVERGENCE_LIMIT_M:
            code = ResultCode.NOT_CONVERGED
            break

    if trop_flag:
        _LOG.debug("trop correction not applied at time %.3f", t)

    slopes = np.zeros(n_used, dtype=float)
    if code == ResultCode.OK:
        projection = np.diag(partials @ gen_inv)
        for row in range(n_used):
            # a satellite alone on its clock projects to 1; its slope is undefined
            denom = 1.0 - projection[row]
            if abs(denom) < UNIT_PROJECTION_TOL or denom < 0.0:
                continue
            slopes[row] = np.sqrt(np.sum(gen_inv[:, row] ** 2) * (n_used - dim) / denom)

    prefit = None if cold_start else partials @ (solution - x0) - resids
    return SolveResult(
        code=code,
        included=mask,
        systems=systems,
        solution=solution,
        covariance=covariance,
        partials=partials,
        inv_meas_cov=weights if weights is not None else np.zeros((0, 0)),
        residuals=resids,
        slopes=slopes,
        max_slope=float(np.max(slopes)) if slopes.size else 0.0,
        rms_residual=float(np.sqrt(np.mean(resids**2))),
        prefit_residuals=prefit,
        n_iterations=n_iterate,
        convergence=converge,
        trop_flag=trop_flag,
    )
