"""RAIM fault detection and exclusion over satellite subsets.

The search solves with every good satellite, then with each single
satellite removed, then each pair, and so on, keeping the lowest-RMS
converged solution. It stops at the first stage whose best RMS residual is
below the configured limit, when the rejection bound is reached, or when
removing more satellites cannot help (too few satellites, no ephemeris).
"""

from __future__ import annotations

from itertools import combinations
from typing import Iterator, Sequence

import numpy as np

from gnss_raim.config import RaimConfig
from gnss_raim.errors import ConfigurationError
from gnss_raim.integrity.dop import compute_dop
from gnss_raim.integrity.memory import AprioriMemory
from gnss_raim.models import (
    EphemerisService,
    EpochResult,
    PreparedGeometry,
    ResultCode,
    SatelliteSystem,
    SatId,
    SatStatus,
    SearchOrder,
    SolveResult,
    TropModel,
)
from gnss_raim.receiver.prepare import prepare_pr_solution
from gnss_raim.receiver.solver import simple_pr_solution, systems_in_use
from gnss_raim.utils.logging import get_logger

_LOG = get_logger(__name__)

_FATAL_CODES = (ResultCode.NOT_ENOUGH_SATS, ResultCode.NO_EPHEMERIS)


def exclusion_masks(
    good_indexes: Sequence[int],
    n_sats: int,
    stage: int,
) -> Iterator[tuple[np.ndarray, tuple[int, ...]]]:
    """Yield (read-only inclusion mask, excluded indexes) for every ``stage``-subset of ``good_indexes``."""

    base = np.zeros(n_sats, dtype=bool)
    base[list(good_indexes)] = True
    for excluded in combinations(good_indexes, stage):
        mask = base.copy()
        mask[list(excluded)] = False
        mask.flags.writeable = False
        yield mask, excluded


def expand_to_systems(
    best: SolveResult,
    full_systems: Sequence[SatelliteSystem],
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Re-size solution, covariance and partials to ``full_systems`` clocks.

    Clocks of systems the winning solve did not estimate are zero, as are
    their covariance rows/columns and partials columns.
    """

    source = [0, 1, 2] + [
        3 + best.systems.index(system) if system in best.systems else -1 for system in full_systems
    ]
    keep = [k for k, src in enumerate(source) if src >= 0]
    src = [source[k] for k in keep]
    dim = len(source)
    solution = np.zeros(dim, dtype=float)
    covariance = np.zeros((dim, dim), dtype=float)
    partials = np.zeros((best.partials.shape[0], dim), dtype=float)
    solution[keep] = best.solution[src]
    covariance[np.ix_(keep, keep)] = best.covariance[np.ix_(src, src)]
    partials[:, keep] = best.partials[:, src]
    return solution, covariance, partials


def raim_solve(
    geometry: PreparedGeometry,
    trop_model: TropModel | None,
    config: RaimConfig,
    *,
    inv_meas_cov: np.ndarray | None = None,
    memory: AprioriMemory | None = None,
) -> EpochResult:
    """Run the RAIM search over a prepared epoch.

    ``memory``, when given, seeds every solve and is updated with the
    winning solution of a successful epoch.
    """

    config.validate()
    if trop_model is None:
        raise ConfigurationError("Undefined tropospheric model")

    t = geometry.t
    if geometry.count <= 0:
        code = ResultCode.NO_EPHEMERIS if geometry.count == ResultCode.NO_EPHEMERIS else ResultCode.NOT_ENOUGH_SATS
        _LOG.debug("RAIM at %.3f: nothing to solve (%s)", t, code.description)
        return EpochResult(code=code, valid=False, t=t, sat_ids=geometry.sat_ids, status=geometry.status)

    good = geometry.good_indexes
    n_sats = len(geometry.sat_ids)
    apriori = memory.apriori() if memory is not None else None
    _LOG.debug("RAIM at %.3f: good satellites (%d) %s", t, len(good), " ".join(str(geometry.sat_ids[i]) for i in good))

    best: SolveResult | None = None
    best_stage = 0
    failure: ResultCode | None = None
    stage = 0
    while True:
        hopeless = False
        for mask, excluded in exclusion_masks(good, n_sats, stage):
            result = simple_pr_solution(
                t,
                geometry.sat_ids,
                geometry.svp,
                mask,
                trop_model,
                allowed_gnss=config.allowed_gnss,
                inv_meas_cov=inv_meas_cov,
                max_iterations=config.max_iterations,
                convergence_limit=config.convergence_limit,
                apriori=apriori,
            )
            _LOG.debug(
                "RAIM: try excluding [%s] -> %s rms %.3f",
                " ".join(str(geometry.sat_ids[i]) for i in excluded),
                result.code.description,
                result.rms_residual,
            )
            if result.code != ResultCode.OK:
                failure = result.code if failure is None else max(failure, result.code)
                if result.code in _FATAL_CODES:
                    hopeless = True
                    break
                continue
            if best is None or result.rms_residual < best.rms_residual:
                best = result
                best_stage = stage
            if stage == 0 and result.rms_residual < config.rms_limit:
                break

        if best is not None and best.rms_residual < config.rms_limit:
            _LOG.debug("RAIM: success at stage %d", stage)
            break
        stage += 1
        if config.n_sats_reject > -1 and stage > config.n_sats_reject:
            _LOG.debug("RAIM: stop before stage %d, n_sats_reject is %d", stage, config.n_sats_reject)
            break
        if hopeless:
            _LOG.debug("RAIM: stop before stage %d, %s", stage, failure.description if failure else "")
            break
        if stage > len(good):
            break
        _LOG.debug("RAIM: go to stage %d", stage)

    if best is None:
        code = failure if failure is not None else ResultCode.NOT_ENOUGH_SATS
        _LOG.debug("RAIM exit with %s, not valid", code.description)
        return EpochResult(
            code=code,
            valid=False,
            t=t,
            sat_ids=geometry.sat_ids,
            status=geometry.status,
            stage=stage,
        )
    return _epoch_result(geometry, best, best_stage, config, memory)


def _epoch_result(
    geometry: PreparedGeometry,
    best: SolveResult,
    stage: int,
    config: RaimConfig,
    memory: AprioriMemory | None,
) -> EpochResult:
    status = tuple(
        SatStatus.EXCLUDED_RAIM if mark.included and not use else mark
        for mark, use in zip(geometry.status, best.included)
    )
    full_systems = systems_in_use(geometry.sat_ids, geometry.included, config.allowed_gnss)
    systems = best.systems
    solution, covariance, partials = best.solution, best.covariance, best.partials
    if len(best.systems) < len(full_systems):
        solution, covariance, partials = expand_to_systems(best, full_systems)
        systems = tuple(full_systems)

    dop = compute_dop(best.partials, best.solution)
    if memory is not None:
        memory.add(best.solution, best.covariance, best.prefit_residuals, best.partials, best.inv_meas_cov)
        memory.update(best.solution, best.systems)

    nsvs = best.nsvs
    slope_flag = bool(
        best.max_slope > config.slope_limit
        or (best.max_slope > config.slope_limit / 2.0 and nsvs == 5)
    )
    rms_flag = bool(best.rms_residual >= config.rms_limit)
    code = ResultCode.DEGRADED if (slope_flag or rms_flag or best.trop_flag) else ResultCode.OK
    _LOG.debug("RAIM exit with %s, valid", code.description)
    return EpochResult(
        code=code,
        valid=True,
        t=geometry.t,
        sat_ids=geometry.sat_ids,
        status=status,
        systems=systems,
        solution=solution,
        covariance=covariance,
        partials=partials,
        inv_meas_cov=best.inv_meas_cov,
        residuals=best.residuals,
        slopes=best.slopes,
        rms_residual=best.rms_residual,
        max_slope=best.max_slope,
        dop=dop,
        n_iterations=best.n_iterations,
        convergence=best.convergence,
        nsvs=nsvs,
        n_rejected=sum(1 for mark in status if mark is SatStatus.EXCLUDED_RAIM),
        stage=stage,
        trop_flag=best.trop_flag,
        slope_flag=slope_flag,
        rms_flag=rms_flag,
        prefit_residuals=best.prefit_residuals,
    )


def raim_compute(
    t: float,
    sat_ids: Sequence[SatId],
    pseudoranges: Sequence[float],
    ephemeris: EphemerisService,
    trop_model: TropModel | None,
    config: RaimConfig,
    *,
    inv_meas_cov: np.ndarray | None = None,
    memory: AprioriMemory | None = None,
    status: Sequence[SatStatus] | None = None,
    order: SearchOrder = SearchOrder.USER,
) -> EpochResult:
    """Prepare the epoch and run the RAIM search (weighted when ``inv_meas_cov`` is given)."""

    config.validate()
    if trop_model is None:
        raise ConfigurationError("Undefined tropospheric model")
    geometry = prepare_pr_solution(
        t,
        sat_ids,
        pseudoranges,
        ephemeris,
        allowed_gnss=config.allowed_gnss,
        status=status,
        order=order,
    )
    _LOG.debug("prepare returns %d", geometry.count)
    return raim_solve(geometry, trop_model, config, inv_meas_cov=inv_meas_cov, memory=memory)


def raim_compute_unweighted(
    t: float,
    sat_ids: Sequence[SatId],
    pseudoranges: Sequence[float],
    ephemeris: EphemerisService,
    trop_model: TropModel | None,
    config: RaimConfig,
    *,
    memory: AprioriMemory | None = None,
    status: Sequence[SatStatus] | None = None,
    order: SearchOrder = SearchOrder.USER,
) -> EpochResult:
    """RAIM solution with no measurement covariance (every range weighted equally)."""

    return raim_compute(
        t,
        sat_ids,
        pseudoranges,
        ephemeris,
        trop_model,
        config,
        memory=memory,
        status=status,
        order=order,
    )
