"""Pseudorange solution front end binding configuration and a-priori memory.

Runtime-facing wrapper that:
  * validates the configuration once
  * prepares epochs and runs single solves or the RAIM search
  * owns the optional a-priori memory (the only state kept between epochs)
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from gnss_raim.config import RaimConfig
from gnss_raim.integrity.memory import AprioriMemory
from gnss_raim.integrity.raim import raim_compute, raim_solve
from gnss_raim.logger import config_string
from gnss_raim.models import (
    EphemerisService,
    EpochResult,
    PreparedGeometry,
    SatId,
    SatStatus,
    SearchOrder,
    SolveResult,
    TropModel,
)
from gnss_raim.receiver.prepare import prepare_pr_solution
from gnss_raim.receiver.solver import simple_pr_solution
from gnss_raim.utils.logging import get_logger

_LOG = get_logger(__name__)


class PRSolution:
    """Single-epoch pseudorange solver with RAIM."""

    def __init__(
        self,
        config: RaimConfig | None = None,
        trop_model: TropModel | None = None,
        memory: AprioriMemory | None = None,
    ) -> None:
        self.config = (config or RaimConfig()).validate()
        self.trop_model = trop_model
        if memory is None and self.config.has_memory:
            memory = AprioriMemory(
                self.config.allowed_gnss,
                mode=self.config.memory_mode,
                alpha=self.config.memory_alpha,
            )
        self.memory = memory
        _LOG.info(config_string(self.config, "PRSolution configuration:"))

    def prepare(
        self,
        t: float,
        sat_ids: Sequence[SatId],
        pseudoranges: Sequence[float],
        ephemeris: EphemerisService,
        *,
        status: Sequence[SatStatus] | None = None,
        order: SearchOrder = SearchOrder.USER,
    ) -> PreparedGeometry:
        return prepare_pr_solution(
            t,
            sat_ids,
            pseudoranges,
            ephemeris,
            allowed_gnss=self.config.allowed_gnss,
            status=status,
            order=order,
        )

    def simple_solution(
        self,
        geometry: PreparedGeometry,
        *,
        included: np.ndarray | None = None,
        inv_meas_cov: np.ndarray | None = None,
    ) -> SolveResult:
        """Solve once with every good satellite (or the given mask), without RAIM."""

        return simple_pr_solution(
            geometry.t,
            geometry.sat_ids,
            geometry.svp,
            geometry.included if included is None else included,
            self.trop_model,
            allowed_gnss=self.config.allowed_gnss,
            inv_meas_cov=inv_meas_cov,
            max_iterations=self.config.max_iterations,
            convergence_limit=self.config.convergence_limit,
            apriori=self.memory.apriori() if self.memory is not None else None,
        )

    def raim_solve(self, geometry: PreparedGeometry, *, inv_meas_cov: np.ndarray | None = None) -> EpochResult:
        return raim_solve(geometry, self.trop_model, self.config, inv_meas_cov=inv_meas_cov, memory=self.memory)

    def raim_compute(
        self,
        t: float,
        sat_ids: Sequence[SatId],
        pseudoranges: Sequence[float],
        ephemeris: EphemerisService,
        *,
        inv_meas_cov: np.ndarray | None = None,
        status: Sequence[SatStatus] | None = None,
        order: SearchOrder = SearchOrder.USER,
    ) -> EpochResult:
        return raim_compute(
            t,
            sat_ids,
            pseudoranges,
            ephemeris,
            self.trop_model,
            self.config,
            inv_meas_cov=inv_meas_cov,
            memory=self.memory,
            status=status,
            order=order,
        )

    def raim_compute_unweighted(
        self,
        t: float,
        sat_ids: Sequence[SatId],
        pseudoranges: Sequence[float],
        ephemeris: EphemerisService,
        *,
        status: Sequence[SatStatus] | None = None,
        order: SearchOrder = SearchOrder.USER,
    ) -> EpochResult:
        return self.raim_compute(t, sat_ids, pseudoranges, ephemeris, status=status, order=order)

    def config_string(self, tag: str) -> str:
        return config_string(self.config, tag, memory=self.memory)
