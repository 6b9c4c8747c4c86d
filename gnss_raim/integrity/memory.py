"""A-priori solution memory carried between epochs."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from gnss_raim.errors import ConfigurationError
from gnss_raim.models import SatelliteSystem


class AprioriMemory:
    """Running a-priori solution and solution statistics.

    The a-priori vector is ordered ``[X, Y, Z, clk(allowed_gnss[0]), ...]``
    so it can seed epochs with any subset of the allowed systems. ``mode``
    "replace" takes each new solution as is; "exponential" moves the stored
    estimate toward it by ``alpha``. Clocks of systems missing from a
    solution keep their previous value.

    Not safe to share between epochs solved concurrently.
    """

    def __init__(
        self,
        allowed_gnss: Sequence[SatelliteSystem],
        *,
        mode: str = "replace",
        alpha: float = 0.5,
    ) -> None:
        if not allowed_gnss:
            raise ConfigurationError("Must define allowed_gnss before processing")
        if mode not in ("replace", "exponential"):
            raise ConfigurationError(f"Unknown memory mode: {mode!r}")
        if not 0.0 < alpha <= 1.0:
            raise ConfigurationError("alpha must be in (0, 1]")
        self.allowed_gnss = tuple(allowed_gnss)
        self.mode = mode
        self.alpha = float(alpha)
        self.reset()

    def reset(self) -> None:
        """Forget the a-priori solution and all statistics."""

        self._apriori: np.ndarray | None = None
        self._known = np.zeros(3 + len(self.allowed_gnss), dtype=bool)
        self.position_fixed = False
        self.n_solutions = 0
        self.n_data = 0
        self._n_states = 0
        self._apv_sum = 0.0
        self._info_sum = np.zeros((3, 3), dtype=float)
        self._info_pos_sum = np.zeros(3, dtype=float)

    @property
    def has_apriori(self) -> bool:
        return self._apriori is not None

    def apriori(self) -> np.ndarray | None:
        """Seed vector for the next solve, or None before the first update."""

        return None if self._apriori is None else self._apriori.copy()

    def fix_position(self, pos_ecef_m: Sequence[float]) -> None:
        """Pin the a-priori position; later updates only move the clocks."""

        if self._apriori is None:
            self._apriori = np.zeros(3 + len(self.allowed_gnss), dtype=float)
        self._apriori[:3] = np.asarray(pos_ecef_m, dtype=float)[:3]
        self._known[:3] = True
        self.position_fixed = True

    def update(self, solution: np.ndarray, systems: Sequence[SatelliteSystem]) -> None:
        """Fold ``solution`` (ordered by ``systems``) into the a-priori vector."""

        full = np.full(3 + len(self.allowed_gnss), np.nan)
        full[:3] = solution[:3]
        for i, system in enumerate(systems):
            if system in self.allowed_gnss:
                full[3 + self.allowed_gnss.index(system)] = solution[3 + i]
        present = np.isfinite(full)
        if self.position_fixed:
            present[:3] = False

        if self._apriori is None:
            self._apriori = np.zeros_like(full)
        blend = present & self._known if self.mode == "exponential" else np.zeros_like(present)
        fresh = present & ~blend
        self._apriori[fresh] = full[fresh]
        self._apriori[blend] += self.alpha * (full[blend] - self._apriori[blend])
        self._known |= present

    def add(
        self,
        solution: np.ndarray,
        covariance: np.ndarray,
        prefit_residuals: np.ndarray | None,
        partials: np.ndarray,
        inv_meas_cov: np.ndarray | None = None,
    ) -> None:
        """Accumulate statistics of one accepted solution.

        Pre-fit residuals feed the a-posteriori variance factor; the position
        block of the covariance weights the running average position.
        """

        self.n_solutions += 1
        if prefit_residuals is not None and len(prefit_residuals):
            prefit = np.asarray(prefit_residuals, dtype=float)
            weights = inv_meas_cov if inv_meas_cov is not None and np.size(inv_meas_cov) else None
            self._apv_sum += float(prefit @ prefit if weights is None else prefit @ weights @ prefit)
            self.n_data += prefit.size
            self._n_states += np.asarray(partials).shape[1]
        try:
            info = np.linalg.inv(np.asarray(covariance, dtype=float)[:3, :3])
        except np.linalg.LinAlgError:
            return
        self._info_sum += info
        self._info_pos_sum += info @ np.asarray(solution, dtype=float)[:3]

    @property
    def ndof(self) -> int:
        return self.n_data - self._n_states

    @property
    def apv(self) -> float:
        """A-posteriori variance factor of the pre-fit residuals (NaN without dof)."""

        if self.ndof <= 0:
            return float("nan")
        return self._apv_sum / self.ndof

    def weighted_average_position(self) -> np.ndarray:
        """Information-weighted mean of the accumulated positions."""

        if self.n_solutions == 0 or not np.any(self._info_sum):
            return np.full(3, np.nan)
        return np.linalg.solve(self._info_sum, self._info_pos_sum)
